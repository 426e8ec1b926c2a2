"""
Request logging middleware for the webhook server.
"""

import time
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..logging import get_logger

logger = get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every request and turns an unhandled exception into a 500."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process a request, logging method, path, status and duration.

        Args:
            request: HTTP request
            call_next: Next middleware/handler

        Returns:
            The handler's response, or a plain 500 if the handler raised
        """
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error(
                "Unhandled error while serving a request",
                method=request.method,
                path=request.url.path,
                error=str(exc),
                exc_info=True,
            )
            response = PlainTextResponse("Internal Server Error", status_code=500)

        logger.info(
            "Served a request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return response

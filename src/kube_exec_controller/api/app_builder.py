"""FastAPI application builder for the admission webhook."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import ValidationError

from .. import __version__
from ..admission import AdmissionDecision, classify_interaction, classify_update
from ..errors import build_denial_status
from ..logging import get_logger
from ..models import AdmissionRequest, AdmissionResponse, AdmissionReview
from ..service import KubeExecService
from .middleware import RequestLoggingMiddleware

logger = get_logger(__name__)

Classifier = Callable[[AdmissionRequest], AdmissionDecision]


class WebhookAppBuilder:
    """Builder for the webhook FastAPI application."""

    def __init__(self, service: KubeExecService):
        self.service = service
        self.app: Optional[FastAPI] = None

    def _create_lifespan_handler(self) -> Callable:
        """Start the controller with the app and stop it on shutdown."""

        @asynccontextmanager
        async def lifespan(_app: FastAPI):
            try:
                await self.service.start()
                yield
            finally:
                await self.service.stop()

        return lifespan

    def _add_middleware(self, app: FastAPI) -> None:
        app.add_middleware(RequestLoggingMiddleware)

    def _add_health_endpoints(self, app: FastAPI) -> None:
        """Add health check endpoints."""

        @app.get("/health/liveness")
        async def liveness():
            return {"status": "alive", "version": __version__}

        @app.get("/health/readiness")
        async def readiness():
            return {"status": "ready", "version": __version__, **self.service.status()}

        @app.get("/metrics")
        async def metrics_endpoint():
            data = generate_latest()
            return Response(content=data, media_type=CONTENT_TYPE_LATEST)

    async def _review(self, request: Request, endpoint: str, classify: Classifier) -> Response:
        body = await request.body()
        try:
            review = AdmissionReview.model_validate_json(body)
        except ValidationError as exc:
            logger.error(
                "Failed to decode the admission review",
                endpoint=endpoint,
                error=str(exc),
            )
            return Response(status_code=400)
        if review.request is None:
            logger.error("Admission review carries no request", endpoint=endpoint)
            return Response(status_code=400)

        decision = classify(review.request)
        await self.service.publish(decision)
        self.service.metrics.record_admission(
            endpoint, decision.allowed, decision.reason_code
        )

        response = AdmissionResponse(uid=review.request.uid, allowed=decision.allowed)
        if not decision.allowed:
            response.result = build_denial_status(
                decision.reason_code or "DENIED", decision.message or ""
            )
            logger.info(
                "Denied an admission request",
                endpoint=endpoint,
                pod_name=review.request.name,
                pod_namespace=review.request.namespace,
                username=review.request.user_info.username,
                reason=decision.reason_code,
            )

        answer = AdmissionReview(
            api_version=review.api_version, kind=review.kind, response=response
        )
        return JSONResponse(answer.to_wire())

    def _add_admission_endpoints(self, app: FastAPI) -> None:
        """Add the two validating webhook endpoints."""
        exempt = self.service.exempt_namespaces

        @app.post("/admit-pod-interaction")
        async def admit_pod_interaction(request: Request):
            return await self._review(
                request,
                "pod-interaction",
                lambda req: classify_interaction(req, exempt),
            )

        @app.post("/admit-pod-update")
        async def admit_pod_update(request: Request):
            return await self._review(
                request,
                "pod-update",
                lambda req: classify_update(req, exempt),
            )

    def build(self) -> FastAPI:
        """Build and configure the FastAPI application."""
        self.app = FastAPI(
            title="kube-exec-controller",
            version=__version__,
            lifespan=self._create_lifespan_handler(),
            docs_url=None,
            redoc_url=None,
        )
        self._add_middleware(self.app)
        self._add_health_endpoints(self.app)
        self._add_admission_endpoints(self.app)
        return self.app


def create_app(service: KubeExecService) -> FastAPI:
    """Create the webhook application around a composed service."""
    return WebhookAppBuilder(service).build()


__all__ = ["WebhookAppBuilder", "create_app"]

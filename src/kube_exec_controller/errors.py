"""
Error types and admission denial codes for the exec controller.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import Status

# Denial codes returned to the API server inside the admission response.
# Every denial carries 403 semantics; the message is what kubectl shows.
DENIAL_HTTP_MAP = {
    "MALFORMED_REQUEST": 403,
    "IMMUTABLE_LABELS_CHANGED": 403,
    "INVALID_ANNOTATION_VALUE": 403,
}

MALFORMED_REQUEST_MSG = "malformed request:"
IMMUTABLE_LABELS_DISALLOW_MSG = (
    "The following Pod labels cannot be updated or removed once set:"
)
INVALID_ANNOTATION_VALUE_MSG = (
    "The given annotation has an invalid value set in the Pod object:"
)


def http_status_for(code: str) -> int:
    return int(DENIAL_HTTP_MAP.get(code, 403))


def build_denial_status(code: str, message: str) -> Status:
    return Status(code=http_status_for(code), message=message, reason=code)


class KubeExecControllerError(Exception):
    """Base exception for all controller errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class MalformedRequestError(KubeExecControllerError):
    """Raised when an admission payload cannot be decoded."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "MALFORMED_REQUEST", details)


class InvalidDurationError(KubeExecControllerError):
    """Raised for a duration outside the ``<digits><s|m|h|d>`` grammar."""

    def __init__(self, value: str):
        super().__init__(
            f"invalid duration {value!r}, expecting a format like 30s, 10m, 6h, 1d",
            "INVALID_DURATION",
            {"value": value},
        )
        self.value = value


class TerminationMetadataError(KubeExecControllerError):
    """Raised when a Pod's labels cannot produce a termination time."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "TERMINATION_METADATA_INVALID", details)


class KubeAPIError(KubeExecControllerError):
    """Raised when a Kubernetes API call fails."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, "KUBE_API_ERROR", details)
        self.status = status


class PodNotFoundError(KubeAPIError):
    def __init__(self, namespace: str, name: str):
        super().__init__(
            f'pods "{name}" not found in namespace "{namespace}"',
            status=404,
            details={"namespace": namespace, "name": name},
        )
        self.error_code = "POD_NOT_FOUND"
        self.namespace = namespace
        self.name = name


class PermanentError(KubeExecControllerError):
    """Wraps an error that must not be retried."""

    def __init__(self, cause: BaseException):
        super().__init__(str(cause), "PERMANENT_ERROR")
        self.cause = cause


class RetryExhaustedError(KubeExecControllerError):
    """Raised when the backoff policy gives up on an operation."""

    def __init__(self, attempts: int, elapsed: float, last_error: BaseException):
        super().__init__(
            f"giving up after {attempts} attempt(s) in {elapsed:.1f}s: {last_error}",
            "RETRY_EXHAUSTED",
            {"attempts": attempts, "elapsed_seconds": round(elapsed, 3)},
        )
        self.attempts = attempts
        self.elapsed = elapsed
        self.last_error = last_error

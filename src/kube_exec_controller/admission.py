"""Admission decisions for Pod interaction and Pod update requests.

Both classifiers are pure: they look only at the admission request and the
set of exempt namespaces, and return a verdict plus, optionally, an event for
the controller. Publishing the event is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, FrozenSet, Optional, Union

from pydantic import ValidationError

from .errors import (
    IMMUTABLE_LABELS_DISALLOW_MSG,
    INVALID_ANNOTATION_VALUE_MSG,
    MALFORMED_REQUEST_MSG,
    MalformedRequestError,
)
from .logging import get_logger
from .metadata import (
    POD_EXTEND_DURATION_ANNOTATION,
    POD_INTERACTION_TIMESTAMP_LABEL,
    POD_TTL_DURATION_LABEL,
    is_valid_duration,
)
from .models import (
    AdmissionRequest,
    Pod,
    PodAttachOptions,
    PodExecOptions,
    PodExtensionUpdate,
    PodInteraction,
    interaction_options_adapter,
)

logger = get_logger(__name__)

Event = Union[PodInteraction, PodExtensionUpdate]


@dataclass(frozen=True)
class AdmissionDecision:
    allowed: bool
    reason_code: Optional[str] = None
    message: Optional[str] = None
    event: Optional[Event] = None

    @classmethod
    def allow(cls, event: Optional[Event] = None) -> "AdmissionDecision":
        return cls(allowed=True, event=event)

    @classmethod
    def deny(cls, reason_code: str, message: str) -> "AdmissionDecision":
        return cls(allowed=False, reason_code=reason_code, message=message)


def parse_namespace_allowlist(raw: Optional[str]) -> FrozenSet[str]:
    """Parse a comma-separated namespace list into a set."""
    if not raw:
        return frozenset()
    return frozenset(ns.strip() for ns in raw.split(",") if ns.strip())


def decode_interaction_options(raw: Any) -> Union[PodExecOptions, PodAttachOptions]:
    """Decode an exec/attach payload, rejecting every other kind."""
    try:
        if isinstance(raw, (str, bytes)):
            return interaction_options_adapter.validate_json(raw)
        return interaction_options_adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedRequestError(
            "payload is not a PodExecOptions or PodAttachOptions object",
            {"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def decode_pod(raw: Any, field: str) -> Pod:
    if raw is None:
        raise MalformedRequestError(f"missing {field} in admission request")
    try:
        if isinstance(raw, (str, bytes)):
            return Pod.model_validate_json(raw)
        return Pod.model_validate(raw)
    except ValidationError as exc:
        raise MalformedRequestError(
            f"{field} is not a Pod object",
            {"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def classify_interaction(
    request: AdmissionRequest,
    exempt_namespaces: FrozenSet[str],
    now: Callable[[], datetime] = _utcnow,
) -> AdmissionDecision:
    """Classify an exec/attach request into a verdict and an interaction event."""
    if request.namespace in exempt_namespaces:
        logger.debug(
            "Skipped as the request namespace is in the allow-list",
            namespace=request.namespace,
        )
        return AdmissionDecision.allow()

    try:
        options = decode_interaction_options(request.object)
    except MalformedRequestError as exc:
        logger.error(
            "Unable to construct a Pod interaction from the admission request",
            error=exc.message,
            pod_name=request.name,
            pod_namespace=request.namespace,
        )
        return AdmissionDecision.deny(
            exc.error_code, f"{MALFORMED_REQUEST_MSG} {exc.message}"
        )

    return AdmissionDecision.allow(
        PodInteraction(
            pod_name=request.name,
            pod_namespace=request.namespace,
            container_name=options.container,
            username=request.user_info.username,
            commands=tuple(options.command),
            init_time=now(),
        )
    )


def classify_update(
    request: AdmissionRequest, exempt_namespaces: FrozenSet[str]
) -> AdmissionDecision:
    """Classify a Pod update into allow, deny, or allow with an extension event."""
    if request.namespace in exempt_namespaces:
        logger.debug(
            "Skipped as the request namespace is in the allow-list",
            namespace=request.namespace,
        )
        return AdmissionDecision.allow()

    try:
        old_pod = decode_pod(request.old_object, "oldObject")
        new_pod = decode_pod(request.object, "object")
    except MalformedRequestError as exc:
        logger.error(
            "Unable to decode the Pod in an update request",
            error=exc.message,
            pod_name=request.name,
            pod_namespace=request.namespace,
        )
        return AdmissionDecision.deny(
            exc.error_code, f"{MALFORMED_REQUEST_MSG} {exc.message}"
        )

    # never flagged, an ordinary update
    if POD_INTERACTION_TIMESTAMP_LABEL not in old_pod.labels:
        return AdmissionDecision.allow()

    for key in (POD_INTERACTION_TIMESTAMP_LABEL, POD_TTL_DURATION_LABEL):
        if new_pod.labels.get(key) != old_pod.labels.get(key):
            logger.debug("Disallowed a request changing an immutable label", label=key)
            return AdmissionDecision.deny(
                "IMMUTABLE_LABELS_CHANGED",
                f"{IMMUTABLE_LABELS_DISALLOW_MSG} "
                f"{POD_INTERACTION_TIMESTAMP_LABEL} {POD_TTL_DURATION_LABEL}",
            )

    old_extension = old_pod.annotations.get(POD_EXTEND_DURATION_ANNOTATION)
    new_extension = new_pod.annotations.get(POD_EXTEND_DURATION_ANNOTATION)
    if old_extension == new_extension:
        return AdmissionDecision.allow()

    # removing the annotation is allowed and resets the extension to zero
    if new_extension is not None and not is_valid_duration(new_extension):
        return AdmissionDecision.deny(
            "INVALID_ANNOTATION_VALUE",
            f"{INVALID_ANNOTATION_VALUE_MSG} {POD_EXTEND_DURATION_ANNOTATION}",
        )

    return AdmissionDecision.allow(
        PodExtensionUpdate(pod=new_pod, username=request.user_info.username)
    )

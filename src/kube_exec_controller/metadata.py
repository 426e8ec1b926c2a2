"""Pod metadata keys and the helpers that read and write their values.

Labels are set once, when the first interaction with a Pod is detected, and
the admission webhook rejects any later change to them. Annotations carry the
mutable extension state and the computed termination time.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Mapping

from .errors import InvalidDurationError, TerminationMetadataError
from .models import Pod

# Write-once labels
POD_INTERACTION_TIMESTAMP_LABEL = "box.com/podInitialInteractionTimestamp"
POD_INTERACTOR_LABEL = "box.com/podInteractorUsername"
POD_TTL_DURATION_LABEL = "box.com/podTTLDuration"

# Mutable annotations
POD_EXTEND_DURATION_ANNOTATION = "box.com/podExtendedDuration"
POD_EXTEND_REQUESTER_ANNOTATION = "box.com/podExtensionRequester"
POD_TERMINATION_TIME_ANNOTATION = "box.com/podTerminationTime"

_DURATION_RE = re.compile(r"^([0-9]+)([smhd])$")
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400}


def is_valid_duration(value: str) -> bool:
    """Return True for durations such as ``30s``, ``20m``, ``6h`` or ``1d``."""
    return isinstance(value, str) and _DURATION_RE.match(value) is not None


def parse_duration(value: str) -> timedelta:
    if not isinstance(value, str):
        raise InvalidDurationError(str(value))
    match = _DURATION_RE.match(value)
    if match is None:
        raise InvalidDurationError(value)
    magnitude, unit = match.groups()
    return timedelta(seconds=int(magnitude) * _UNIT_SECONDS[unit])


def format_duration(seconds: int) -> str:
    """Render whole seconds in the largest unit that divides them evenly."""
    if seconds < 0:
        raise InvalidDurationError(str(seconds))
    if seconds == 0:
        return "0s"
    for unit in ("d", "h", "m"):
        if seconds % _UNIT_SECONDS[unit] == 0:
            return f"{seconds // _UNIT_SECONDS[unit]}{unit}"
    return f"{seconds}s"


def format_duration_rounded(delta: timedelta) -> str:
    """Human readable remaining time, rounded to the second (``1h2m3s``)."""
    total = max(0, int(round(delta.total_seconds())))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    parts = []
    if hours:
        parts.append(f"{hours}h")
    if hours or minutes:
        parts.append(f"{minutes}m")
    parts.append(f"{secs}s")
    return "".join(parts)


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def parse_unix_time(value: str) -> datetime:
    try:
        seconds = int(value)
    except (TypeError, ValueError) as exc:
        raise TerminationMetadataError(
            f"invalid unix timestamp {value!r}", {"value": value}
        ) from exc
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


def unix_timestamp(moment: datetime) -> str:
    return str(int(moment.timestamp()))


def interaction_labels(init_time: datetime, username: str, ttl_seconds: int) -> dict[str, str]:
    return {
        POD_INTERACTION_TIMESTAMP_LABEL: unix_timestamp(init_time),
        POD_INTERACTOR_LABEL: username,
        POD_TTL_DURATION_LABEL: format_duration(ttl_seconds),
    }


def has_interaction(labels: Mapping[str, str]) -> bool:
    return POD_INTERACTION_TIMESTAMP_LABEL in labels


def get_termination_time(pod: Pod) -> datetime:
    """Compute ``interaction timestamp + TTL + extension`` from Pod metadata.

    The extension defaults to zero when the annotation is absent. Always
    computed from the Pod itself so the scheduled fire time cannot drift from
    the stored annotation.
    """
    labels = pod.labels
    annotations = pod.annotations

    if POD_INTERACTION_TIMESTAMP_LABEL not in labels:
        raise TerminationMetadataError(
            "Pod has no interaction timestamp label",
            {"pod_name": pod.name, "pod_namespace": pod.namespace},
        )
    interacted_time = parse_unix_time(labels[POD_INTERACTION_TIMESTAMP_LABEL])

    try:
        ttl = parse_duration(labels.get(POD_TTL_DURATION_LABEL, ""))
    except InvalidDurationError as exc:
        raise TerminationMetadataError(
            f"invalid TTL label: {exc.message}",
            {"pod_name": pod.name, "pod_namespace": pod.namespace},
        ) from exc

    extension = timedelta(0)
    if POD_EXTEND_DURATION_ANNOTATION in annotations:
        try:
            extension = parse_duration(annotations[POD_EXTEND_DURATION_ANNOTATION])
        except InvalidDurationError as exc:
            raise TerminationMetadataError(
                f"invalid extension annotation: {exc.message}",
                {"pod_name": pod.name, "pod_namespace": pod.namespace},
            ) from exc

    return interacted_time + ttl + extension

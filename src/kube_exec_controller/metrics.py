from __future__ import annotations

from collections import defaultdict
from typing import Dict, Tuple

from prometheus_client import Counter, Gauge

_ADMISSION_TOTAL = Counter(
    "kube_exec_admission_requests_total",
    "Admission decisions by endpoint",
    labelnames=["endpoint", "allowed", "reason"],
)
_EVENTS_PUBLISHED = Counter(
    "kube_exec_events_published_total",
    "Events published to the controller channels",
    labelnames=["channel"],
)
_EVENTS_PROCESSED = Counter(
    "kube_exec_events_processed_total",
    "Events consumed by the controller",
    labelnames=["channel", "status"],
)
_EVICTIONS = Counter(
    "kube_exec_pod_evictions_total",
    "Pod evictions attempted by termination timers",
    labelnames=["result"],
)
_TIMERS_ARMED = Gauge(
    "kube_exec_termination_timers_armed",
    "Termination timers currently armed",
)


class ControllerMetricsCollector:
    """Prometheus metrics plus in-memory mirrors readable without scraping."""

    def __init__(self) -> None:
        self._counts: Dict[Tuple[str, ...], int] = defaultdict(int)

    def _bump(self, *key: str) -> None:
        self._counts[key] += 1

    def count(self, *key: str) -> int:
        return self._counts.get(key, 0)

    def record_admission(self, endpoint: str, allowed: bool, reason: str | None) -> None:
        reason = reason or "none"
        _ADMISSION_TOTAL.labels(
            endpoint=endpoint, allowed=str(allowed).lower(), reason=reason
        ).inc()
        self._bump("admission", endpoint, str(allowed).lower(), reason)

    def record_published(self, channel: str) -> None:
        _EVENTS_PUBLISHED.labels(channel=channel).inc()
        self._bump("published", channel)

    def record_processed(self, channel: str, status: str) -> None:
        _EVENTS_PROCESSED.labels(channel=channel, status=status).inc()
        self._bump("processed", channel, status)

    def record_eviction(self, result: str) -> None:
        _EVICTIONS.labels(result=result).inc()
        self._bump("eviction", result)

    def set_timers_armed(self, count: int) -> None:
        _TIMERS_ARMED.set(count)

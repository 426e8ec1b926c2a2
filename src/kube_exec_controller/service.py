"""Composition of the components shared by the webhook and the controller."""

from __future__ import annotations

import asyncio
import contextlib
from typing import Dict, Optional

from .admission import AdmissionDecision
from .channels import EventChannels
from .config import Settings
from .controller import Controller
from .kube import KubernetesPodClient, PodClient
from .logging import get_logger
from .metrics import ControllerMetricsCollector
from .models import PodExtensionUpdate, PodInteraction
from .retry import BackoffPolicy

logger = get_logger(__name__)


class KubeExecService:
    """Owns the event channels, the Kubernetes client and the controller task.

    The webhook publishes admission events through :meth:`publish` and the
    controller consumes them; there is no other shared state.
    """

    def __init__(
        self,
        settings: Settings,
        client: Optional[PodClient] = None,
        metrics: Optional[ControllerMetricsCollector] = None,
    ) -> None:
        self.settings = settings
        self.client: PodClient = client or KubernetesPodClient.in_cluster(
            settings.api_server
        )
        self.metrics = metrics or ControllerMetricsCollector()
        self.exempt_namespaces = settings.exempt_namespaces
        self.channels: Optional[EventChannels] = None
        self.controller: Optional[Controller] = None
        self._task: Optional["asyncio.Task[None]"] = None

    async def start(self) -> None:
        """Create the channels and the controller on the running loop."""
        if self._task is not None:
            return
        self.channels = EventChannels(
            self.settings.channels.interact_chan_size,
            self.settings.channels.extend_chan_size,
        )
        self.controller = Controller(
            self.client,
            self.channels,
            self.settings.ttl_seconds,
            retry_policy=BackoffPolicy.from_config(self.settings.retry),
            metrics=self.metrics,
        )
        self._task = asyncio.create_task(self.controller.run(), name="kube-exec-controller")
        logger.info(
            "Started the controller",
            ttl_seconds=self.settings.ttl_seconds,
            exempt_namespaces=sorted(self.exempt_namespaces),
        )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Stopped the controller")

    async def health_check(self) -> bool:
        return self._task is not None and not self._task.done()

    async def publish(self, decision: AdmissionDecision) -> None:
        """Hand the decision's event, if any, to the controller."""
        event = decision.event
        if event is None:
            return
        if self.channels is None:
            raise RuntimeError("service is not started")
        if isinstance(event, PodInteraction):
            await self.channels.publish_interaction(event)
            self.metrics.record_published("interaction")
        elif isinstance(event, PodExtensionUpdate):
            await self.channels.publish_extension(event)
            self.metrics.record_published("extension")

    def status(self) -> Dict[str, object]:
        return {
            "controller_running": self._task is not None and not self._task.done(),
            "controller_ready": bool(self.controller and self.controller.ready.is_set()),
            "channel_depths": self.channels.depths() if self.channels else {},
            "timers_armed": self.controller.armed_timer_count() if self.controller else 0,
        }

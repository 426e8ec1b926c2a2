"""Controller that turns Pod interactions into scheduled evictions.

Three workers share the event loop: one consumes the interaction channel, one
the extension channel, and one an internal queue that termination timers post
to when they expire. Each worker retries its own item, so a failing Pod never
holds back the others. No lock guards the timer map: every read of a timer is
followed by its reset or creation without an ``await`` in between.

Per Pod (keyed by uid, since names are reused) the lifecycle is::

    Unobserved -> Flagged (timer armed) -> Extended (timer re-armed)* -> Evicted

Flagged state survives restarts through the labels themselves: on startup
every labeled Pod is listed and its timer re-armed from its metadata.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from functools import partial
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from .channels import EventChannels
from .errors import (
    KubeExecControllerError,
    PermanentError,
    PodNotFoundError,
    RetryExhaustedError,
    TerminationMetadataError,
)
from .kube import PodClient
from .logging import get_logger
from .metadata import (
    POD_EXTEND_DURATION_ANNOTATION,
    POD_EXTEND_REQUESTER_ANNOTATION,
    POD_INTERACTION_TIMESTAMP_LABEL,
    POD_TERMINATION_TIME_ANNOTATION,
    format_duration_rounded,
    format_timestamp,
    get_termination_time,
    has_interaction,
    interaction_labels,
)
from .metrics import ControllerMetricsCollector
from .models import EvictionDue, Pod, PodExtensionUpdate, PodInteraction
from .patch import MetadataType, build_metadata_patch
from .retry import BackoffPolicy, retry_notify
from .timers import TerminationTimer, TimerState

logger = get_logger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Controller:
    """Ensures interacted Pods are labeled, scheduled for eviction and evicted."""

    # pylint: disable=too-many-instance-attributes

    def __init__(
        self,
        client: PodClient,
        channels: EventChannels,
        ttl_seconds: int,
        retry_policy: Optional[BackoffPolicy] = None,
        metrics: Optional[ControllerMetricsCollector] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        self._client = client
        self._channels = channels
        self._ttl_seconds = ttl_seconds
        self._policy = retry_policy or BackoffPolicy()
        self._metrics = metrics or ControllerMetricsCollector()
        self._clock = clock
        self._timers: Dict[str, TerminationTimer] = {}
        self._expirations: "asyncio.Queue[EvictionDue]" = asyncio.Queue()
        self.ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def termination_timers(self) -> Mapping[str, TerminationTimer]:
        return MappingProxyType(self._timers)

    def timer_state(self, uid: str) -> Optional[TimerState]:
        timer = self._timers.get(uid)
        return timer.state if timer else None

    def armed_timer_count(self) -> int:
        return sum(1 for timer in self._timers.values() if timer.active)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Reconcile previously flagged Pods, then consume events until cancelled."""
        try:
            try:
                await retry_notify(
                    self.reconcile,
                    self._policy,
                    partial(self._retry_warning, "previous Pod interactions", {}),
                )
            except RetryExhaustedError as exc:
                logger.error(
                    "Error in retrying to check previous Pod interactions, giving up!",
                    error=str(exc.last_error),
                    attempts=exc.attempts,
                )
            self.ready.set()
            await self._consume()
        finally:
            for timer in self._timers.values():
                timer.stop()
            self.ready.clear()

    async def _consume(self) -> None:
        workers = [
            asyncio.create_task(
                self._work(self._channels.interactions, self.process_interaction),
                name="controller-interaction-worker",
            ),
            asyncio.create_task(
                self._work(self._channels.extensions, self.process_extension),
                name="controller-extension-worker",
            ),
            asyncio.create_task(
                self._work(self._expirations, self.evict),
                name="controller-eviction-worker",
            ),
        ]
        try:
            await asyncio.gather(*workers)
        finally:
            for task in workers:
                task.cancel()

    @staticmethod
    async def _work(
        queue: "asyncio.Queue[Any]", handler: Callable[[Any], Awaitable[None]]
    ) -> None:
        while True:
            item = await queue.get()
            try:
                await handler(item)
            finally:
                queue.task_done()

    # ------------------------------------------------------------------
    # Event processing with backoff
    # ------------------------------------------------------------------

    @staticmethod
    def _retry_warning(what: str, fields: Dict[str, Any], error: BaseException, delay: float) -> None:
        logger.warning(
            f"Failed to handle {what}, will retry",
            retry_in=round(delay, 3),
            error=str(error),
            **fields,
        )

    async def _process(
        self, channel: str, operation: Callable[[], Awaitable[None]], fields: Dict[str, Any]
    ) -> None:
        try:
            await retry_notify(
                operation,
                self._policy,
                partial(self._retry_warning, f"a Pod {channel}", fields),
            )
        except RetryExhaustedError as exc:
            logger.error(
                f"Error in retrying to check a Pod {channel}, giving up!",
                error=str(exc.last_error),
                attempts=exc.attempts,
                **fields,
            )
            self._metrics.record_processed(channel, "dropped")
        except KubeExecControllerError as exc:
            logger.error(
                f"Dropped a Pod {channel} that cannot be handled",
                error=str(exc),
                **fields,
            )
            self._metrics.record_processed(channel, "dropped")
        else:
            self._metrics.record_processed(channel, "handled")

    async def process_interaction(self, event: PodInteraction) -> None:
        await self._process(
            "interaction", partial(self.handle_new_interaction, event), event.log_fields()
        )

    async def process_extension(self, event: PodExtensionUpdate) -> None:
        await self._process(
            "extension", partial(self.handle_extension_update, event), event.log_fields()
        )

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.to_thread(func, *args)

    async def reconcile(self) -> None:
        """Re-arm timers of every Pod that was flagged before this process started."""
        pods = await self._call(
            self._client.list_pods_with_label, POD_INTERACTION_TIMESTAMP_LABEL
        )
        for pod in pods:
            try:
                await self._set_termination(pod)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                logger.error(
                    "Error in setting termination timer to a previously interacted Pod, skipping",
                    pod_name=pod.name,
                    pod_namespace=pod.namespace,
                    error=str(exc),
                )
        logger.info("Checked previously interacted Pods", count=len(pods))

    async def handle_new_interaction(self, event: PodInteraction) -> None:
        """Label the interacted Pod and arm its termination timer.

        Labels are written once per Pod lifetime; a duplicate event for a Pod
        that is already labeled and tracked changes nothing.
        """
        try:
            pod = await self._call(
                self._client.get_pod, event.pod_namespace, event.pod_name
            )
        except PodNotFoundError as exc:
            raise PermanentError(exc) from exc

        if has_interaction(pod.labels):
            if pod.uid in self._timers and POD_TERMINATION_TIME_ANNOTATION in pod.annotations:
                logger.debug(
                    "Pod has already been labeled with the interaction info, ignored",
                    pod_name=pod.name,
                    pod_namespace=pod.namespace,
                    pod_interaction_timestamp=pod.labels[POD_INTERACTION_TIMESTAMP_LABEL],
                )
                return
            # labeled by an earlier attempt that failed before the annotation was written
            await self._set_termination(pod)
            return

        await self._notify(
            pod,
            f"Pod was interacted with 'kubectl exec/attach' command by a user "
            f"'{event.username}' initially at time {format_timestamp(event.init_time)}",
        )

        labels = interaction_labels(event.init_time, event.username, self._ttl_seconds)
        updated = await self._call(
            self._client.patch_pod,
            pod.namespace,
            pod.name,
            build_metadata_patch(pod, MetadataType.LABELS, labels),
        )
        await self._set_termination(updated)

        logger.info("A new Pod interaction is detected and handled", **event.log_fields())

    async def handle_extension_update(self, event: PodExtensionUpdate) -> None:
        """Reschedule eviction of a flagged Pod after its extension changed.

        Extensions only count while the Pod's timer is still armed: once the
        timer has fired the Pod is being evicted and the extension is ignored.
        """
        pod = event.pod
        timer = self._timers.get(pod.uid)
        if timer is None:
            logger.warning(
                "Failed to get the termination timer of an extension updated Pod, ignoring",
                pod_name=pod.name,
                pod_namespace=pod.namespace,
            )
            return
        if not timer.active:
            logger.warning(
                "Termination timer of an extension updated Pod has already expired or stopped, ignoring",
                pod_name=pod.name,
                pod_namespace=pod.namespace,
                timer_state=timer.state.value,
            )
            return

        # the "extended" notice below replaces the "will be evicted" one
        patched, termination_time, armed = await self._apply_termination(pod)
        if not armed:
            return

        patched = await self._call(
            self._client.patch_pod,
            patched.namespace,
            patched.name,
            build_metadata_patch(
                patched,
                MetadataType.ANNOTATIONS,
                {POD_EXTEND_REQUESTER_ANNOTATION: event.username},
            ),
        )

        new_extension = patched.annotations.get(POD_EXTEND_DURATION_ANNOTATION, "0s")
        new_termination_time = patched.annotations.get(
            POD_TERMINATION_TIME_ANNOTATION, format_timestamp(termination_time)
        )
        await self._notify(
            patched,
            f"Pod eviction time has been extended by '{new_extension}', as requested "
            f"from user '{event.username}'. New eviction time: {new_termination_time}",
        )

        logger.info(
            "Updated termination time of an interacted Pod with a new extension",
            pod_name=pod.name,
            pod_namespace=pod.namespace,
            requester_username=event.username,
            new_extension=new_extension,
            new_termination_time=new_termination_time,
        )

    async def evict(self, due: EvictionDue) -> None:
        """Evict a Pod whose timer expired. Failures are logged, never retried."""
        try:
            await self._call(self._client.evict_pod, due.pod_namespace, due.pod_name)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error(
                "Error in evicting a Pod!",
                pod_name=due.pod_name,
                pod_namespace=due.pod_namespace,
                error=str(exc),
            )
            self._metrics.record_eviction("failed")
        else:
            logger.info(
                "Successfully evicted an interacted Pod",
                pod_name=due.pod_name,
                pod_namespace=due.pod_namespace,
            )
            self._metrics.record_eviction("evicted")
        self._metrics.set_timers_armed(self.armed_timer_count())

    # ------------------------------------------------------------------
    # Termination timers
    # ------------------------------------------------------------------

    def _termination_time(self, pod: Pod) -> datetime:
        try:
            return get_termination_time(pod)
        except TerminationMetadataError as exc:
            raise PermanentError(exc) from exc

    async def _apply_termination(self, pod: Pod) -> tuple[Pod, datetime, bool]:
        """Arm the Pod's timer, then record the termination time on the Pod.

        The annotation is only written once the timer is known to be armed,
        so an inert timer leaves the Pod's metadata untouched.
        """
        termination_time = self._termination_time(pod)
        if not self._arm_timer(pod, termination_time - self._clock()):
            return pod, termination_time, False
        patched = await self._call(
            self._client.patch_pod,
            pod.namespace,
            pod.name,
            build_metadata_patch(
                pod,
                MetadataType.ANNOTATIONS,
                {POD_TERMINATION_TIME_ANNOTATION: format_timestamp(termination_time)},
            ),
        )
        return patched, termination_time, True

    async def _set_termination(self, pod: Pod) -> None:
        _, termination_time, armed = await self._apply_termination(pod)
        if not armed:
            return
        remaining = termination_time - self._clock()
        await self._notify(
            pod,
            f"Pod will be evicted at time {format_timestamp(termination_time)} "
            f"(in about {format_duration_rounded(remaining)})",
        )

    def _arm_timer(self, pod: Pod, remaining: timedelta) -> bool:
        """Create or reset the Pod's timer. False when the timer is already inert."""
        delay = remaining.total_seconds()
        timer = self._timers.get(pod.uid)
        if timer is not None:
            if not timer.reset(delay):
                logger.warning(
                    "Failed to reset termination timer in a Pod (either expired or stopped)",
                    pod_name=pod.name,
                    pod_namespace=pod.namespace,
                )
                return False
        else:
            due = EvictionDue(uid=pod.uid, pod_name=pod.name, pod_namespace=pod.namespace)
            self._timers[pod.uid] = TerminationTimer(
                delay, partial(self._expirations.put_nowait, due)
            )
        self._metrics.set_timers_armed(self.armed_timer_count())
        return True

    async def _notify(self, pod: Pod, message: str) -> None:
        await self._call(self._client.post_event, pod, message)

"""Single-fire termination timers on the asyncio event loop."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Callable, Optional


class TimerState(str, Enum):
    ARMED = "armed"
    FIRED = "fired"
    STOPPED = "stopped"


class TerminationTimer:
    """Countdown that invokes ``callback`` once, unless reset or stopped first.

    The callback runs on the event loop thread and must not block; the
    controller uses it only to post an eviction message to its own queue.
    Once fired or stopped the timer is inert: ``reset`` returns False and
    leaves it that way.
    """

    def __init__(
        self,
        delay: float,
        callback: Callable[[], None],
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._loop = loop or asyncio.get_running_loop()
        self._callback = callback
        self._state = TimerState.ARMED
        self._deadline = 0.0
        self._handle: Optional[asyncio.TimerHandle] = None
        self._schedule(delay)

    def _schedule(self, delay: float) -> None:
        delay = max(0.0, delay)
        self._deadline = self._loop.time() + delay
        self._handle = self._loop.call_later(delay, self._fire)

    def _fire(self) -> None:
        if self._state is not TimerState.ARMED:
            return
        self._state = TimerState.FIRED
        self._callback()

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is TimerState.ARMED

    def remaining(self) -> float:
        if not self.active:
            return 0.0
        return max(0.0, self._deadline - self._loop.time())

    def reset(self, delay: float) -> bool:
        """Re-arm to expire after ``delay`` seconds. False if already inert."""
        if not self.active:
            return False
        if self._handle is not None:
            self._handle.cancel()
        self._schedule(delay)
        return True

    def stop(self) -> bool:
        if not self.active:
            return False
        if self._handle is not None:
            self._handle.cancel()
        self._state = TimerState.STOPPED
        return True

"""Retry utilities with exponential backoff."""

from __future__ import annotations

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from .config import RetryConfig
from .errors import PermanentError, RetryExhaustedError
from .logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def exponential_backoff(
    attempt: int,
    base_delay: float = 0.5,
    max_delay: float = 60.0,
    multiplier: float = 1.5,
    jitter: float = 0.5,
) -> float:
    """Calculate exponential backoff delay with optional jitter.

    ``jitter`` is the randomization factor: the delay is drawn uniformly from
    ``[d * (1 - jitter), d * (1 + jitter)]`` and then capped at ``max_delay``.
    """
    delay = min(base_delay * (multiplier**attempt), max_delay)

    if jitter:
        # Spread retries of concurrent failures apart
        delay = delay * (1 - jitter + random.random() * 2 * jitter)

    return min(delay, max_delay)


@dataclass(frozen=True)
class BackoffPolicy:
    """When to retry and when to give up."""

    initial_interval: float = 0.5
    multiplier: float = 1.5
    max_interval: float = 60.0
    max_elapsed_seconds: float = 900.0
    max_attempts: Optional[int] = None
    jitter: float = 0.5

    @classmethod
    def from_config(cls, config: RetryConfig) -> "BackoffPolicy":
        return cls(
            initial_interval=config.initial_interval_seconds,
            multiplier=config.multiplier,
            max_interval=config.max_interval_seconds,
            max_elapsed_seconds=config.max_elapsed_seconds,
            max_attempts=config.max_attempts,
            jitter=config.jitter,
        )

    def delay_for(self, attempt: int) -> float:
        return exponential_backoff(
            attempt,
            base_delay=self.initial_interval,
            max_delay=self.max_interval,
            multiplier=self.multiplier,
            jitter=self.jitter,
        )


Notify = Callable[[BaseException, float], None]


async def retry_notify(
    operation: Callable[[], Awaitable[T]],
    policy: BackoffPolicy,
    notify: Optional[Notify] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Await ``operation`` until it succeeds or the policy gives up.

    ``notify(error, delay)`` runs before each backoff sleep. A
    :class:`PermanentError` stops retrying at once and its cause is raised.
    When a bound is reached :class:`RetryExhaustedError` is raised, chained
    from the last failure.
    """
    started = clock()
    attempt = 0
    while True:
        try:
            return await operation()
        except PermanentError as exc:
            raise exc.cause from None
        except Exception as exc:  # noqa: BLE001
            attempt += 1
            elapsed = clock() - started
            if policy.max_attempts is not None and attempt >= policy.max_attempts:
                raise RetryExhaustedError(attempt, elapsed, exc) from exc

            delay = policy.delay_for(attempt - 1)
            if elapsed + delay > policy.max_elapsed_seconds:
                raise RetryExhaustedError(attempt, elapsed, exc) from exc

            if notify is not None:
                notify(exc, delay)
            else:
                logger.warning(
                    "Operation failed, retrying",
                    attempt=attempt,
                    delay=round(delay, 3),
                    error=str(exc),
                )
            await sleep(delay)

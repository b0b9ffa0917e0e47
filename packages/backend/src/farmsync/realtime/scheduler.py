"""Retry scheduling and backoff.

Learn: The channel manager never calls asyncio.sleep() for its retries.
It asks a Scheduler to run a coroutine function after a delay and keeps the
returned handle so a pending retry can be cancelled on disconnect(). Tests
swap in a scheduler that records delays and runs callbacks on demand.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Optional

import structlog

logger = structlog.get_logger()

RetryCallback = Callable[[], Awaitable[None]]


def backoff_delay(
    attempt: int,
    base: float,
    max_delay: Optional[float] = None,
) -> float:
    """Delay before retry number `attempt` (1-based): base * 2**(attempt-1)."""
    if attempt < 1:
        raise ValueError(f"attempt must be >= 1, got {attempt}")
    delay = base * (2 ** (attempt - 1))
    if max_delay is not None:
        delay = min(delay, max_delay)
    return delay


class ScheduledCall(ABC):
    """Handle for a pending delayed call."""

    @abstractmethod
    def cancel(self) -> None:
        """Cancel the call if it has not started yet."""

    @property
    @abstractmethod
    def done(self) -> bool:
        """True once the call ran, failed, or was cancelled."""


class Scheduler(ABC):
    @abstractmethod
    def call_later(self, delay: float, callback: RetryCallback) -> ScheduledCall:
        """Run `await callback()` after `delay` seconds."""


class _TaskCall(ScheduledCall):
    def __init__(self, task: asyncio.Task):
        self._task = task

    def cancel(self) -> None:
        self._task.cancel()

    @property
    def done(self) -> bool:
        return self._task.done()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by asyncio tasks on the running loop."""

    def call_later(self, delay: float, callback: RetryCallback) -> ScheduledCall:
        return _TaskCall(asyncio.create_task(self._run(delay, callback)))

    @staticmethod
    async def _run(delay: float, callback: RetryCallback) -> None:
        await asyncio.sleep(delay)
        try:
            await callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("realtime.scheduled_call_failed")

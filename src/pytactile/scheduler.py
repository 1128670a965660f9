"""Single-slot timer for connect attempts.

AttemptScheduler runs at most one delayed job at a time on the event loop.
Scheduling a new job cancels one that is still armed, and shutdown() stops
the slot for good: an armed timer is cancelled at once, a job that is
already running gets a short grace period before it is cancelled.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    Job = Callable[[], Awaitable[None]]

_LOGGER = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 5.0  # seconds an in-flight job may run after shutdown()


class AttemptScheduler:
    """Delay and fire jobs one at a time."""

    def __init__(self) -> None:
        self._task: asyncio.Task[None] | None = None
        self._running_task: asyncio.Task[Any] | None = None
        self._closed = False

    def __repr__(self) -> str:
        return f"AttemptScheduler(pending={self.pending}, closed={self._closed})"

    @property
    def closed(self) -> bool:
        """Return True once shutdown() has been called."""
        return self._closed

    @property
    def pending(self) -> bool:
        """Return True if a job is armed or running."""
        return self._task is not None and not self._task.done()

    def schedule(self, delay_ms: int, job: Job) -> bool:
        """Run job after delay_ms milliseconds.

        Must be called from the event loop thread. Any job that is still
        outstanding is cancelled, unless it is the caller itself.

        Returns:
            False if the scheduler is closed and the job was dropped.
        """
        if self._closed:
            _LOGGER.debug("Scheduler closed, dropping job")
            return False

        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._fire(delay_ms, job))
        return True

    def cancel(self) -> None:
        """Cancel the outstanding job, if any."""
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()

    async def _fire(self, delay_ms: int, job: Job) -> None:
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

        self._running_task = asyncio.current_task()
        try:
            await job()
        finally:
            if self._running_task is asyncio.current_task():
                self._running_task = None

    async def shutdown(self, timeout: float = SHUTDOWN_TIMEOUT) -> None:
        """Stop scheduling and wind down the outstanding job.

        Args:
            timeout: Seconds to wait for a running job before cancelling it
        """
        self._closed = True
        task = self._task
        self._task = None

        if task is None or task.done() or task is asyncio.current_task():
            return

        if self._running_task is task:
            try:
                async with asyncio.timeout(timeout):
                    await asyncio.shield(task)
                return
            except TimeoutError:
                _LOGGER.warning("Attempt still running after %ss, cancelling", timeout)
            except Exception:
                _LOGGER.exception("Attempt failed during shutdown")
                return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

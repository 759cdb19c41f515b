"""Cancellable periodic timer on top of asyncio."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from flashsync.domain.ports import TimerHandle

logger = logging.getLogger(__name__)


class PeriodicTimer(TimerHandle):
    """
    Await ``callback`` every ``interval`` seconds until cancelled.

    Ticks never overlap: the next sleep starts after the callback returns.
    A failing callback is logged and the timer keeps running.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[object]]):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = interval
        self.callback = callback
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop(), name="flashsync-periodic-timer")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.callback()
            except Exception as e:
                logger.error(f"Periodic callback failed: {e}", exc_info=True)

    async def cancel(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

"""
Sync coordinator: drains the action queue into the remote store.

State machine:
    IDLE      -- nothing in flight; the last pass finished cleanly or never ran
    DRAINING  -- one pass is applying queued actions in id order
    BACKOFF   -- the last pass stopped at a failed action; wait for the next
                 timer tick or connectivity signal before trying again

A pass stops at the first action that cannot be applied, so a later action
for the same entity is never delivered ahead of an earlier one.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum

from flashsync.domain.constants import DEAD_LETTER_AFTER, SYNC_INTERVAL_SECONDS
from flashsync.domain.errors import PoisonActionError, StorageError
from flashsync.domain.ports import (
    ActionQueue,
    RemoteStore,
    TimerFactory,
    TimerHandle,
    dispatch_mutation,
)

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    IDLE = "idle"
    DRAINING = "draining"
    BACKOFF = "backoff"


@dataclass
class DrainReport:
    """Outcome of one drain pass."""

    trigger: str
    applied: list[int] = field(default_factory=list)
    dead_lettered: list[int] = field(default_factory=list)
    failed_id: int | None = None
    error: str | None = None
    stopped_early: bool = False

    @property
    def ok(self) -> bool:
        return self.failed_id is None and self.error is None


def _default_timer_factory(interval, callback) -> TimerHandle:
    from flashsync.infrastructure.timer import PeriodicTimer

    return PeriodicTimer(interval, callback)


class SyncCoordinator:
    """
    Applies queued mutations to the remote store, one pass at a time.

    Triggers (``on_tick``, ``on_connectivity``, ``sync_now``) return a
    DrainReport when a pass ran, or None when it was skipped: offline, a pass
    already in flight (coalesced), or shutting down.
    """

    def __init__(
        self,
        queue: ActionQueue,
        remote: RemoteStore,
        interval: float = SYNC_INTERVAL_SECONDS,
        dead_letter_after: int = DEAD_LETTER_AFTER,
        timer_factory: TimerFactory | None = None,
    ):
        """
        Args:
            queue: Durable queue to drain.
            remote: Destination store.
            interval: Seconds between timer-driven drain attempts.
            dead_letter_after: Poison attempts before an action is set aside.
            timer_factory: Builds the periodic timer; tests pass a virtual one.
        """
        if dead_letter_after < 1:
            raise ValueError("dead_letter_after must be at least 1")
        self._queue = queue
        self._remote = remote
        self.interval = interval
        self.dead_letter_after = dead_letter_after
        self._timer_factory = timer_factory or _default_timer_factory
        self._timer: TimerHandle | None = None
        self._lock = asyncio.Lock()
        self._online = True
        self._stopping = False
        self.state = SyncState.IDLE
        self.last_report: DrainReport | None = None

    @property
    def online(self) -> bool:
        return self._online

    @property
    def is_draining(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Arm the periodic timer. Must be called from a running event loop."""
        if self._timer is not None:
            return
        self._stopping = False
        self._timer = self._timer_factory(self.interval, self.on_tick)
        self._timer.start()
        logger.info(f"Sync coordinator started (interval={self.interval}s)")

    async def stop(self) -> None:
        """
        Stop dispatching and cancel the timer.

        A pass in flight finishes the action it is applying, then halts.
        """
        self._stopping = True
        async with self._lock:
            pass
        if self._timer is not None:
            await self._timer.cancel()
            self._timer = None
        logger.info("Sync coordinator stopped")

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def on_tick(self) -> DrainReport | None:
        return await self._trigger("timer")

    async def on_connectivity(self, online: bool) -> DrainReport | None:
        """Host-delivered network transition. Coming online starts a drain."""
        was_online = self._online
        self._online = online
        if not online:
            if was_online:
                logger.info("Connectivity lost; sync paused until the next online signal")
            return None
        return await self._trigger("connectivity")

    async def sync_now(self) -> DrainReport | None:
        return await self._trigger("manual")

    async def _trigger(self, reason: str) -> DrainReport | None:
        if self._stopping:
            return None
        if self._lock.locked():
            logger.debug(f"Drain already in progress; coalescing {reason} trigger")
            return None

        async with self._lock:
            if not self._online:
                logger.debug(f"Skipping {reason} drain: host reports offline")
                self.state = SyncState.IDLE
                return None
            try:
                reachable = await self._remote.is_reachable()
            except Exception as e:
                logger.warning(f"Reachability probe failed: {e}")
                reachable = False
            if not reachable:
                logger.info(f"Skipping {reason} drain: remote store unreachable")
                self.state = SyncState.IDLE
                return None

            self.state = SyncState.DRAINING
            report = DrainReport(trigger=reason)
            try:
                await self._drain(report)
            except StorageError as e:
                logger.error(f"Drain aborted by queue storage error: {e}")
                report.error = str(e)
            except Exception as e:
                logger.error(f"Drain aborted by unexpected error: {e}", exc_info=True)
                report.error = str(e) or type(e).__name__
            finally:
                self.state = SyncState.IDLE if report.ok else SyncState.BACKOFF
                self.last_report = report

            self._log_report(report)
            return report

    # ------------------------------------------------------------------
    # Drain
    # ------------------------------------------------------------------

    async def _drain(self, report: DrainReport) -> None:
        snapshot = await self._queue.list_all()

        for action in snapshot:
            if self._stopping:
                report.stopped_early = True
                logger.info(f"Shutdown requested; leaving {action.id} and later actions queued")
                return

            try:
                mutation = action.decode()
            except PoisonActionError as e:
                attempts = await self._queue.record_failure(action.id, str(e))
                if attempts >= self.dead_letter_after:
                    await self._queue.dead_letter(
                        action.id, f"undecodable after {attempts} attempts: {e}"
                    )
                    report.dead_lettered.append(action.id)
                    continue
                logger.warning(
                    f"Poison action {action.id} (attempt {attempts}/{self.dead_letter_after}): {e}"
                )
                report.failed_id = action.id
                report.error = str(e)
                return

            try:
                await dispatch_mutation(self._remote, mutation)
            except Exception as e:
                logger.error(f"Sync failed for action id={action.id} kind={action.kind}: {e}")
                await self._queue.record_failure(action.id, str(e))
                report.failed_id = action.id
                report.error = str(e)
                return

            await self._queue.remove(action.id)
            report.applied.append(action.id)

    def _log_report(self, report: DrainReport) -> None:
        if report.ok:
            if report.applied or report.dead_lettered:
                logger.info(
                    f"Drain ({report.trigger}) applied={len(report.applied)} "
                    f"dead_lettered={len(report.dead_lettered)}"
                )
            return
        logger.warning(
            f"Drain ({report.trigger}) stopped at id={report.failed_id} after "
            f"{len(report.applied)} applied; backing off: {report.error}"
        )

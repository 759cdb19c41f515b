"""
Runtime Factory
Centralizes construction of the queue, stores, remote adapter and coordinator,
and owns their open/close lifecycle.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from flashsync.application.config import AppConfig
from flashsync.application.review_service import ReviewService
from flashsync.application.stats.service import StatsService
from flashsync.application.sync_coordinator import SyncCoordinator
from flashsync.domain.ports import RemoteStore, TimerFactory
from flashsync.infrastructure.remote.http_store import HttpRemoteStore
from flashsync.infrastructure.remote.memory_store import InMemoryRemoteStore
from flashsync.infrastructure.sqlite.action_queue import SqliteActionQueue
from flashsync.infrastructure.sqlite.database import Database
from flashsync.infrastructure.sqlite.review_store import SqliteReviewStateStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    config: AppConfig
    database: Database
    queue: SqliteActionQueue
    store: SqliteReviewStateStore
    remote: RemoteStore
    coordinator: SyncCoordinator
    reviews: ReviewService
    stats: StatsService

    async def close(self) -> None:
        """Stop syncing, release the HTTP client, then flush and close the database."""
        await self.coordinator.stop()
        await self.remote.close()
        self.database.close()


def get_remote_store(config: AppConfig) -> RemoteStore:
    """
    Returns the RemoteStore implementation selected by config.
    """
    if config.remote_backend == "memory":
        return InMemoryRemoteStore()

    return HttpRemoteStore(
        url=config.remote_url,
        api_key=config.remote_api_key,
        review_table=config.review_table,
        deck_table=config.deck_table,
        timeout=config.request_timeout,
        reachability_timeout=config.reachability_timeout,
    )


def build_runtime(
    config: AppConfig,
    remote: RemoteStore | None = None,
    timer_factory: TimerFactory | None = None,
) -> Runtime:
    """Open the local database and wire every component together."""
    database = Database(config.db_path).open()
    queue = SqliteActionQueue(database).open()
    store = SqliteReviewStateStore(database).open()
    remote = remote or get_remote_store(config)

    coordinator = SyncCoordinator(
        queue,
        remote,
        interval=config.sync_interval_seconds,
        dead_letter_after=config.dead_letter_after,
        timer_factory=timer_factory,
    )
    logger.debug(f"Runtime ready (db={config.db_path}, remote={config.remote_backend})")

    return Runtime(
        config=config,
        database=database,
        queue=queue,
        store=store,
        remote=remote,
        coordinator=coordinator,
        reviews=ReviewService(store, queue),
        stats=StatsService(store, new_card_limit=config.new_card_limit),
    )


@asynccontextmanager
async def open_runtime(
    config: AppConfig,
    remote: RemoteStore | None = None,
    timer_factory: TimerFactory | None = None,
) -> AsyncIterator[Runtime]:
    runtime = build_runtime(config, remote=remote, timer_factory=timer_factory)
    try:
        yield runtime
    finally:
        await runtime.close()

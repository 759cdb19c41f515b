"""SQLite-backed ReviewStateStore, one row per (learner, card)."""

import logging
import sqlite3
from datetime import datetime

from flashsync.domain.errors import StorageError
from flashsync.domain.models import ReviewState
from flashsync.domain.ports import ReviewStateStore

from .database import Database

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS review_states (
    learner_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    ease REAL NOT NULL,
    interval_days INTEGER NOT NULL,
    repetitions INTEGER NOT NULL,
    last_reviewed_at TEXT,
    next_review_at TEXT NOT NULL,
    last_quality INTEGER,
    PRIMARY KEY (learner_id, card_id)
);
"""


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_state(row: sqlite3.Row) -> ReviewState:
    return ReviewState(
        learner_id=row["learner_id"],
        card_id=row["card_id"],
        ease=row["ease"],
        interval_days=row["interval_days"],
        repetitions=row["repetitions"],
        last_reviewed_at=_parse_ts(row["last_reviewed_at"]),
        next_review_at=_parse_ts(row["next_review_at"]),
        last_quality=row["last_quality"],
    )


class SqliteReviewStateStore(ReviewStateStore):
    def __init__(self, database: Database):
        self._db = database

    def open(self) -> "SqliteReviewStateStore":
        try:
            self._db.open()
            self._db.ensure_schema(SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open review store at {self._db.path}: {e}") from e
        return self

    async def _run(self, operation: str, work):
        try:
            return await self._db.run(work)
        except sqlite3.Error as e:
            logger.error(f"Review store {operation} failed: {e}")
            raise StorageError(f"{operation} failed: {e}") from e

    async def get(self, learner_id: str, card_id: str) -> ReviewState | None:
        def work(conn: sqlite3.Connection) -> ReviewState | None:
            row = conn.execute(
                "SELECT * FROM review_states WHERE learner_id = ? AND card_id = ?",
                (learner_id, card_id),
            ).fetchone()
            return _row_to_state(row) if row else None

        return await self._run("get", work)

    async def save(self, state: ReviewState) -> None:
        def work(conn: sqlite3.Connection) -> None:
            conn.execute(
                """
                INSERT INTO review_states (
                    learner_id, card_id, ease, interval_days, repetitions,
                    last_reviewed_at, next_review_at, last_quality
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (learner_id, card_id) DO UPDATE SET
                    ease = excluded.ease,
                    interval_days = excluded.interval_days,
                    repetitions = excluded.repetitions,
                    last_reviewed_at = excluded.last_reviewed_at,
                    next_review_at = excluded.next_review_at,
                    last_quality = excluded.last_quality
                """,
                (
                    state.learner_id,
                    state.card_id,
                    state.ease,
                    state.interval_days,
                    state.repetitions,
                    state.last_reviewed_at.isoformat() if state.last_reviewed_at else None,
                    state.next_review_at.isoformat(),
                    state.last_quality,
                ),
            )

        await self._run("save", work)

    async def list_for_learner(self, learner_id: str) -> list[ReviewState]:
        def work(conn: sqlite3.Connection) -> list[ReviewState]:
            rows = conn.execute(
                "SELECT * FROM review_states WHERE learner_id = ? ORDER BY rowid ASC",
                (learner_id,),
            )
            return [_row_to_state(row) for row in rows]

        return await self._run("list_for_learner", work)

"""
SQLite Action Queue: Infrastructure adapter for the durable mutation queue.

Implements ActionQueue on top of a WAL-mode SQLite file. Ids come from an
AUTOINCREMENT key, so they only ever grow and are never reused even after
the newest row is removed.
"""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from typing import Any

from flashsync.domain.actions import (
    CreateDeck,
    DeadLetter,
    QueuedAction,
    UpsertReviewState,
    serialize_mutation,
)
from flashsync.domain.errors import QueueStoreError
from flashsync.domain.models import utc_now
from flashsync.domain.ports import ActionQueue

from .database import Database

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS queued_actions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL,
    enqueued_at TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
);

CREATE TABLE IF NOT EXISTS dead_letters (
    id INTEGER PRIMARY KEY,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL,
    enqueued_at TEXT NOT NULL,
    attempts INTEGER NOT NULL,
    last_error TEXT,
    reason TEXT NOT NULL,
    dead_lettered_at TEXT NOT NULL
);
"""

_COLUMNS = "id, kind, payload, enqueued_at, attempts, last_error"
_UNKNOWN_TIME = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _load_payload(raw: str) -> dict[str, Any]:
    """Parse a stored payload; corrupt text is kept so decode() flags it as poison."""
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {"_corrupt": raw}
    if not isinstance(value, dict):
        return {"_corrupt": raw}
    return value


def _row_to_action(row: sqlite3.Row) -> QueuedAction:
    """
    Map a stored row to a QueuedAction.

    Rows with unreadable metadata still load: the timestamp falls back to the
    epoch and the payload is marked corrupt, so decode() reports the row as
    poison and the dead-letter policy can move it out of the way.
    """
    payload = _load_payload(row["payload"])
    attempts = row["attempts"]
    if isinstance(attempts, bool) or not isinstance(attempts, int):
        attempts = 0
        payload = {"_corrupt": row["payload"]}
    try:
        enqueued_at = datetime.fromisoformat(row["enqueued_at"])
    except (TypeError, ValueError):
        logger.warning(f"[queue] id={row['id']} has unreadable enqueued_at; treating as poison")
        enqueued_at = _UNKNOWN_TIME
        payload = {"_corrupt": row["payload"]}
    return QueuedAction(
        id=row["id"],
        kind=row["kind"],
        payload=payload,
        enqueued_at=enqueued_at,
        attempts=attempts,
        last_error=row["last_error"],
    )


class SqliteActionQueue(ActionQueue):
    """
    Durable FIFO of pending remote mutations.

    Lifecycle: ``open()`` creates the schema, ``close()`` flushes the WAL and
    releases the file. Works as a context manager. The queue does not own a
    shared Database; closing it only closes a database it opened itself.
    """

    def __init__(self, database: Database):
        self._db = database
        self._owns_db = False

    @classmethod
    def at_path(cls, path) -> "SqliteActionQueue":
        queue = cls(Database(path))
        queue._owns_db = True
        return queue

    def open(self) -> "SqliteActionQueue":
        try:
            self._db.open()
            self._db.ensure_schema(SCHEMA)
        except sqlite3.Error as e:
            raise QueueStoreError(f"Cannot open action queue at {self._db.path}: {e}") from e
        return self

    def close(self) -> None:
        if self._owns_db:
            self._db.close()

    def __enter__(self) -> "SqliteActionQueue":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    async def _run(self, operation: str, work):
        try:
            return await self._db.run(work)
        except sqlite3.Error as e:
            logger.error(f"Action queue {operation} failed: {e}")
            raise QueueStoreError(f"{operation} failed: {e}") from e

    async def enqueue(self, mutation: UpsertReviewState | CreateDeck) -> int:
        kind, payload = serialize_mutation(mutation)
        enqueued_at = utc_now().isoformat()

        def work(conn: sqlite3.Connection) -> int:
            cur = conn.execute(
                "INSERT INTO queued_actions (kind, payload, enqueued_at) VALUES (?, ?, ?)",
                (kind, json.dumps(payload), enqueued_at),
            )
            return int(cur.lastrowid)

        action_id = await self._run("enqueue", work)
        logger.debug(f"[queue] enqueued id={action_id} kind={kind}")
        return action_id

    async def list_all(self) -> list[QueuedAction]:
        def work(conn: sqlite3.Connection) -> list[QueuedAction]:
            rows = conn.execute(f"SELECT {_COLUMNS} FROM queued_actions ORDER BY id ASC")
            return [_row_to_action(row) for row in rows]

        return await self._run("list_all", work)

    async def count(self) -> int:
        def work(conn: sqlite3.Connection) -> int:
            return conn.execute("SELECT COUNT(*) FROM queued_actions").fetchone()[0]

        return await self._run("count", work)

    async def remove(self, action_id: int) -> None:
        def work(conn: sqlite3.Connection) -> None:
            conn.execute("DELETE FROM queued_actions WHERE id = ?", (action_id,))

        await self._run("remove", work)

    async def record_failure(self, action_id: int, error: str) -> int:
        def work(conn: sqlite3.Connection) -> int:
            conn.execute(
                "UPDATE queued_actions SET attempts = attempts + 1, last_error = ? WHERE id = ?",
                (error, action_id),
            )
            row = conn.execute(
                "SELECT attempts FROM queued_actions WHERE id = ?", (action_id,)
            ).fetchone()
            return row["attempts"] if row else 0

        return await self._run("record_failure", work)

    async def dead_letter(self, action_id: int, reason: str) -> None:
        dead_lettered_at = utc_now().isoformat()

        def work(conn: sqlite3.Connection) -> None:
            conn.execute(
                f"INSERT OR REPLACE INTO dead_letters ({_COLUMNS}, reason, dead_lettered_at) "
                f"SELECT {_COLUMNS}, ?, ? FROM queued_actions WHERE id = ?",
                (reason, dead_lettered_at, action_id),
            )
            conn.execute("DELETE FROM queued_actions WHERE id = ?", (action_id,))

        await self._run("dead_letter", work)
        logger.warning(f"[queue] dead-lettered id={action_id}: {reason}")

    async def list_dead_letters(self) -> list[DeadLetter]:
        def work(conn: sqlite3.Connection) -> list[DeadLetter]:
            rows = conn.execute(
                f"SELECT {_COLUMNS}, reason, dead_lettered_at FROM dead_letters ORDER BY id ASC"
            )
            return [
                DeadLetter(
                    action=_row_to_action(row),
                    reason=row["reason"],
                    dead_lettered_at=datetime.fromisoformat(row["dead_lettered_at"]),
                )
                for row in rows
            ]

        return await self._run("list_dead_letters", work)

    async def requeue_dead_letter(self, action_id: int) -> int:
        enqueued_at = utc_now().isoformat()

        def work(conn: sqlite3.Connection) -> int | None:
            row = conn.execute(
                "SELECT kind, payload FROM dead_letters WHERE id = ?", (action_id,)
            ).fetchone()
            if row is None:
                return None
            cur = conn.execute(
                "INSERT INTO queued_actions (kind, payload, enqueued_at) VALUES (?, ?, ?)",
                (row["kind"], row["payload"], enqueued_at),
            )
            conn.execute("DELETE FROM dead_letters WHERE id = ?", (action_id,))
            return int(cur.lastrowid)

        new_id = await self._run("requeue_dead_letter", work)
        if new_id is None:
            raise KeyError(f"No dead letter with id {action_id}")
        logger.info(f"[queue] requeued dead letter {action_id} as id={new_id}")
        return new_id

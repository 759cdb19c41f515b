"""SQLite connection management shared by the local stores."""

import asyncio
import logging
import sqlite3
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class Database:
    """
    One SQLite file opened in WAL mode with full fsync on commit.

    Work is funnelled through ``run`` so every unit executes in its own
    transaction, one at a time, on a worker thread.
    """

    def __init__(self, path: Path | str):
        """
        Args:
            path: Database file, or ":memory:" for a throwaway database.
        """
        self.path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def open(self) -> "Database":
        if self._conn is not None:
            return self
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=FULL")
        self._conn = conn
        logger.debug(f"Opened database {self.path}")
        return self

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            except sqlite3.Error as e:
                logger.warning(f"WAL checkpoint failed on close: {e}")
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed database {self.path}")

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "Database":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def ensure_schema(self, script: str) -> None:
        self.execute(lambda conn: conn.executescript(script))

    def execute(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``work`` inside a transaction; commits on success, rolls back on error."""
        with self._lock:
            if self._conn is None:
                raise sqlite3.ProgrammingError(f"Database {self.path} is not open")
            with self._conn:
                return work(self._conn)

    async def run(self, work: Callable[[sqlite3.Connection], T]) -> T:
        """Async wrapper around ``execute`` that keeps the event loop free."""
        return await asyncio.to_thread(self.execute, work)

# Infrastructure SQLite Package
from .action_queue import SqliteActionQueue
from .database import Database
from .review_store import SqliteReviewStateStore

__all__ = ["Database", "SqliteActionQueue", "SqliteReviewStateStore"]

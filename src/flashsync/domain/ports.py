"""
Ports (interfaces) for persistence and the remote store.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable

from .actions import (
    CreateDeck,
    DeadLetter,
    DeckPayload,
    QueuedAction,
    ReviewStatePayload,
    UpsertReviewState,
)
from .models import ReviewState


class ActionQueue(ABC):
    """
    Durable, ordered, at-least-once mailbox of pending remote mutations.

    Implementations:
        - SqliteActionQueue: SQLite file with WAL journaling.
    """

    @abstractmethod
    async def enqueue(self, mutation: UpsertReviewState | CreateDeck) -> int:
        """
        Persist a mutation and assign it the next sequence number.

        Returns only after the write is durable.

        Raises:
            QueueStoreError: The write did not reach storage.
        """

    @abstractmethod
    async def list_all(self) -> list[QueuedAction]:
        """Current contents ordered by id."""

    @abstractmethod
    async def count(self) -> int:
        pass

    @abstractmethod
    async def remove(self, action_id: int) -> None:
        """Delete an action. Removing an unknown id is a no-op."""

    @abstractmethod
    async def record_failure(self, action_id: int, error: str) -> int:
        """Bump the attempt counter and return the new count."""

    @abstractmethod
    async def dead_letter(self, action_id: int, reason: str) -> None:
        """Move an action out of the queue into the dead-letter store."""

    @abstractmethod
    async def list_dead_letters(self) -> list[DeadLetter]:
        pass

    @abstractmethod
    async def requeue_dead_letter(self, action_id: int) -> int:
        """Put a dead letter back at the tail of the queue under a new id."""


class ReviewStateStore(ABC):
    """Local persistence of ReviewState records, one per (learner, card)."""

    @abstractmethod
    async def get(self, learner_id: str, card_id: str) -> ReviewState | None:
        pass

    @abstractmethod
    async def save(self, state: ReviewState) -> None:
        pass

    @abstractmethod
    async def list_for_learner(self, learner_id: str) -> list[ReviewState]:
        pass


class RemoteStore(ABC):
    """
    Remote datastore the sync coordinator applies mutations to.

    Every operation must be idempotent on the remote side: the queue only
    guarantees at-least-once delivery.

    Implementations:
        - HttpRemoteStore: PostgREST-style REST API over httpx.
        - InMemoryRemoteStore: dict-backed, for tests and offline demos.
    """

    @abstractmethod
    async def is_reachable(self) -> bool:
        pass

    @abstractmethod
    async def upsert_review_state(self, payload: ReviewStatePayload) -> None:
        pass

    @abstractmethod
    async def create_deck(self, payload: DeckPayload) -> None:
        pass

    async def close(self) -> None:
        return None


async def dispatch_mutation(remote: RemoteStore, mutation: UpsertReviewState | CreateDeck) -> None:
    """Route a typed mutation to the matching remote operation."""
    if isinstance(mutation, UpsertReviewState):
        await remote.upsert_review_state(mutation.payload)
    elif isinstance(mutation, CreateDeck):
        await remote.create_deck(mutation.payload)
    else:
        raise TypeError(f"Unhandled mutation kind: {type(mutation).__name__}")


class TimerHandle(ABC):
    """A cancellable periodic task."""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    async def cancel(self) -> None:
        pass


TimerFactory = Callable[[float, Callable[[], Awaitable[object]]], TimerHandle]

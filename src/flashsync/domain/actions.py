"""
Mutations destined for the remote store.

A Mutation is a closed tagged union keyed by ``kind``: every supported
mutation is listed in ``ActionKind`` and in the ``Mutation`` union, so adding
a new kind is an explicit change in both places plus ``dispatch_mutation``.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from ulid import ULID

from .constants import MAX_EASE, MAX_QUALITY, MIN_EASE, MIN_QUALITY
from .errors import PoisonActionError
from .models import ReviewState, utc_now


class ActionKind(str, Enum):
    UPSERT_REVIEW_STATE = "upsert_review_state"
    CREATE_DECK = "create_deck"


def generate_deck_id() -> str:
    """Generate a stable deck ID using ULID."""
    return f"deck_{ULID()}"


class ReviewStatePayload(BaseModel):
    """Full scheduling record; applying it twice is the same as applying it once."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    learner_id: str = Field(min_length=1)
    card_id: str = Field(min_length=1)
    ease: float = Field(ge=MIN_EASE, le=MAX_EASE)
    interval_days: int = Field(ge=0)
    repetitions: int = Field(ge=0)
    last_reviewed_at: datetime | None = None
    next_review_at: datetime
    last_quality: int | None = Field(default=None, ge=MIN_QUALITY, le=MAX_QUALITY)

    @classmethod
    def from_state(cls, state: ReviewState) -> "ReviewStatePayload":
        return cls(
            learner_id=state.learner_id,
            card_id=state.card_id,
            ease=state.ease,
            interval_days=state.interval_days,
            repetitions=state.repetitions,
            last_reviewed_at=state.last_reviewed_at,
            next_review_at=state.next_review_at,
            last_quality=state.last_quality,
        )

    def to_state(self) -> ReviewState:
        return ReviewState(**self.model_dump())


class DeckPayload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    deck_id: str = Field(default_factory=generate_deck_id)
    learner_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    created_at: datetime = Field(default_factory=utc_now)


class UpsertReviewState(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["upsert_review_state"] = ActionKind.UPSERT_REVIEW_STATE.value
    payload: ReviewStatePayload


class CreateDeck(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["create_deck"] = ActionKind.CREATE_DECK.value
    payload: DeckPayload


Mutation = Annotated[UpsertReviewState | CreateDeck, Field(discriminator="kind")]

MUTATION_ADAPTER: TypeAdapter[UpsertReviewState | CreateDeck] = TypeAdapter(Mutation)


def serialize_mutation(mutation: UpsertReviewState | CreateDeck) -> tuple[str, dict[str, Any]]:
    """Split a mutation into its persisted (kind, payload) columns."""
    return mutation.kind, mutation.payload.model_dump(mode="json")


@dataclass(frozen=True)
class QueuedAction:
    """
    A persisted mutation waiting for remote confirmation.

    Attributes:
        id: Local sequence number; defines replay order and is never reused.
        kind: Stored tag, kept raw so corrupt rows can still be listed.
        payload: Stored JSON payload.
        enqueued_at: When the action was first accepted.
        attempts: Failed delivery attempts so far.
        last_error: Message of the most recent failure.
    """

    id: int
    kind: str
    payload: dict[str, Any]
    enqueued_at: datetime
    attempts: int = 0
    last_error: str | None = None

    def decode(self) -> UpsertReviewState | CreateDeck:
        """Validate the stored row back into a typed mutation."""
        try:
            return MUTATION_ADAPTER.validate_python({"kind": self.kind, "payload": self.payload})
        except ValidationError as e:
            raise PoisonActionError(
                self.id, f"cannot decode kind={self.kind!r}: {e.error_count()} error(s)"
            ) from e


@dataclass(frozen=True)
class DeadLetter:
    """A queued action set aside for manual inspection."""

    action: QueuedAction
    reason: str
    dead_lettered_at: datetime

"""
Domain models for review scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from .constants import DEFAULT_EASE, MAX_EASE, MAX_QUALITY, MIN_EASE, MIN_QUALITY
from .errors import InvalidReviewOutcomeError, InvalidReviewStateError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ReviewState:
    """
    Scheduling record for one (learner, card) pair.

    Attributes:
        learner_id: Owner of the record.
        card_id: The card being scheduled.
        ease: Retention multiplier, always within [MIN_EASE, MAX_EASE].
        interval_days: Days between last_reviewed_at and next_review_at.
        repetitions: Consecutive successful reviews since the last lapse.
        next_review_at: When the card is due again.
        last_reviewed_at: None until the first review.
        last_quality: Grade (0-5) of the most recent review, None until reviewed.
    """

    learner_id: str
    card_id: str
    ease: float = DEFAULT_EASE
    interval_days: int = 0
    repetitions: int = 0
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None
    last_quality: int | None = None

    def __post_init__(self):
        if not MIN_EASE <= self.ease <= MAX_EASE:
            raise InvalidReviewStateError(
                f"ease {self.ease} outside [{MIN_EASE}, {MAX_EASE}]"
            )
        if self.interval_days < 0:
            raise InvalidReviewStateError(f"interval_days {self.interval_days} is negative")
        if self.repetitions < 0:
            raise InvalidReviewStateError(f"repetitions {self.repetitions} is negative")
        if self.last_quality is not None and not (
            MIN_QUALITY <= self.last_quality <= MAX_QUALITY
        ):
            raise InvalidReviewStateError(f"last_quality {self.last_quality} outside 0..5")
        if self.next_review_at is None:
            # Never-scheduled cards are due from the moment they exist.
            object.__setattr__(self, "next_review_at", utc_now())

    @classmethod
    def new(cls, learner_id: str, card_id: str, now: datetime | None = None) -> "ReviewState":
        """First-exposure record: due immediately, default ease, no history."""
        return cls(learner_id=learner_id, card_id=card_id, next_review_at=now or utc_now())

    @property
    def is_new(self) -> bool:
        return self.repetitions == 0


@dataclass(frozen=True)
class ReviewOutcome:
    """
    Raw result of showing a card, as reported by the presentation layer.

    Attributes:
        card_id: The reviewed card.
        correct: Whether the learner recalled it.
        elapsed_ms: Time taken to answer in milliseconds.
    """

    card_id: str
    correct: bool
    elapsed_ms: int = 0

    def __post_init__(self):
        if self.elapsed_ms < 0:
            raise InvalidReviewOutcomeError(f"elapsed_ms {self.elapsed_ms} is negative")

    @property
    def elapsed_seconds(self) -> float:
        return self.elapsed_ms / 1000.0

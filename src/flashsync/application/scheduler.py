"""
SM-2 review scheduler.

This is a pure computation module with no I/O: identical inputs always
produce identical outputs, so queued upserts can be replayed safely.
"""

from dataclasses import replace
from datetime import datetime, timedelta

from flashsync.application.quality import QualityPolicy, TimeBasedQualityPolicy
from flashsync.application.utils.rounding import round_half_up_int
from flashsync.domain.constants import (
    FIRST_INTERVAL_DAYS,
    LAPSE_EASE_PENALTY,
    MAX_EASE,
    MAX_INTERVAL_DAYS,
    MAX_QUALITY,
    MIN_EASE,
    MIN_QUALITY,
    PASSING_QUALITY,
    SECOND_INTERVAL_DAYS,
)
from flashsync.domain.errors import InvalidQualityError, InvalidReviewOutcomeError
from flashsync.domain.models import ReviewOutcome, ReviewState

_DEFAULT_POLICY = TimeBasedQualityPolicy()


def validate_quality(quality: object) -> int:
    """Reject anything that is not an int grade in 0..5. Never clamps."""
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise InvalidQualityError(f"quality must be an int, got {type(quality).__name__}")
    if not MIN_QUALITY <= quality <= MAX_QUALITY:
        raise InvalidQualityError(f"quality {quality} outside {MIN_QUALITY}..{MAX_QUALITY}")
    return quality


def _clamp_ease(ease: float) -> float:
    return min(MAX_EASE, max(MIN_EASE, ease))


def compute_next_state(state: ReviewState, quality: int, now: datetime) -> ReviewState:
    """
    Compute the scheduling record that follows a graded review.

    quality >= 3 (recalled):
        ease += 0.1 - (5-q) * (0.08 + (5-q) * 0.02)
        interval: 1 on the first success, 6 on the second, then round(interval * ease)
    quality < 3 (lapse):
        ease -= 0.2, interval = 1, repetitions = 0

    Ease is kept within [1.3, 5.0] and the interval never exceeds MAX_INTERVAL_DAYS.

    Raises:
        InvalidQualityError: quality is not an int in 0..5.
    """
    quality = validate_quality(quality)

    if quality >= PASSING_QUALITY:
        miss = MAX_QUALITY - quality
        new_ease = _clamp_ease(state.ease + (0.1 - miss * (0.08 + miss * 0.02)))

        if state.repetitions == 0:
            new_interval = FIRST_INTERVAL_DAYS
        elif state.repetitions == 1:
            new_interval = SECOND_INTERVAL_DAYS
        else:
            new_interval = min(
                MAX_INTERVAL_DAYS, max(0, round_half_up_int(state.interval_days * new_ease))
            )

        new_repetitions = state.repetitions + 1
    else:
        new_ease = _clamp_ease(state.ease - LAPSE_EASE_PENALTY)
        new_interval = FIRST_INTERVAL_DAYS
        new_repetitions = 0

    return replace(
        state,
        ease=new_ease,
        interval_days=new_interval,
        repetitions=new_repetitions,
        last_reviewed_at=now,
        next_review_at=now + timedelta(days=new_interval),
        last_quality=quality,
    )


def process_review(
    state: ReviewState,
    outcome: ReviewOutcome,
    now: datetime,
    policy: QualityPolicy | None = None,
) -> ReviewState:
    """Grade a raw outcome with ``policy`` and schedule the card accordingly."""
    if outcome.card_id != state.card_id:
        raise InvalidReviewOutcomeError(
            f"outcome for card {outcome.card_id!r} applied to state of {state.card_id!r}"
        )
    quality = (policy or _DEFAULT_POLICY)(outcome)
    return compute_next_state(state, quality, now)

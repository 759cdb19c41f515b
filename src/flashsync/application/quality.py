"""
Quality policies: how a raw review outcome becomes an SM-2 grade (0-5).

The time-based mapping below is a heuristic, not part of the scheduling
algorithm. Swap it by passing any callable with the QualityPolicy shape to
``process_review`` or ``ReviewService``.
"""

import logging
from collections.abc import Callable
from typing import Protocol

from flashsync.application.utils.rounding import round_half_up_int
from flashsync.domain.constants import (
    MAX_QUALITY,
    MIN_CORRECT_QUALITY,
    MIN_QUALITY,
    SECONDS_PER_QUALITY_STEP,
)
from flashsync.domain.models import ReviewOutcome

logger = logging.getLogger(__name__)


class QualityPolicy(Protocol):
    def __call__(self, outcome: ReviewOutcome) -> int: ...


class TimeBasedQualityPolicy:
    """
    Grade correct answers by speed.

    incorrect -> 0. correct -> round(5 - seconds / step), kept within [1, 5]
    so any correct answer still counts as progress.
    """

    def __init__(self, seconds_per_step: float = SECONDS_PER_QUALITY_STEP):
        if seconds_per_step <= 0:
            raise ValueError("seconds_per_step must be positive")
        self.seconds_per_step = seconds_per_step

    def __call__(self, outcome: ReviewOutcome) -> int:
        if not outcome.correct:
            return MIN_QUALITY
        raw = MAX_QUALITY - outcome.elapsed_seconds / self.seconds_per_step
        return max(MIN_CORRECT_QUALITY, min(MAX_QUALITY, round_half_up_int(raw)))


Advisor = Callable[[ReviewOutcome], int | None]


class AdvisedQualityPolicy:
    """
    Let an optional advisory signal (e.g. a model-graded answer) refine the grade.

    The advisor returns a 0-5 hint or None. Incorrect answers always grade 0,
    and a correct answer never grades below 1. A missing, invalid or failing
    advisor leaves the base policy's grade untouched.
    """

    def __init__(self, base: QualityPolicy | None = None, advisor: Advisor | None = None):
        self.base = base or TimeBasedQualityPolicy()
        self.advisor = advisor

    def __call__(self, outcome: ReviewOutcome) -> int:
        quality = self.base(outcome)
        if self.advisor is None or not outcome.correct:
            return quality

        try:
            hint = self.advisor(outcome)
        except Exception as e:
            logger.warning(f"Quality advisor failed for card={outcome.card_id}: {e}")
            return quality

        if hint is None:
            return quality
        if isinstance(hint, bool) or not isinstance(hint, int) or not (
            MIN_QUALITY <= hint <= MAX_QUALITY
        ):
            logger.warning(f"Ignoring out-of-range advisory quality {hint!r}")
            return quality
        return max(MIN_CORRECT_QUALITY, hint)

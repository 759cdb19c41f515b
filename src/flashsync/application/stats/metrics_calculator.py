"""
Metrics calculator for deriving insights from scheduling records.

This is a pure computation module with no I/O.
"""

from collections.abc import Sequence
from datetime import datetime, timedelta

from flashsync.application.utils.rounding import round_half_up, round_half_up_int
from flashsync.domain.constants import (
    BASE_SECONDS_PER_CARD,
    DEFAULT_AVERAGE_DIFFICULTY,
    DEFAULT_NEW_CARD_LIMIT,
    LEARNING_REPETITIONS,
    LONG_INTERVAL_DAYS,
    MASTERY_EASE,
    MASTERY_INTERVAL_BONUS,
    MASTERY_INTERVAL_BONUS_DAYS,
    MASTERY_REPETITIONS,
    MAX_EASE,
    MIN_EASE,
    NEW_CARD_DIFFICULTY,
    PASSING_QUALITY,
    RETENTION_WINDOW_DAYS,
    SECONDS_PER_DIFFICULTY,
)
from flashsync.domain.models import ReviewState
from flashsync.domain.stats.models import LearningStats, SessionEstimate


class MetricsCalculator:
    """
    Computes derived metrics from raw ReviewState records.

    Stateless and side-effect free.
    """

    def due_cards(self, states: Sequence[ReviewState], now: datetime) -> list[ReviewState]:
        """States whose next review is at or before ``now``, in input order."""
        return [s for s in states if s.next_review_at <= now]

    def new_cards(
        self, states: Sequence[ReviewState], limit: int = DEFAULT_NEW_CARD_LIMIT
    ) -> list[ReviewState]:
        """First ``limit`` never-passed states, in input order."""
        if limit <= 0:
            return []
        return [s for s in states if s.repetitions == 0][:limit]

    def difficulty(self, state: ReviewState) -> float:
        """
        Map ease inversely onto a 1-5 scale (1 = easy, 5 = hard).

        New cards read as 2, young cards get 0.5 off, long intervals get 0.5 on.
        """
        value = 5 - (state.ease - MIN_EASE) / (MAX_EASE - MIN_EASE) * 4

        if state.repetitions == 0:
            value = NEW_CARD_DIFFICULTY
        elif state.repetitions < LEARNING_REPETITIONS:
            value = max(1.0, value - 0.5)

        if state.interval_days > LONG_INTERVAL_DAYS:
            value = min(5.0, value + 0.5)

        return max(1.0, min(5.0, round_half_up(value, 1)))

    def is_mastered(self, state: ReviewState) -> bool:
        return state.repetitions >= MASTERY_REPETITIONS and state.ease >= MASTERY_EASE

    def mastery(self, state: ReviewState) -> int:
        """
        Staged 0-100 mastery score.

        - untouched: 0
        - 1-2 repetitions: 30 + 15 * repetitions
        - 3+ repetitions: 60 + 20 * (ease - 1.3)
        - mastered (5+ repetitions, ease >= 2.5): 90 + 4 * (ease - 2.5)
        - +10 when the interval exceeds a week, capped at 100
        """
        if self.is_mastered(state):
            score = 90 + (state.ease - MASTERY_EASE) * 4
        elif state.repetitions >= LEARNING_REPETITIONS:
            score = 60 + (state.ease - MIN_EASE) * 20
        elif state.repetitions >= 1:
            score = 30 + state.repetitions * 15
        else:
            score = 0

        if state.interval_days > MASTERY_INTERVAL_BONUS_DAYS:
            score = min(100, score + MASTERY_INTERVAL_BONUS)

        return max(0, min(100, round_half_up_int(score)))

    def average_difficulty(self, states: Sequence[ReviewState]) -> float:
        if not states:
            return DEFAULT_AVERAGE_DIFFICULTY
        return sum(self.difficulty(s) for s in states) / len(states)

    def session_estimate(
        self,
        states: Sequence[ReviewState],
        now: datetime,
        new_limit: int = DEFAULT_NEW_CARD_LIMIT,
    ) -> SessionEstimate:
        """
        Count due and new cards and estimate study time.

        Each card costs 15s at average difficulty 1 up to 35s at 5.
        """
        due = self.due_cards(states, now)
        new = self.new_cards(states, new_limit)

        seconds_per_card = (
            BASE_SECONDS_PER_CARD
            + (self.average_difficulty(states) - 1) * SECONDS_PER_DIFFICULTY
        )
        total_seconds = (len(due) + len(new)) * seconds_per_card

        return SessionEstimate(
            new_cards=len(new),
            review_cards=len(due),
            estimated_minutes=round_half_up_int(total_seconds / 60),
        )

    def retention_rate(self, states: Sequence[ReviewState], now: datetime) -> float:
        """Fraction of cards reviewed in the last week whose last grade passed."""
        window_start = now - timedelta(days=RETENTION_WINDOW_DAYS)
        recent = [
            s
            for s in states
            if s.last_reviewed_at is not None and window_start <= s.last_reviewed_at <= now
        ]
        if not recent:
            return 0.0
        passed = sum(
            1 for s in recent if s.last_quality is not None and s.last_quality >= PASSING_QUALITY
        )
        return passed / len(recent)

    def aggregate_stats(self, states: Sequence[ReviewState], now: datetime) -> LearningStats:
        total = len(states)
        new_count = sum(1 for s in states if s.repetitions == 0)
        mastered = sum(1 for s in states if self.is_mastered(s))

        average_ease = sum(s.ease for s in states) / total if total else 0.0
        average_interval = sum(s.interval_days for s in states) / total if total else 0.0

        return LearningStats(
            total_cards=total,
            new_cards=new_count,
            learning_cards=total - new_count - mastered,
            mastered_cards=mastered,
            average_ease=round_half_up(average_ease, 2),
            average_interval=round_half_up(average_interval, 1),
            retention_rate=self.retention_rate(states, now),
        )

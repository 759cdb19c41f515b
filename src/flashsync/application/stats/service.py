"""
Learning Stats Service: Application layer orchestrator.

Coordinates loading a learner's scheduling records and deriving metrics from them.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from flashsync.domain.constants import DEFAULT_NEW_CARD_LIMIT
from flashsync.domain.models import ReviewState, utc_now
from flashsync.domain.ports import ReviewStateStore
from flashsync.domain.stats.models import LearningStats, SessionEstimate

from .metrics_calculator import MetricsCalculator

logger = logging.getLogger(__name__)


class StatsService:
    """
    Application service for due-card selection and learning statistics.

    Follows Dependency Inversion: depends on the ReviewStateStore abstraction,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        store: ReviewStateStore,
        calculator: MetricsCalculator | None = None,
        clock: Callable[[], datetime] = utc_now,
        new_card_limit: int = DEFAULT_NEW_CARD_LIMIT,
    ):
        """
        Args:
            store: The repository (port) for scheduling records.
            calculator: Optional custom calculator; uses default if not provided.
            clock: Source of "now"; injectable for tests.
            new_card_limit: New cards offered per session.
        """
        self._store = store
        self._calc = calculator or MetricsCalculator()
        self._clock = clock
        self._new_card_limit = new_card_limit

    async def get_due_cards(self, learner_id: str) -> list[ReviewState]:
        """Due cards, most overdue first."""
        states = await self._store.list_for_learner(learner_id)
        due = self._calc.due_cards(states, self._clock())
        return sorted(due, key=lambda s: s.next_review_at)

    async def get_new_cards(self, learner_id: str) -> list[ReviewState]:
        states = await self._store.list_for_learner(learner_id)
        return self._calc.new_cards(states, self._new_card_limit)

    async def get_session_estimate(self, learner_id: str) -> SessionEstimate:
        states = await self._store.list_for_learner(learner_id)
        return self._calc.session_estimate(states, self._clock(), self._new_card_limit)

    async def get_learning_stats(self, learner_id: str) -> LearningStats:
        states = await self._store.list_for_learner(learner_id)
        logger.debug(f"Computing stats for learner={learner_id} over {len(states)} cards")
        return self._calc.aggregate_stats(states, self._clock())

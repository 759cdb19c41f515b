"""
Review flow: schedule a card, queue the change for sync, then save it locally.

The mutation is queued before the local write so that a review reported as
saved is always on its way to the remote store. If the queue write fails the
error propagates and nothing is saved.
"""

import asyncio
import logging
import weakref
from collections.abc import Callable
from datetime import datetime

from flashsync.application.quality import QualityPolicy, TimeBasedQualityPolicy
from flashsync.application.scheduler import process_review
from flashsync.domain.actions import (
    CreateDeck,
    DeckPayload,
    ReviewStatePayload,
    UpsertReviewState,
)
from flashsync.domain.models import ReviewOutcome, ReviewState, utc_now
from flashsync.domain.ports import ActionQueue, ReviewStateStore

logger = logging.getLogger(__name__)


class ReviewService:
    def __init__(
        self,
        store: ReviewStateStore,
        queue: ActionQueue,
        quality_policy: QualityPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._queue = queue
        self._policy = quality_policy or TimeBasedQualityPolicy()
        self._clock = clock
        self._card_locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _card_lock(self, learner_id: str, card_id: str) -> asyncio.Lock:
        key = (learner_id, card_id)
        lock = self._card_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._card_locks[key] = lock
        return lock

    async def get_or_create_state(self, learner_id: str, card_id: str) -> ReviewState:
        state = await self._store.get(learner_id, card_id)
        if state is None:
            state = ReviewState.new(learner_id, card_id, now=self._clock())
        return state

    async def record_review(self, learner_id: str, outcome: ReviewOutcome) -> ReviewState:
        """
        Apply a review outcome and persist the result.

        Reviews of the same card are applied one at a time, so each starts
        from the state the previous one saved.

        Raises:
            InvalidReviewOutcomeError / InvalidQualityError: Bad input.
            QueueStoreError: The sync queue could not record the change.
            StorageError: The local store write failed (the change is still queued).
        """
        async with self._card_lock(learner_id, outcome.card_id):
            state = await self.get_or_create_state(learner_id, outcome.card_id)
            new_state = process_review(state, outcome, now=self._clock(), policy=self._policy)

            action_id = await self._queue.enqueue(
                UpsertReviewState(payload=ReviewStatePayload.from_state(new_state))
            )
            await self._store.save(new_state)

        logger.info(
            f"[review] learner={learner_id} card={outcome.card_id} "
            f"quality={new_state.last_quality} interval={new_state.interval_days}d "
            f"queued={action_id}"
        )
        return new_state

    async def create_deck(
        self, learner_id: str, name: str, description: str | None = None
    ) -> DeckPayload:
        """Queue creation of a deck; returns the payload with its generated id."""
        payload = DeckPayload(
            learner_id=learner_id, name=name, description=description, created_at=self._clock()
        )
        action_id = await self._queue.enqueue(CreateDeck(payload=payload))
        logger.info(f"[deck] learner={learner_id} deck={payload.deck_id} queued={action_id}")
        return payload

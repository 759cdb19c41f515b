import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from flashsync.application.review_service import ReviewService
from flashsync.application.sync_coordinator import SyncCoordinator
from flashsync.domain.actions import CreateDeck, UpsertReviewState
from flashsync.domain.errors import InvalidReviewOutcomeError, QueueStoreError
from flashsync.domain.models import ReviewOutcome, ReviewState
from flashsync.infrastructure.sqlite import Database, SqliteActionQueue, SqliteReviewStateStore


@pytest.fixture
def database(db_path):
    db = Database(db_path).open()
    yield db
    db.close()


@pytest.fixture
def local(database):
    return SqliteReviewStateStore(database).open()


@pytest.fixture
def shared_queue(database):
    return SqliteActionQueue(database).open()


@pytest.fixture
def service(local, shared_queue, now):
    return ReviewService(local, shared_queue, clock=lambda: now)


@pytest.mark.asyncio
async def test_first_review_creates_state_and_queues_upsert(service, local, shared_queue, now):
    state = await service.record_review(
        "learner-1", ReviewOutcome(card_id="card-1", correct=True, elapsed_ms=10_000)
    )

    assert state.repetitions == 1
    assert state.interval_days == 1
    assert state.last_quality == 4
    assert state.next_review_at == now + timedelta(days=1)
    assert await local.get("learner-1", "card-1") == state

    [action] = await shared_queue.list_all()
    mutation = action.decode()
    assert isinstance(mutation, UpsertReviewState)
    assert mutation.payload.to_state() == state


@pytest.mark.asyncio
async def test_subsequent_review_builds_on_saved_state(service, local):
    outcome = ReviewOutcome(card_id="card-1", correct=True, elapsed_ms=0)
    await service.record_review("learner-1", outcome)
    second = await service.record_review("learner-1", outcome)

    assert second.repetitions == 2
    assert second.interval_days == 6
    assert second.ease == pytest.approx(2.7)


@pytest.mark.asyncio
async def test_every_review_is_queued_in_order(service, shared_queue):
    for correct in (True, True, False):
        await service.record_review("learner-1", ReviewOutcome(card_id="card-1", correct=correct))

    actions = await shared_queue.list_all()
    assert [a.decode().payload.repetitions for a in actions] == [1, 2, 0]


@pytest.mark.asyncio
async def test_queue_failure_propagates_and_skips_local_save(now):
    store = AsyncMock()
    store.get.return_value = None
    queue = AsyncMock()
    queue.enqueue.side_effect = QueueStoreError("disk full")
    service = ReviewService(store, queue, clock=lambda: now)

    with pytest.raises(QueueStoreError):
        await service.record_review("learner-1", ReviewOutcome(card_id="card-1", correct=True))

    store.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_invalid_outcome_touches_nothing(now):
    store = AsyncMock()
    store.get.return_value = ReviewState.new("learner-1", "card-1", now=now)
    queue = AsyncMock()
    service = ReviewService(store, queue, clock=lambda: now)

    with pytest.raises(InvalidReviewOutcomeError):
        await service.record_review(
            "learner-1", ReviewOutcome(card_id="card-2", correct=True)
        )

    queue.enqueue.assert_not_awaited()
    store.save.assert_not_awaited()


@pytest.mark.asyncio
async def test_custom_quality_policy(local, shared_queue, now):
    service = ReviewService(local, shared_queue, quality_policy=lambda o: 3, clock=lambda: now)
    state = await service.record_review("learner-1", ReviewOutcome(card_id="c", correct=True))
    assert state.last_quality == 3
    assert state.ease == pytest.approx(2.36)


@pytest.mark.asyncio
async def test_create_deck_queues_mutation(service, shared_queue, now):
    payload = await service.create_deck("learner-1", "Verbs", description="irregular")

    assert payload.deck_id.startswith("deck_")
    assert payload.created_at == now
    [action] = await shared_queue.list_all()
    mutation = action.decode()
    assert isinstance(mutation, CreateDeck)
    assert mutation.payload == payload


@pytest.mark.asyncio
async def test_offline_reviews_reach_remote_after_reconnect(
    service, shared_queue, remote, timer_factory
):
    """Reviews recorded offline are delivered in order once connectivity returns."""
    coordinator = SyncCoordinator(shared_queue, remote, timer_factory=timer_factory)
    await coordinator.on_connectivity(False)

    for card in ("a", "b", "c"):
        await service.record_review("learner-1", ReviewOutcome(card_id=card, correct=True))
    await service.record_review("learner-1", ReviewOutcome(card_id="a", correct=False))

    assert await coordinator.on_tick() is None
    assert await shared_queue.count() == 4

    report = await coordinator.on_connectivity(True)

    assert report.ok
    assert len(report.applied) == 4
    assert await shared_queue.count() == 0
    assert remote.review_states[("learner-1", "a")]["repetitions"] == 0
    assert remote.review_states[("learner-1", "b")]["repetitions"] == 1


@pytest.mark.asyncio
async def test_concurrent_reviews_of_one_card_are_serialized(service, local, shared_queue):
    outcome = ReviewOutcome(card_id="card-1", correct=True, elapsed_ms=0)

    results = await asyncio.gather(
        service.record_review("learner-1", outcome),
        service.record_review("learner-1", outcome),
        service.record_review("learner-1", outcome),
    )

    assert sorted(s.repetitions for s in results) == [1, 2, 3]
    assert (await local.get("learner-1", "card-1")).repetitions == 3
    queued = [a.decode().payload.repetitions for a in await shared_queue.list_all()]
    assert queued == [1, 2, 3]

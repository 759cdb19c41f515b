from datetime import timedelta

import pytest

from flashsync.domain.errors import StorageError
from flashsync.domain.models import ReviewState
from flashsync.infrastructure.sqlite import Database, SqliteReviewStateStore


@pytest.fixture
def store(db_path):
    database = Database(db_path)
    s = SqliteReviewStateStore(database).open()
    yield s
    database.close()


@pytest.mark.asyncio
async def test_get_missing_returns_none(store):
    assert await store.get("learner-1", "nope") is None


@pytest.mark.asyncio
async def test_save_and_get_round_trip(store, now):
    state = ReviewState(
        "learner-1",
        "card-1",
        ease=2.36,
        interval_days=6,
        repetitions=2,
        last_reviewed_at=now,
        next_review_at=now + timedelta(days=6),
        last_quality=3,
    )
    await store.save(state)
    assert await store.get("learner-1", "card-1") == state


@pytest.mark.asyncio
async def test_fresh_state_keeps_null_history(store, now):
    state = ReviewState.new("learner-1", "card-1", now=now)
    await store.save(state)
    loaded = await store.get("learner-1", "card-1")
    assert loaded.last_reviewed_at is None
    assert loaded.last_quality is None


@pytest.mark.asyncio
async def test_save_overwrites_and_keeps_insertion_order(store, now):
    for card in ("a", "b", "c"):
        await store.save(ReviewState.new("learner-1", card, now=now))
    await store.save(ReviewState("learner-1", "a", ease=2.6, interval_days=1, repetitions=1,
                                 next_review_at=now + timedelta(days=1)))
    await store.save(ReviewState.new("learner-2", "z", now=now))

    states = await store.list_for_learner("learner-1")

    assert [s.card_id for s in states] == ["a", "b", "c"]
    assert states[0].repetitions == 1


@pytest.mark.asyncio
async def test_closed_database_raises_storage_error(db_path, now):
    database = Database(db_path)
    store = SqliteReviewStateStore(database).open()
    database.close()
    with pytest.raises(StorageError):
        await store.save(ReviewState.new("learner-1", "card-1", now=now))

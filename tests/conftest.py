from datetime import datetime, timedelta, timezone

import pytest

from flashsync.domain.actions import CreateDeck, DeckPayload, ReviewStatePayload, UpsertReviewState
from flashsync.domain.ports import TimerHandle
from flashsync.infrastructure.remote.memory_store import InMemoryRemoteStore
from flashsync.infrastructure.sqlite.action_queue import SqliteActionQueue

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeTimer(TimerHandle):
    """Timer driven by the test instead of the wall clock."""

    def __init__(self, interval, callback):
        self.interval = interval
        self.callback = callback
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    async def cancel(self) -> None:
        self.cancelled = True

    async def fire(self):
        return await self.callback()


class FakeTimerFactory:
    def __init__(self):
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, callback) -> FakeTimer:
        timer = FakeTimer(interval, callback)
        self.timers.append(timer)
        return timer


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "flashsync.db"


@pytest.fixture
def queue(db_path):
    q = SqliteActionQueue.at_path(db_path).open()
    yield q
    q.close()


@pytest.fixture
def remote():
    return InMemoryRemoteStore()


@pytest.fixture
def timer_factory():
    return FakeTimerFactory()


@pytest.fixture
def make_upsert():
    """Build an UpsertReviewState mutation for a card."""

    def _make(card_id="card-1", learner_id="learner-1", repetitions=1, interval_days=1):
        return UpsertReviewState(
            payload=ReviewStatePayload(
                learner_id=learner_id,
                card_id=card_id,
                ease=2.5,
                interval_days=interval_days,
                repetitions=repetitions,
                last_reviewed_at=NOW,
                next_review_at=NOW + timedelta(days=interval_days),
                last_quality=4,
            )
        )

    return _make


@pytest.fixture
def make_deck():
    def _make(name="Greetings", learner_id="learner-1"):
        return CreateDeck(payload=DeckPayload(learner_id=learner_id, name=name, created_at=NOW))

    return _make


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config files
    monkeypatch.setenv("HOME", str(home))
    return home

from datetime import timedelta

import pytest

from flashsync.domain.actions import (
    MUTATION_ADAPTER,
    ActionKind,
    CreateDeck,
    QueuedAction,
    ReviewStatePayload,
    UpsertReviewState,
    serialize_mutation,
)
from flashsync.domain.errors import InvalidReviewStateError, PoisonActionError
from flashsync.domain.models import ReviewState


def test_new_state_defaults(now):
    state = ReviewState.new("learner-1", "card-1", now=now)
    assert state.ease == 2.5
    assert state.interval_days == 0
    assert state.repetitions == 0
    assert state.last_reviewed_at is None
    assert state.last_quality is None
    assert state.next_review_at == now
    assert state.is_new


@pytest.mark.parametrize(
    "kwargs",
    [
        {"ease": 1.29},
        {"ease": 5.01},
        {"interval_days": -1},
        {"repetitions": -1},
        {"last_quality": 6},
        {"last_quality": -1},
    ],
)
def test_out_of_range_state_rejected(kwargs):
    with pytest.raises(InvalidReviewStateError):
        ReviewState("learner-1", "card-1", **kwargs)


def test_payload_round_trips_state(now):
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
    assert ReviewStatePayload.from_state(state).to_state() == state


def test_serialized_mutation_decodes_to_same_kind(make_upsert, make_deck, now):
    for mutation in (make_upsert(), make_deck()):
        kind, payload = serialize_mutation(mutation)
        action = QueuedAction(id=1, kind=kind, payload=payload, enqueued_at=now)
        assert action.decode() == mutation


def test_kind_tags_are_stable(make_upsert, make_deck):
    assert serialize_mutation(make_upsert())[0] == "upsert_review_state"
    assert serialize_mutation(make_deck())[0] == "create_deck"
    assert {k.value for k in ActionKind} == {"upsert_review_state", "create_deck"}


def test_union_dispatches_on_kind(make_deck):
    parsed = MUTATION_ADAPTER.validate_python(
        {"kind": "create_deck", "payload": make_deck().payload.model_dump(mode="json")}
    )
    assert isinstance(parsed, CreateDeck)


def test_deck_ids_are_generated_and_unique(make_deck):
    first, second = make_deck(), make_deck()
    assert first.payload.deck_id.startswith("deck_")
    assert first.payload.deck_id != second.payload.deck_id


@pytest.mark.parametrize(
    "kind, payload",
    [
        ("update_progress", {"learner_id": "l"}),
        ("upsert_review_state", {"learner_id": "l"}),
        ("upsert_review_state", {"_corrupt": "{not json"}),
    ],
)
def test_undecodable_action_is_poison(kind, payload, now):
    action = QueuedAction(id=7, kind=kind, payload=payload, enqueued_at=now)
    with pytest.raises(PoisonActionError) as exc:
        action.decode()
    assert exc.value.action_id == 7


def test_payload_rejects_out_of_range_ease(make_upsert):
    payload = make_upsert().payload.model_dump(mode="json")
    payload["ease"] = 9.0
    action = QueuedAction(id=3, kind="upsert_review_state", payload=payload, enqueued_at=None)
    with pytest.raises(PoisonActionError):
        action.decode()


def test_upsert_kind_defaults(make_upsert):
    assert make_upsert().kind == ActionKind.UPSERT_REVIEW_STATE
    assert isinstance(make_upsert(), UpsertReviewState)

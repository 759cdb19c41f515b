"""In-process RemoteStore with the same upsert semantics as the HTTP adapter."""

import logging
from collections.abc import Callable

from flashsync.domain.actions import DeckPayload, ReviewStatePayload
from flashsync.domain.errors import RemoteApplyError
from flashsync.domain.ports import RemoteStore

logger = logging.getLogger(__name__)

FailureHook = Callable[[str, object], bool]


class InMemoryRemoteStore(RemoteStore):
    """
    Dict-backed remote, used for tests and the ``memory`` backend.

    Attributes:
        online: When False, is_reachable() reports offline and writes fail.
        fail_when: Optional hook ``(operation, payload) -> bool``; returning
            True makes that write raise RemoteApplyError.
        applied: Every successful write in order, for inspection.
    """

    def __init__(self, online: bool = True, fail_when: FailureHook | None = None):
        self.online = online
        self.fail_when = fail_when
        self.review_states: dict[tuple[str, str], dict] = {}
        self.decks: dict[str, dict] = {}
        self.applied: list[tuple[str, str]] = []

    async def is_reachable(self) -> bool:
        return self.online

    def _check(self, operation: str, payload: object) -> None:
        if not self.online:
            raise RemoteApplyError(f"{operation}: remote offline")
        if self.fail_when is not None and self.fail_when(operation, payload):
            raise RemoteApplyError(f"{operation}: rejected")

    async def upsert_review_state(self, payload: ReviewStatePayload) -> None:
        self._check("upsert_review_state", payload)
        key = (payload.learner_id, payload.card_id)
        self.review_states[key] = payload.model_dump(mode="json")
        self.applied.append(("upsert_review_state", f"{payload.learner_id}/{payload.card_id}"))

    async def create_deck(self, payload: DeckPayload) -> None:
        self._check("create_deck", payload)
        # ignore-duplicates: the first write for a deck id wins
        self.decks.setdefault(payload.deck_id, payload.model_dump(mode="json"))
        self.applied.append(("create_deck", payload.deck_id))

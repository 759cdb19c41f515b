import logging
from typing import Any

import httpx

from flashsync.domain.actions import DeckPayload, ReviewStatePayload
from flashsync.domain.constants import REACHABILITY_TIMEOUT, REQUEST_TIMEOUT
from flashsync.domain.errors import RemoteApplyError
from flashsync.domain.ports import RemoteStore


class HttpRemoteStore(RemoteStore):
    """Adapter for a PostgREST-style REST API (e.g. Supabase) over httpx.

    Review states are upserted on (learner_id, card_id) with merge-duplicates,
    decks are inserted with ignore-duplicates on deck_id, so re-delivering the
    same payload leaves the remote unchanged.
    """

    def __init__(
        self,
        url: str,
        api_key: str | None = None,
        review_table: str = "review_states",
        deck_table: str = "decks",
        timeout: float = REQUEST_TIMEOUT,
        reachability_timeout: float = REACHABILITY_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.review_table = review_table
        self.deck_table = deck_table
        self.timeout = timeout
        self.reachability_timeout = reachability_timeout
        self._client = client
        self.logger.debug(f"HttpRemoteStore initialized with url={self.url}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def is_reachable(self) -> bool:
        """Probe the REST root; any transport error or 5xx counts as offline."""
        try:
            resp = await self._get_client().get(
                f"{self.url}/rest/v1/",
                headers=self._headers(),
                timeout=self.reachability_timeout,
            )
            return resp.status_code < 500
        except httpx.HTTPError as e:
            self.logger.debug(f"Remote unreachable at {self.url}: {e}")
            return False

    async def _post(self, table: str, on_conflict: str, prefer: str, row: dict[str, Any]) -> None:
        try:
            resp = await self._get_client().post(
                f"{self.url}/rest/v1/{table}",
                params={"on_conflict": on_conflict},
                json=[row],
                headers=self._headers(prefer),
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            self.logger.error(f"Remote rejected write to {table}: HTTP {status}")
            raise RemoteApplyError(
                f"{table} write failed with HTTP {status}: {e.response.text[:200]}",
                status_code=status,
            ) from e
        except httpx.HTTPError as e:
            self.logger.error(f"Remote write to {table} failed: {e}")
            raise RemoteApplyError(f"{table} write failed: {e}") from e

    async def upsert_review_state(self, payload: ReviewStatePayload) -> None:
        await self._post(
            self.review_table,
            on_conflict="learner_id,card_id",
            prefer="resolution=merge-duplicates,return=minimal",
            row=payload.model_dump(mode="json"),
        )
        self.logger.debug(f"[upsert] learner={payload.learner_id} card={payload.card_id}")

    async def create_deck(self, payload: DeckPayload) -> None:
        await self._post(
            self.deck_table,
            on_conflict="deck_id",
            prefer="resolution=ignore-duplicates,return=minimal",
            row=payload.model_dump(mode="json"),
        )
        self.logger.debug(f"[create] deck={payload.deck_id} learner={payload.learner_id}")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

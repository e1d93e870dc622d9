"""Debounced email autocomplete for the claim form."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from app.client.api import PortalAPIError
from app.client.notices import ALREADY_CLAIMED, ALREADY_CLAIMED_DESCRIPTION, Notice

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.3
MIN_QUERY_LENGTH = 2


class EmailSuggester:
    """
    Tracks the typed query and the suggestion list.

    Searches fire once typing pauses for the debounce interval. Each request
    takes a new sequence number and only the newest response is applied, so
    a slow earlier response never replaces fresher results.
    """

    def __init__(
        self,
        api,
        *,
        debounce: float = DEBOUNCE_SECONDS,
        min_length: int = MIN_QUERY_LENGTH,
        on_notice: Callable[[Notice], None] | None = None,
    ) -> None:
        self.api = api
        self.debounce = debounce
        self.min_length = min_length
        self.on_notice = on_notice
        self.query = ""
        self.suggestions: list[dict] = []
        self.requests_sent = 0
        self._seq = 0
        self._debounce_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()

    def set_query(self, query: str) -> None:
        """Record a keystroke; schedules a search after the debounce interval."""
        self.query = query
        if self._debounce_task and not self._debounce_task.done():
            self._debounce_task.cancel()
        if len(query.strip()) < self.min_length:
            # Invalidate anything still in flight
            self._seq += 1
            self.suggestions = []
            return
        self._debounce_task = asyncio.create_task(self._debounced(query))

    async def _debounced(self, query: str) -> None:
        await asyncio.sleep(self.debounce)
        self._seq += 1
        task = asyncio.create_task(self._fetch(query, self._seq))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _fetch(self, query: str, seq: int) -> None:
        self.requests_sent += 1
        try:
            body = await self.api.search_emails(query.strip(), seq=seq)
        except PortalAPIError as exc:
            logger.warning("Email search failed: %s", exc.message)
            if seq == self._seq:
                self.suggestions = []
            return
        self.apply(seq, body)

    def apply(self, seq: int, body: dict) -> bool:
        """Apply a search response; returns False when it is stale."""
        echoed = body.get("seq")
        if seq != self._seq or (echoed is not None and echoed != seq):
            return False
        self.suggestions = list(body.get("results") or [])
        return True

    def select(self, suggestion: dict) -> str | None:
        """
        Pick a suggestion.

        Claimed profiles are refused with a notice and None is returned;
        otherwise the suggestion's email.
        """
        if suggestion.get("isClaimed"):
            notice = Notice(ALREADY_CLAIMED, ALREADY_CLAIMED_DESCRIPTION, destructive=True)
            if self.on_notice:
                self.on_notice(notice)
            return None
        self.query = suggestion["email"]
        self.suggestions = []
        return suggestion["email"]

    async def settle(self) -> None:
        """Wait for the pending debounce and any in-flight searches."""
        if self._debounce_task:
            await asyncio.gather(self._debounce_task, return_exceptions=True)
        if self._inflight:
            await asyncio.gather(*self._inflight)

    async def aclose(self) -> None:
        tasks = list(self._inflight)
        if self._debounce_task:
            tasks.append(self._debounce_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

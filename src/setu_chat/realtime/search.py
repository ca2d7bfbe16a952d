"""Debounced user search where a newer query aborts the older one."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from setu_chat.application.ports.chat_api import IdentityLookup
from setu_chat.config import settings
from setu_chat.domain.entities.profile import Profile

logger = logging.getLogger(__name__)


class UserSearch:
    def __init__(
        self,
        lookup: IdentityLookup,
        *,
        debounce: float | None = None,
        min_length: int | None = None,
        on_results: Callable[[list[Profile]], None] | None = None,
    ) -> None:
        self._lookup = lookup
        self._debounce = settings.SEARCH_DEBOUNCE_SECONDS if debounce is None else debounce
        self._min_length = settings.SEARCH_MIN_LENGTH if min_length is None else min_length
        self._on_results = on_results
        self._task: asyncio.Task[None] | None = None
        self.query = ""
        self.results: list[Profile] = []
        self.is_loading = False

    def set_query(self, query: str) -> None:
        self.query = query
        self._cancel()
        if len(query.strip()) < self._min_length:
            self.is_loading = False
            self._publish([])
            return
        self._task = asyncio.create_task(self._run(query.strip()), name="user-search")

    async def _run(self, query: str) -> None:
        await asyncio.sleep(self._debounce)
        self.is_loading = True
        try:
            found = await self._lookup.search_users(query)
        except Exception:
            logger.warning("User search for %r failed", query, exc_info=True)
            found = []
        finally:
            if self._task is asyncio.current_task():
                self.is_loading = False
        self._publish(found)

    def _publish(self, results: list[Profile]) -> None:
        self.results = results
        if self._on_results is not None:
            self._on_results(results)

    def _cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Wait for the current search, if any, to settle."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def close(self) -> None:
        self._cancel()

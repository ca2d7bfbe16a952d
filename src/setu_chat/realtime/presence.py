"""Local presence reporting and the last known status of other users."""
from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from setu_chat.application.ports.chat_api import PresenceApi
from setu_chat.application.ports.clock import Clock, SystemClock
from setu_chat.config import settings
from setu_chat.domain.entities.presence import Presence
from setu_chat.domain.entities.profile import Profile

logger = logging.getLogger(__name__)


class PresenceReporter:
    """Reports this client's online status.

    Updates are fire-and-forget: a failed report is logged and the next
    heartbeat or visibility change sends a fresh one.
    """

    def __init__(
        self,
        api: PresenceApi,
        *,
        heartbeat_seconds: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._api = api
        self._interval = (
            settings.PRESENCE_HEARTBEAT_SECONDS if heartbeat_seconds is None else heartbeat_seconds
        )
        self._clock = clock or SystemClock()
        self._visible = False
        self._heartbeat: asyncio.Task[None] | None = None

    @property
    def visible(self) -> bool:
        return self._visible

    async def start(self) -> None:
        self._visible = True
        await self._report(True)
        if self._heartbeat is None:
            self._heartbeat = asyncio.create_task(self._heartbeat_loop(), name="presence-heartbeat")

    async def set_visible(self, visible: bool) -> None:
        self._visible = visible
        await self._report(visible)

    async def stop(self) -> None:
        if self._heartbeat:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None
        self._visible = False
        await self._report(False)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            if self._visible:
                await self._report(True)

    async def _report(self, is_online: bool) -> None:
        try:
            await self._api.set_presence(is_online, self._clock.now())
        except Exception:
            logger.debug("Presence update (online=%s) dropped", is_online, exc_info=True)


class PresenceBook:
    def __init__(self) -> None:
        self._entries: dict[str, Presence] = {}

    def seed(self, profiles: Iterable[Profile]) -> None:
        for profile in profiles:
            self.apply(Presence(profile.id, profile.is_online, profile.last_seen))

    def apply(self, presence: Presence) -> None:
        """Keep the newest known status per user."""
        current = self._entries.get(presence.user_id)
        if (
            current is not None
            and current.last_seen is not None
            and (presence.last_seen is None or current.last_seen > presence.last_seen)
        ):
            return
        self._entries[presence.user_id] = presence

    def get(self, user_id: str) -> Presence | None:
        return self._entries.get(user_id)

    def is_online(self, user_id: str) -> bool:
        entry = self._entries.get(user_id)
        return entry.is_online if entry else False


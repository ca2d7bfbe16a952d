"""Typing indicators for the active conversation."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable

from setu_chat.application.ports.bus import BroadcastChannel
from setu_chat.application.ports.clock import Clock, SystemClock
from setu_chat.config import settings
from setu_chat.domain.entities.presence import TypingUser
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import BroadcastEvent

logger = logging.getLogger(__name__)


class TypingTracker:
    """Remote users currently typing.

    Every ``typing`` event (re)starts an eviction timer for that user, so a
    client that vanishes without sending ``stop_typing`` disappears after
    ``timeout`` seconds.
    """

    def __init__(
        self,
        local_user_id: str,
        *,
        timeout: float | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._local_user_id = local_user_id
        self._timeout = settings.TYPING_TIMEOUT_SECONDS if timeout is None else timeout
        self._on_change = on_change
        self._users: dict[str, TypingUser] = {}
        self._timers: dict[str, asyncio.TimerHandle] = {}

    @property
    def users(self) -> list[TypingUser]:
        return list(self._users.values())

    def is_typing(self, user_id: str) -> bool:
        return user_id in self._users

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change()

    def on_typing(self, payload: dict[str, Any]) -> None:
        user_id = payload.get("user_id")
        if not user_id or user_id == self._local_user_id:
            return
        user_id = str(user_id)
        entry = TypingUser(
            user_id=user_id,
            username=str(payload.get("username") or ""),
            timestamp=float(payload.get("timestamp") or time.time() * 1000),
        )
        # refreshed entries move to the end
        self._users.pop(user_id, None)
        self._users[user_id] = entry

        self._cancel_timer(user_id)
        loop = asyncio.get_running_loop()
        self._timers[user_id] = loop.call_later(self._timeout, self._expire, user_id)
        self._notify()

    def on_stop_typing(self, payload: dict[str, Any]) -> None:
        user_id = payload.get("user_id")
        if user_id:
            self._remove(str(user_id))

    async def handle_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        match event:
            case BroadcastEvent.TYPING:
                self.on_typing(payload)
            case BroadcastEvent.STOP_TYPING:
                self.on_stop_typing(payload)
            case _:
                logger.debug("Ignoring typing channel event %s", event)

    def _cancel_timer(self, user_id: str) -> None:
        handle = self._timers.pop(user_id, None)
        if handle is not None:
            handle.cancel()

    def _expire(self, user_id: str) -> None:
        self._timers.pop(user_id, None)
        if self._users.pop(user_id, None) is not None:
            self._notify()

    def _remove(self, user_id: str) -> None:
        self._cancel_timer(user_id)
        if self._users.pop(user_id, None) is not None:
            self._notify()

    def clear(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        had_users = bool(self._users)
        self._users.clear()
        if had_users:
            self._notify()


class TypingEmitter:
    """Announces local typing; sends ``stop_typing`` after an idle period."""

    def __init__(
        self,
        channel: BroadcastChannel,
        user: Profile,
        *,
        idle_seconds: float | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._channel = channel
        self._user = user
        self._idle = settings.TYPING_IDLE_SECONDS if idle_seconds is None else idle_seconds
        self._clock = clock or SystemClock()
        self._stop_task: asyncio.Task[None] | None = None

    @property
    def is_typing(self) -> bool:
        return self._stop_task is not None and not self._stop_task.done()

    async def keystroke(self) -> None:
        self._cancel_pending()
        await self._send(
            BroadcastEvent.TYPING,
            {
                "user_id": self._user.id,
                "username": self._user.username or self._user.first_name,
                "timestamp": int(self._clock.now().timestamp() * 1000),
            },
        )
        self._cancel_pending()
        self._stop_task = asyncio.create_task(self._stop_after_idle(), name="typing-idle")

    async def _stop_after_idle(self) -> None:
        await asyncio.sleep(self._idle)
        await self._send(BroadcastEvent.STOP_TYPING, {"user_id": self._user.id})

    def _cancel_pending(self) -> None:
        if self._stop_task is not None and not self._stop_task.done():
            self._stop_task.cancel()
        self._stop_task = None

    async def stop(self) -> None:
        """Send ``stop_typing`` now if a typing burst is in progress."""
        was_typing = self.is_typing
        self._cancel_pending()
        if was_typing:
            await self._send(BroadcastEvent.STOP_TYPING, {"user_id": self._user.id})

    async def close(self) -> None:
        self._cancel_pending()

    async def _send(self, event: BroadcastEvent, payload: dict[str, Any]) -> None:
        try:
            await self._channel.send(event, payload)
        except Exception:
            logger.debug("Typing broadcast %s dropped", event, exc_info=True)

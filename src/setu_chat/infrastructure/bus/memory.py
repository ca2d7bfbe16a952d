"""Single-process event bus.

Frames go through the same JSON envelope as the Redis bus so handlers see
identical payloads in tests and in production.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Awaitable, Callable

from setu_chat.application.ports.bus import BroadcastHandler, ChangeHandler
from setu_chat.domain.events.message_changed import MessageChanged
from setu_chat.domain.value_objects.ids import messages_topic
from setu_chat.infrastructure.bus.serializer import (
    change_from_frame,
    change_to_frame,
    deserialize_event,
    serialize_event,
)

logger = logging.getLogger(__name__)

FrameCallback = Callable[[str, dict[str, Any]], Awaitable[None]]


class _Listener:
    def __init__(self, bus: InMemoryEventBus, topic: str, callback: FrameCallback) -> None:
        self.topic = topic
        self.origin = uuid.uuid4().hex
        self._bus = bus
        self._callback = callback
        self.closed = False

    async def deliver(self, event_type: str, data: dict[str, Any]) -> None:
        await self._callback(event_type, data)

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._bus._detach(self)


class _MemoryChannel(_Listener):
    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self.closed:
            return
        await self._bus.dispatch(self.topic, str(event), payload, origin=self.origin)


class InMemoryEventBus:
    """Implements EventBus and EventPublisher inside one event loop."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[_Listener]] = {}

    def _attach(self, listener: _Listener) -> None:
        self._listeners.setdefault(listener.topic, []).append(listener)

    def _detach(self, listener: _Listener) -> None:
        listeners = self._listeners.get(listener.topic)
        if listeners and listener in listeners:
            listeners.remove(listener)
            if not listeners:
                del self._listeners[listener.topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._listeners.get(topic, ()))

    async def dispatch(
        self,
        topic: str,
        event_type: str,
        payload: dict[str, Any],
        *,
        origin: str | None = None,
    ) -> None:
        raw = serialize_event(event_type, payload, origin=origin)
        for listener in list(self._listeners.get(topic, ())):
            if origin is not None and listener.origin == origin:
                continue
            event, data, _ = deserialize_event(raw)
            try:
                await listener.deliver(event, data)
            except Exception:
                logger.exception("Handler on %s failed for %s", topic, event_type)

    async def publish(self, channel: str, payload: dict[str, Any]) -> None:
        data = {k: v for k, v in payload.items() if k != "event_type"}
        await self.dispatch(channel, payload.get("event_type", "unknown"), data)

    async def publish_change(self, event: MessageChanged) -> None:
        event_type, data = change_to_frame(event)
        await self.dispatch(messages_topic(event.conversation_id), event_type, data)

    async def subscribe_changes(
        self, conversation_id: str, handler: ChangeHandler,
    ) -> _Listener:
        async def _on_frame(event_type: str, data: dict[str, Any]) -> None:
            await handler(change_from_frame(event_type, data))

        listener = _Listener(self, messages_topic(conversation_id), _on_frame)
        self._attach(listener)
        return listener

    async def open_broadcast(self, topic: str, handler: BroadcastHandler) -> _MemoryChannel:
        channel = _MemoryChannel(self, topic, handler)
        self._attach(channel)
        return channel

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol

from setu_chat.domain.events.message_changed import MessageChanged

ChangeHandler = Callable[[MessageChanged], Awaitable[None]]
BroadcastHandler = Callable[[str, dict[str, Any]], Awaitable[None]]


class EventPublisher(Protocol):
    async def publish(self, channel: str, payload: dict[str, Any]) -> None: ...


class Subscription(Protocol):
    async def close(self) -> None: ...


class BroadcastChannel(Protocol):
    """Ephemeral fire-and-forget channel. Senders do not receive their own events."""

    topic: str

    async def send(self, event: str, payload: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...


class EventBus(Protocol):
    async def subscribe_changes(
        self, conversation_id: str, handler: ChangeHandler,
    ) -> Subscription:
        """Durable insert/update feed for one conversation."""
        ...

    async def open_broadcast(
        self, topic: str, handler: BroadcastHandler,
    ) -> BroadcastChannel: ...

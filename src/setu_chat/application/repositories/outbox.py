from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol


class OutboxWriter(Protocol):
    async def add(self, topic: str, event_type: str, payload: dict[str, Any]) -> None: ...

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        """Due records in insertion order, locked until the caller commits."""
        ...

    async def mark_sent(self, ids: list[int]) -> None: ...

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None: ...

    async def mark_dead(self, record_id: int) -> None: ...


class OutboxRecord:
    """Change-event waiting to be published on ``topic``."""

    __slots__ = ("id", "topic", "event_type", "payload", "attempts")

    def __init__(
        self,
        id: int,
        topic: str,
        event_type: str,
        payload: dict[str, Any],
        attempts: int,
    ) -> None:
        self.id = id
        self.topic = topic
        self.event_type = event_type
        self.payload = payload
        self.attempts = attempts

    def frame(self) -> dict[str, Any]:
        return {"event_type": self.event_type, **self.payload}

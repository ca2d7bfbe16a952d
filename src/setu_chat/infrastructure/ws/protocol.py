"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # subscribe | unsubscribe | broadcast | ping
    topic: str | None = None
    event: str | None = None
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    type: str  # insert | update | typing | stop_typing | reaction_update | subscribed | error | pong
    topic: str | None = None
    data: dict[str, Any] = {}

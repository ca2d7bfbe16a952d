"""In-process WebSocket connection manager."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import WebSocket

from setu_chat.infrastructure.ws.protocol import WsOutbound

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket connections and their topic subscriptions.

    Connections are keyed by a per-socket id, which doubles as the origin tag
    of the broadcasts a socket sends so they are not echoed back to it.
    """

    def __init__(self) -> None:
        self._connections: dict[str, WebSocket] = {}
        self._subscriptions: dict[str, set[str]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, ws: WebSocket) -> str:
        await ws.accept()
        connection_id = uuid.uuid4().hex
        self._connections[connection_id] = ws
        logger.debug("WS connected: %s (total=%d)", connection_id, len(self._connections))
        return connection_id

    def disconnect(self, connection_id: str) -> None:
        self._connections.pop(connection_id, None)
        for topic in list(self._subscriptions):
            subs = self._subscriptions[topic]
            subs.discard(connection_id)
            if not subs:
                del self._subscriptions[topic]
        logger.debug("WS disconnected: %s", connection_id)

    def subscribe(self, connection_id: str, topic: str) -> None:
        self._subscriptions.setdefault(topic, set()).add(connection_id)

    def unsubscribe(self, connection_id: str, topic: str) -> None:
        subs = self._subscriptions.get(topic)
        if subs:
            subs.discard(connection_id)
            if not subs:
                del self._subscriptions[topic]

    def is_subscribed(self, connection_id: str, topic: str) -> bool:
        return connection_id in self._subscriptions.get(topic, set())

    async def broadcast_to_topic(
        self,
        topic: str,
        event_type: str,
        data: dict[str, Any],
        *,
        exclude: str | None = None,
    ) -> None:
        """Send a frame to every connection subscribed to ``topic``."""
        raw = WsOutbound(type=event_type, topic=topic, data=data).model_dump_json()
        dead: list[str] = []
        for connection_id in list(self._subscriptions.get(topic, set())):
            if connection_id == exclude:
                continue
            ws = self._connections.get(connection_id)
            if ws is None:
                continue
            try:
                await ws.send_text(raw)
            except Exception:
                dead.append(connection_id)
        for connection_id in dead:
            self.disconnect(connection_id)

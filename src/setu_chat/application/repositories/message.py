from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from setu_chat.application.dto.message import MessagePage
from setu_chat.domain.entities.message import Message


class MessageReader(Protocol):
    async def get_by_id(self, message_id: str) -> Message | None: ...

    async def get_many(self, message_ids: list[str]) -> list[Message]: ...

    async def list_page(
        self,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> MessagePage:
        """Newest first, strictly older than ``cursor`` when given."""
        ...

    async def last_message(self, conversation_id: str) -> Message | None: ...

    async def count_unread(
        self,
        conversation_id: str,
        user_id: str,
        since: datetime | None,
    ) -> int: ...


class MessageWriter(Protocol):
    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message. Return (message, created). If conflict on client_request_id → return existing."""
        ...

    async def update_fields(self, message_id: str, fields: dict[str, Any]) -> Message | None: ...

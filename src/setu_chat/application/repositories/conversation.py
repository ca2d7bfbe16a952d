from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol

from setu_chat.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        """Conversation with its members (and member profiles) loaded."""
        ...

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        """Non-deleted conversations the user belongs to, latest activity first."""
        ...

    async def find_private_between(
        self, user_id: str, other_user_id: str,
    ) -> Conversation | None: ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation: ...

    async def update_fields(self, conversation_id: str, fields: dict[str, Any]) -> None: ...

    async def soft_delete(self, conversation_id: str) -> None: ...

    async def hard_delete(self, conversation_id: str) -> None: ...

    async def touch_last_message_at(
        self, conversation_id: str, ts: datetime
    ) -> None: ...

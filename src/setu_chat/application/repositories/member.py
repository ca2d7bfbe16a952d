from __future__ import annotations

from datetime import datetime
from typing import Protocol

from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import MemberRole


class MemberReader(Protocol):
    async def get(
        self, conversation_id: str, user_id: str,
    ) -> ConversationMember | None: ...

    async def list_members(
        self, conversation_id: str
    ) -> list[ConversationMember]: ...


class MemberWriter(Protocol):
    async def add_many(self, members: list[ConversationMember]) -> None: ...

    async def remove(self, conversation_id: str, user_id: str) -> None: ...

    async def set_role(
        self, conversation_id: str, user_id: str, role: MemberRole,
    ) -> None: ...

    async def set_pinned(
        self, conversation_id: str, user_id: str, pinned_at: datetime | None,
    ) -> None: ...

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.entities.message import Message
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    type: ConversationType
    created_by: str | None
    created_at: datetime
    updated_at: datetime
    last_message_at: datetime | None = None
    name: str | None = None
    description: str | None = None
    avatar_url: str | None = None
    is_deleted: bool = False
    members: tuple[ConversationMember, ...] = ()
    last_message: Message | None = None
    unread_count: int = 0

    def member(self, user_id: str) -> ConversationMember | None:
        for m in self.members:
            if m.user_id == user_id:
                return m
        return None

    def role_of(self, user_id: str) -> MemberRole | None:
        m = self.member(user_id)
        return m.role if m else None

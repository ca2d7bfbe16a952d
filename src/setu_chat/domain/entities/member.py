from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import MemberRole


@dataclass(frozen=True, slots=True)
class ConversationMember:
    conversation_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime
    pinned_at: datetime | None = None
    profile: Profile | None = None

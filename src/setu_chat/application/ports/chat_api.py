"""Capabilities the realtime engine consumes from the server."""
from __future__ import annotations

from datetime import datetime
from typing import Protocol

from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.application.dto.message import (
    ForwardResult,
    MessagePage,
    SendMessageDTO,
)
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.message import Message, Reaction
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import MemberRole


class MessageApi(Protocol):
    async def create_message(
        self, conversation_id: str, dto: SendMessageDTO,
    ) -> Message: ...

    async def update_message(self, message_id: str, content: str) -> Message: ...

    async def delete_message(self, message_id: str) -> None: ...

    async def get_message(self, message_id: str) -> Message | None: ...

    async def list_messages(
        self, conversation_id: str, *, cursor: str | None = None, limit: int = 50,
    ) -> MessagePage: ...

    async def toggle_reaction(self, message_id: str, emoji: str) -> None: ...

    async def list_reactions(self, message_id: str) -> list[Reaction]: ...

    async def forward_message(
        self,
        message_id: str,
        conversation_ids: list[str],
        user_ids: list[str],
    ) -> ForwardResult: ...


class ConversationApi(Protocol):
    async def get_conversation(self, conversation_id: str) -> Conversation: ...

    async def list_conversations(self) -> list[Conversation]: ...

    async def create_conversation(self, dto: CreateConversationDTO) -> Conversation: ...

    async def update_conversation(
        self, conversation_id: str, dto: ConversationUpdateDTO,
    ) -> Conversation: ...

    async def delete_conversation(self, conversation_id: str) -> None: ...

    async def add_members(
        self, conversation_id: str, user_ids: list[str],
    ) -> Conversation: ...

    async def remove_member(self, conversation_id: str, user_id: str) -> Conversation: ...

    async def change_role(
        self, conversation_id: str, user_id: str, role: MemberRole,
    ) -> Conversation: ...

    async def toggle_pin(self, conversation_id: str) -> PinState: ...

    async def mark_read(self, conversation_id: str, last_message_id: str) -> None: ...


class IdentityLookup(Protocol):
    async def get_profile(self, user_id: str) -> Profile | None: ...

    async def search_users(self, query: str) -> list[Profile]: ...


class PresenceApi(Protocol):
    async def set_presence(self, is_online: bool, last_seen: datetime) -> None: ...


class ChatApi(MessageApi, ConversationApi, IdentityLookup, PresenceApi, Protocol):
    """Everything a chat session needs from the server."""

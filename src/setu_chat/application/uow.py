from __future__ import annotations

from typing import Protocol

from setu_chat.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from setu_chat.application.repositories.member import MemberReader, MemberWriter
from setu_chat.application.repositories.message import MessageReader, MessageWriter
from setu_chat.application.repositories.outbox import OutboxWriter
from setu_chat.application.repositories.profile import ProfileReader, ProfileWriter
from setu_chat.application.repositories.reaction import ReactionReader, ReactionWriter
from setu_chat.application.repositories.read_state import (
    ReadReceiptReader,
    ReadReceiptWriter,
)


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    members: MemberReader
    members_w: MemberWriter
    messages: MessageReader
    messages_w: MessageWriter
    reactions: ReactionReader
    reactions_w: ReactionWriter
    profiles: ProfileReader
    profiles_w: ProfileWriter
    read_receipts: ReadReceiptReader
    read_receipts_w: ReadReceiptWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import DeliveryState, MessageType


@dataclass(frozen=True, slots=True)
class Reaction:
    user_id: str
    reaction: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ReplySnapshot:
    """The message a reply points at, resolved one level deep."""

    id: str
    content: str | None
    message_type: MessageType
    sender_id: str
    sender: Profile | None = None


@dataclass(frozen=True, slots=True)
class Message:
    id: str
    conversation_id: str
    sender_id: str
    content: str | None
    message_type: MessageType
    created_at: datetime
    updated_at: datetime
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    reply_to: str | None = None
    forwarded_from: str | None = None
    is_edited: bool = False
    is_deleted: bool = False
    client_request_id: str | None = None
    reactions: tuple[Reaction, ...] = ()
    sender: Profile | None = None
    reply_message: ReplySnapshot | None = None
    # local-only delivery tracking, never persisted
    delivery: DeliveryState = DeliveryState.SENT
    error: str | None = None

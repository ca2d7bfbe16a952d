from __future__ import annotations

from dataclasses import dataclass, field

from setu_chat.domain.entities.message import Message
from setu_chat.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class FileAttachment:
    url: str
    name: str
    size: int


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    content: str | None
    client_request_id: str
    message_type: MessageType = MessageType.TEXT
    file: FileAttachment | None = None
    reply_to: str | None = None


@dataclass(frozen=True, slots=True)
class MessagePage:
    """One page of history, newest message first."""

    items: list[Message]
    next_cursor: str | None = None
    has_more: bool = False


@dataclass(frozen=True, slots=True)
class ForwardError:
    error: str
    conversation_id: str | None = None
    user_id: str | None = None


@dataclass(frozen=True, slots=True)
class ForwardResult:
    forwarded: list[Message] = field(default_factory=list)
    errors: list[ForwardError] = field(default_factory=list)

    @property
    def forwarded_count(self) -> int:
        return len(self.forwarded)

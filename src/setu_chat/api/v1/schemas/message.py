from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from setu_chat.api.v1.schemas.common import PaginatedResponse
from setu_chat.api.v1.schemas.user import ProfileResponse
from setu_chat.application.dto.message import (
    FileAttachment,
    ForwardError,
    ForwardResult,
    MessagePage,
    SendMessageDTO,
)
from setu_chat.domain.entities.message import Message, Reaction, ReplySnapshot
from setu_chat.domain.value_objects.enums import MessageType


class ReactionResponse(BaseModel):
    user_id: str
    reaction: str
    created_at: datetime

    model_config = {"from_attributes": True}

    def to_entity(self) -> Reaction:
        return Reaction(user_id=self.user_id, reaction=self.reaction, created_at=self.created_at)


class ReplySnapshotResponse(BaseModel):
    id: str
    content: str | None
    message_type: MessageType
    sender_id: str
    sender: ProfileResponse | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> ReplySnapshot:
        return ReplySnapshot(
            id=self.id,
            content=self.content,
            message_type=self.message_type,
            sender_id=self.sender_id,
            sender=self.sender.to_entity() if self.sender else None,
        )


class MessageResponse(BaseModel):
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
    reactions: list[ReactionResponse] = []
    sender: ProfileResponse | None = None
    reply_message: ReplySnapshotResponse | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> Message:
        return Message(
            id=self.id,
            conversation_id=self.conversation_id,
            sender_id=self.sender_id,
            content=self.content,
            message_type=self.message_type,
            created_at=self.created_at,
            updated_at=self.updated_at,
            file_url=self.file_url,
            file_name=self.file_name,
            file_size=self.file_size,
            reply_to=self.reply_to,
            forwarded_from=self.forwarded_from,
            is_edited=self.is_edited,
            is_deleted=self.is_deleted,
            client_request_id=self.client_request_id,
            reactions=tuple(r.to_entity() for r in self.reactions),
            sender=self.sender.to_entity() if self.sender else None,
            reply_message=self.reply_message.to_entity() if self.reply_message else None,
        )


class MessagePageResponse(PaginatedResponse[MessageResponse]):
    def to_page(self) -> MessagePage:
        return MessagePage(
            items=[m.to_entity() for m in self.items],
            next_cursor=self.next_cursor,
            has_more=self.has_more,
        )


class SendMessageRequest(BaseModel):
    client_request_id: str = Field(min_length=1, max_length=64)
    message_type: MessageType = MessageType.TEXT
    content: str | None = None
    file_url: str | None = None
    file_name: str | None = None
    file_size: int | None = Field(None, ge=0)
    reply_to: str | None = None

    def to_dto(self) -> SendMessageDTO:
        file = None
        if self.file_url:
            file = FileAttachment(
                url=self.file_url, name=self.file_name or "", size=self.file_size or 0,
            )
        return SendMessageDTO(
            content=self.content,
            client_request_id=self.client_request_id,
            message_type=self.message_type,
            file=file,
            reply_to=self.reply_to,
        )

    @classmethod
    def from_dto(cls, dto: SendMessageDTO) -> SendMessageRequest:
        return cls(
            client_request_id=dto.client_request_id,
            message_type=dto.message_type,
            content=dto.content,
            file_url=dto.file.url if dto.file else None,
            file_name=dto.file.name if dto.file else None,
            file_size=dto.file.size if dto.file else None,
            reply_to=dto.reply_to,
        )


class EditMessageRequest(BaseModel):
    content: str = Field(min_length=1)


class ReactionRequest(BaseModel):
    reaction: str = Field(min_length=1, max_length=32)


class ReactionToggleResponse(BaseModel):
    added: bool


class ForwardRequest(BaseModel):
    message_id: str
    conversation_ids: list[str] = []
    user_ids: list[str] = []


class ForwardErrorResponse(BaseModel):
    error: str
    conversation_id: str | None = None
    user_id: str | None = None

    model_config = {"from_attributes": True}


class ForwardResponse(BaseModel):
    forwarded: list[MessageResponse] = []
    errors: list[ForwardErrorResponse] = []
    forwarded_count: int = 0

    model_config = {"from_attributes": True}

    def to_result(self) -> ForwardResult:
        return ForwardResult(
            forwarded=[m.to_entity() for m in self.forwarded],
            errors=[
                ForwardError(error=e.error, conversation_id=e.conversation_id, user_id=e.user_id)
                for e in self.errors
            ],
        )

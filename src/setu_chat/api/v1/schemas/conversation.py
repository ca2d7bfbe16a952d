from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from setu_chat.api.v1.schemas.message import MessageResponse
from setu_chat.api.v1.schemas.user import ProfileResponse
from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole


class MemberResponse(BaseModel):
    conversation_id: str
    user_id: str
    role: MemberRole
    joined_at: datetime
    pinned_at: datetime | None = None
    profile: ProfileResponse | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> ConversationMember:
        return ConversationMember(
            conversation_id=self.conversation_id,
            user_id=self.user_id,
            role=self.role,
            joined_at=self.joined_at,
            pinned_at=self.pinned_at,
            profile=self.profile.to_entity() if self.profile else None,
        )


class ConversationResponse(BaseModel):
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
    members: list[MemberResponse] = []
    last_message: MessageResponse | None = None
    unread_count: int = 0

    model_config = {"from_attributes": True}

    def to_entity(self) -> Conversation:
        return Conversation(
            id=self.id,
            type=self.type,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            last_message_at=self.last_message_at,
            name=self.name,
            description=self.description,
            avatar_url=self.avatar_url,
            is_deleted=self.is_deleted,
            members=tuple(m.to_entity() for m in self.members),
            last_message=self.last_message.to_entity() if self.last_message else None,
            unread_count=self.unread_count,
        )


class CreateConversationRequest(BaseModel):
    type: ConversationType
    member_ids: list[str] = []
    name: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=500)

    def to_dto(self) -> CreateConversationDTO:
        return CreateConversationDTO(
            type=self.type,
            member_ids=list(self.member_ids),
            name=self.name,
            description=self.description,
        )


class UpdateConversationRequest(BaseModel):
    """Only the fields sent by the client are changed; null clears a field."""

    name: str | None = Field(None, max_length=100)
    description: str | None = Field(None, max_length=500)
    avatar_url: str | None = None

    def to_dto(self) -> ConversationUpdateDTO:
        return ConversationUpdateDTO(changes=self.model_dump(exclude_unset=True))


class AddMembersRequest(BaseModel):
    user_ids: list[str] = Field(min_length=1)


class ChangeRoleRequest(BaseModel):
    user_id: str
    role: MemberRole


class PinResponse(BaseModel):
    pinned: bool
    pinned_at: datetime | None = None

    model_config = {"from_attributes": True}

    def to_state(self) -> PinState:
        return PinState(pinned=self.pinned, pinned_at=self.pinned_at)


class MarkReadRequest(BaseModel):
    last_message_id: str

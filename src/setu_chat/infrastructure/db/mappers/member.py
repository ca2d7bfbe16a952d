from __future__ import annotations

from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import MemberRole
from setu_chat.infrastructure.db.mappers import profile as profile_mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.member import ConversationMemberModel


def model_to_entity(model: ConversationMemberModel) -> ConversationMember:
    return ConversationMember(
        conversation_id=str(model.conversation_id),
        user_id=str(model.user_id),
        role=MemberRole(model.role),
        joined_at=model.joined_at,
        pinned_at=model.pinned_at,
        profile=profile_mapper.model_to_entity(model.profile) if model.profile else None,
    )


def entity_to_model(entity: ConversationMember) -> ConversationMemberModel:
    return ConversationMemberModel(
        conversation_id=to_uuid(entity.conversation_id),
        user_id=to_uuid(entity.user_id),
        role=entity.role.value,
        joined_at=entity.joined_at,
        pinned_at=entity.pinned_at,
    )

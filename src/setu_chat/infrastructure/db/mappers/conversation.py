from __future__ import annotations

from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.value_objects.enums import ConversationType
from setu_chat.infrastructure.db.mappers import member as member_mapper
from setu_chat.infrastructure.db.mappers._ids import to_str, to_uuid
from setu_chat.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=str(model.id),
        type=ConversationType(model.type),
        created_by=to_str(model.created_by),
        created_at=model.created_at,
        updated_at=model.updated_at,
        last_message_at=model.last_message_at,
        name=model.name,
        description=model.description,
        avatar_url=model.avatar_url,
        is_deleted=model.is_deleted,
        members=tuple(
            member_mapper.model_to_entity(m)
            for m in sorted(model.members, key=lambda m: m.joined_at)
        ),
    )


def entity_to_model(entity: Conversation) -> ConversationModel:
    return ConversationModel(
        id=to_uuid(entity.id),
        type=entity.type.value,
        name=entity.name,
        description=entity.description,
        avatar_url=entity.avatar_url,
        created_by=to_uuid(entity.created_by),
        is_deleted=entity.is_deleted,
        last_message_at=entity.last_message_at,
        created_at=entity.created_at,
        updated_at=entity.updated_at,
    )

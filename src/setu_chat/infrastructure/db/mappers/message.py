from __future__ import annotations

from setu_chat.domain.entities.message import Message, Reaction
from setu_chat.domain.value_objects.enums import MessageType
from setu_chat.infrastructure.db.mappers._ids import to_str, to_uuid
from setu_chat.infrastructure.db.models.message import MessageModel
from setu_chat.infrastructure.db.models.reaction import MessageReactionModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=str(model.id),
        conversation_id=str(model.conversation_id),
        sender_id=str(model.sender_id),
        content=model.content,
        message_type=MessageType(model.message_type),
        created_at=model.created_at,
        updated_at=model.updated_at,
        file_url=model.file_url,
        file_name=model.file_name,
        file_size=model.file_size,
        reply_to=to_str(model.reply_to),
        forwarded_from=to_str(model.forwarded_from),
        is_edited=model.is_edited,
        is_deleted=model.is_deleted,
        client_request_id=model.client_request_id,
    )


def entity_to_values(entity: Message) -> dict:
    """Column values for an INSERT; hydrated fields are not stored."""
    return {
        "id": to_uuid(entity.id),
        "conversation_id": to_uuid(entity.conversation_id),
        "sender_id": to_uuid(entity.sender_id),
        "content": entity.content,
        "message_type": entity.message_type.value,
        "file_url": entity.file_url,
        "file_name": entity.file_name,
        "file_size": entity.file_size,
        "reply_to": to_uuid(entity.reply_to),
        "forwarded_from": to_uuid(entity.forwarded_from),
        "is_edited": entity.is_edited,
        "is_deleted": entity.is_deleted,
        "client_request_id": entity.client_request_id,
        "created_at": entity.created_at,
        "updated_at": entity.updated_at,
    }


def reaction_to_entity(model: MessageReactionModel) -> Reaction:
    return Reaction(
        user_id=str(model.user_id),
        reaction=model.reaction,
        created_at=model.created_at,
    )

from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from setu_chat.application.dto.message import (
    ForwardError,
    ForwardResult,
    MessagePage,
    SendMessageDTO,
)
from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from setu_chat.application.policies.permissions import assert_conversation_access
from setu_chat.application.uow import UnitOfWork
from setu_chat.domain.entities.message import Message, Reaction
from setu_chat.domain.value_objects.enums import ChangeOp, MessageType
from setu_chat.services import conversation_service
from setu_chat.services._shared import hydrate, hydrate_one, record_change

logger = logging.getLogger(__name__)


def _validate_payload(dto: SendMessageDTO) -> None:
    match dto.message_type:
        case MessageType.TEXT:
            if not (dto.content or "").strip():
                raise ValidationError("Message content is required")
        case MessageType.IMAGE | MessageType.FILE:
            if dto.file is None:
                raise ValidationError(f"A {dto.message_type} message needs a file")
        case MessageType.SYSTEM:
            raise ValidationError("System messages cannot be sent by clients")


async def send_message(
    conversation_id: str,
    principal: Principal,
    dto: SendMessageDTO,
    uow: UnitOfWork,
) -> tuple[Message, bool]:
    """Create a message idempotently.

    Returns (message, created). If a message with the same client_request_id
    already exists the existing one is returned with created=False.
    """
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    _validate_payload(dto)

    if dto.reply_to:
        replied = await uow.messages.get_by_id(dto.reply_to)
        if replied is None or replied.conversation_id != conversation_id:
            raise ValidationError("Reply target is not in this conversation")

    now = datetime.now(timezone.utc)
    msg = Message(
        id=str(uuid.uuid4()),
        conversation_id=conversation_id,
        sender_id=principal.user_id,
        content=dto.content,
        message_type=dto.message_type,
        created_at=now,
        updated_at=now,
        file_url=dto.file.url if dto.file else None,
        file_name=dto.file.name if dto.file else None,
        file_size=dto.file.size if dto.file else None,
        reply_to=dto.reply_to,
        client_request_id=dto.client_request_id,
    )

    msg, created = await uow.messages_w.create_if_not_exists(msg)

    if created:
        await uow.conversations_w.touch_last_message_at(conversation_id, msg.created_at)
        await record_change(uow, ChangeOp.INSERT, msg)
        await uow.commit()

    return await hydrate_one(msg, uow), created


async def list_messages(
    conversation_id: str,
    principal: Principal,
    cursor: str | None,
    limit: int,
    uow: UnitOfWork,
) -> MessagePage:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)
    page = await uow.messages.list_page(conversation_id, cursor=cursor, limit=limit)
    return replace(page, items=await hydrate(page.items, uow))


async def _get_accessible(
    message_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    msg = await uow.messages.get_by_id(message_id)
    if msg is None:
        raise NotFoundError("Message not found")
    conversation = await uow.conversations.get_by_id(msg.conversation_id)
    assert_conversation_access(principal, conversation)
    return msg


async def _get_own(message_id: str, principal: Principal, uow: UnitOfWork) -> Message:
    msg = await _get_accessible(message_id, principal, uow)
    if msg.sender_id != principal.user_id:
        raise ForbiddenError("You can only change your own messages")
    if msg.message_type == MessageType.SYSTEM:
        raise ValidationError("System messages cannot be changed")
    return msg


async def get_message(message_id: str, principal: Principal, uow: UnitOfWork) -> Message:
    return await hydrate_one(await _get_accessible(message_id, principal, uow), uow)


async def edit_message(
    message_id: str,
    principal: Principal,
    content: str,
    uow: UnitOfWork,
) -> Message:
    msg = await _get_own(message_id, principal, uow)
    if msg.is_deleted:
        raise ConflictError("Message was deleted")
    if not content.strip():
        raise ValidationError("Message content is required")

    updated = await uow.messages_w.update_fields(
        message_id,
        {"content": content, "is_edited": True, "updated_at": datetime.now(timezone.utc)},
    )
    assert updated is not None
    await record_change(uow, ChangeOp.UPDATE, updated)
    await uow.commit()
    return await hydrate_one(updated, uow)


async def delete_message(message_id: str, principal: Principal, uow: UnitOfWork) -> None:
    """Soft delete: the row stays, its content and file are cleared."""
    msg = await _get_own(message_id, principal, uow)
    if msg.is_deleted:
        return

    updated = await uow.messages_w.update_fields(
        message_id,
        {
            "is_deleted": True,
            "content": None,
            "file_url": None,
            "file_name": None,
            "file_size": None,
            "updated_at": datetime.now(timezone.utc),
        },
    )
    assert updated is not None
    await record_change(uow, ChangeOp.UPDATE, updated)
    await uow.commit()


async def toggle_reaction(
    message_id: str,
    principal: Principal,
    emoji: str,
    uow: UnitOfWork,
) -> bool:
    """Add or remove the caller's ``emoji`` reaction. Returns True when added."""
    if not emoji.strip():
        raise ValidationError("Reaction is required")
    msg = await _get_accessible(message_id, principal, uow)
    if msg.is_deleted:
        raise ConflictError("Cannot react to a deleted message")
    added = await uow.reactions_w.toggle(message_id, principal.user_id, emoji)
    await uow.commit()
    return added


async def list_reactions(
    message_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> list[Reaction]:
    await _get_accessible(message_id, principal, uow)
    reactions = await uow.reactions.list_for_messages([message_id])
    return reactions.get(message_id, [])


async def forward_message(
    principal: Principal,
    message_id: str,
    conversation_ids: list[str],
    user_ids: list[str],
    uow: UnitOfWork,
) -> ForwardResult:
    """Copy a message into each target. Targets succeed or fail independently."""
    if not conversation_ids and not user_ids:
        raise ValidationError("At least one recipient is required")

    original = await _get_accessible(message_id, principal, uow)
    if original.is_deleted:
        raise ConflictError("Cannot forward a deleted message")

    forwarded: list[Message] = []
    errors: list[ForwardError] = []
    targets = list(dict.fromkeys(conversation_ids))

    for user_id in dict.fromkeys(user_ids):
        try:
            conv = await conversation_service.open_private_conversation(principal, user_id, uow)
        except AppError as exc:
            errors.append(ForwardError(error=exc.detail, user_id=user_id))
            continue
        except Exception as exc:
            logger.exception("Forward: cannot open private conversation with %s", user_id)
            await uow.rollback()
            errors.append(ForwardError(error=str(exc), user_id=user_id))
            continue
        if conv.id not in targets:
            targets.append(conv.id)

    for target_id in targets:
        try:
            msg = await _forward_to(original, target_id, principal, uow)
        except AppError as exc:
            errors.append(ForwardError(error=exc.detail, conversation_id=target_id))
            continue
        except Exception as exc:
            logger.exception("Forward: insert failed for conversation %s", target_id)
            await uow.rollback()
            errors.append(ForwardError(error=str(exc), conversation_id=target_id))
            continue
        forwarded.append(msg)

    logger.info(
        "Forwarded message %s: %d succeeded, %d failed",
        message_id, len(forwarded), len(errors),
    )
    return ForwardResult(forwarded=await hydrate(forwarded, uow), errors=errors)


async def _forward_to(
    original: Message,
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Message:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)

    now = datetime.now(timezone.utc)
    msg = Message(
        id=str(uuid.uuid4()),
        conversation_id=conversation_id,
        sender_id=principal.user_id,
        content=original.content,
        message_type=original.message_type,
        created_at=now,
        updated_at=now,
        file_url=original.file_url,
        file_name=original.file_name,
        file_size=original.file_size,
        forwarded_from=original.id,
        client_request_id=uuid.uuid4().hex,
    )
    msg, _created = await uow.messages_w.create_if_not_exists(msg)
    await uow.conversations_w.touch_last_message_at(conversation_id, now)
    await record_change(uow, ChangeOp.INSERT, msg)
    await uow.commit()
    return msg

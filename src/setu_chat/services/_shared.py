"""Helpers shared by the service modules."""
from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone

from setu_chat.application.dto.rows import message_to_row
from setu_chat.application.uow import UnitOfWork
from setu_chat.domain.entities.message import Message, ReplySnapshot
from setu_chat.domain.value_objects.enums import ChangeOp, MessageType
from setu_chat.domain.value_objects.ids import messages_topic


async def record_change(uow: UnitOfWork, op: ChangeOp, message: Message) -> None:
    """Queue a durable change-event; the outbox worker publishes it after commit."""
    await uow.outbox.add(
        messages_topic(message.conversation_id),
        op.value,
        {"row": message_to_row(message)},
    )


async def send_system_message(
    uow: UnitOfWork,
    conversation_id: str,
    sender_id: str,
    content: str,
) -> Message:
    now = datetime.now(timezone.utc)
    msg = Message(
        id=str(uuid.uuid4()),
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        message_type=MessageType.SYSTEM,
        created_at=now,
        updated_at=now,
        client_request_id=uuid.uuid4().hex,
    )
    msg, _created = await uow.messages_w.create_if_not_exists(msg)
    await uow.conversations_w.touch_last_message_at(conversation_id, now)
    await record_change(uow, ChangeOp.INSERT, msg)
    return msg


async def hydrate(messages: list[Message], uow: UnitOfWork) -> list[Message]:
    """Attach sender profiles, reactions and one-level reply snapshots."""
    if not messages:
        return []

    reply_ids = sorted({m.reply_to for m in messages if m.reply_to})
    replies = {r.id: r for r in await uow.messages.get_many(reply_ids)} if reply_ids else {}

    sender_ids = {m.sender_id for m in messages} | {r.sender_id for r in replies.values()}
    profiles = await uow.profiles.get_many(sorted(sender_ids))
    reactions = await uow.reactions.list_for_messages([m.id for m in messages])

    result: list[Message] = []
    for m in messages:
        reply_message = None
        if m.reply_to and m.reply_to in replies:
            r = replies[m.reply_to]
            reply_message = ReplySnapshot(
                id=r.id,
                content=r.content,
                message_type=r.message_type,
                sender_id=r.sender_id,
                sender=profiles.get(r.sender_id),
            )
        result.append(
            replace(
                m,
                sender=profiles.get(m.sender_id),
                reply_message=reply_message,
                reactions=tuple(reactions.get(m.id, ())),
            )
        )
    return result


async def hydrate_one(message: Message, uow: UnitOfWork) -> Message:
    return (await hydrate([message], uow))[0]


async def display_name(uow: UnitOfWork, user_id: str) -> str:
    profile = await uow.profiles.get_by_id(user_id)
    return profile.display_name if profile else "Unknown User"


def join_names(names: list[str]) -> str:
    """``["A"]`` → ``A``; ``["A", "B", "C"]`` → ``A, B and C``."""
    if not names:
        return "Unknown User"
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} and {names[-1]}"

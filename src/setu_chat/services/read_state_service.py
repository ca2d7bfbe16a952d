from __future__ import annotations

from datetime import datetime, timezone

from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import NotFoundError
from setu_chat.application.policies.permissions import assert_conversation_access
from setu_chat.application.uow import UnitOfWork


async def mark_read(
    conversation_id: str,
    principal: Principal,
    last_message_id: str,
    uow: UnitOfWork,
) -> None:
    conversation = await uow.conversations.get_by_id(conversation_id)
    assert_conversation_access(principal, conversation)

    message = await uow.messages.get_by_id(last_message_id)
    if message is None or message.conversation_id != conversation_id:
        raise NotFoundError("Message not found")

    await uow.read_receipts_w.upsert_last_read(
        conversation_id,
        principal.user_id,
        last_message_id,
        datetime.now(timezone.utc),
    )
    await uow.commit()

from __future__ import annotations

from datetime import datetime, timezone

from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import NotFoundError, ValidationError
from setu_chat.application.policies.permissions import (
    assert_can_add_members,
    assert_can_change_role,
    assert_can_remove_member,
    assert_conversation_access,
    assert_group,
)
from setu_chat.application.uow import UnitOfWork
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import MemberRole
from setu_chat.services._shared import display_name, join_names, send_system_message


async def _load_group(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = assert_conversation_access(
        principal, await uow.conversations.get_by_id(conversation_id),
    )
    assert_group(conversation)
    return conversation


async def _reload(conversation_id: str, uow: UnitOfWork) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def add_members(
    conversation_id: str,
    principal: Principal,
    user_ids: list[str],
    uow: UnitOfWork,
) -> Conversation:
    conversation = await _load_group(conversation_id, principal, uow)
    assert_can_add_members(conversation.role_of(principal.user_id))

    new_ids = [u for u in dict.fromkeys(user_ids) if conversation.member(u) is None]
    if not new_ids:
        raise ValidationError("No new members to add")

    profiles = await uow.profiles.get_many(new_ids)
    missing = [u for u in new_ids if u not in profiles]
    if missing:
        raise NotFoundError(f"Unknown user(s): {', '.join(missing)}")

    now = datetime.now(timezone.utc)
    await uow.members_w.add_many(
        [
            ConversationMember(
                conversation_id=conversation_id,
                user_id=user_id,
                role=MemberRole.MEMBER,
                joined_at=now,
            )
            for user_id in new_ids
        ]
    )
    names = join_names([profiles[u].display_name for u in new_ids])
    await send_system_message(uow, conversation_id, principal.user_id, f"added {names} to the group")
    await uow.commit()
    return await _reload(conversation_id, uow)


async def remove_member(
    conversation_id: str,
    principal: Principal,
    user_id: str,
    uow: UnitOfWork,
) -> Conversation:
    """Remove ``user_id``; removing yourself means leaving the group."""
    conversation = await _load_group(conversation_id, principal, uow)
    assert_can_remove_member(
        principal.user_id,
        conversation.role_of(principal.user_id),
        user_id,
        conversation.role_of(user_id),
    )

    if user_id == principal.user_id:
        text = "left the group"
    else:
        text = f"removed {await display_name(uow, user_id)} from the group"

    await uow.members_w.remove(conversation_id, user_id)
    await send_system_message(uow, conversation_id, principal.user_id, text)
    await uow.commit()
    return await _reload(conversation_id, uow)


async def leave_conversation(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    return await remove_member(conversation_id, principal, principal.user_id, uow)


async def change_role(
    conversation_id: str,
    principal: Principal,
    user_id: str,
    new_role: MemberRole,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await _load_group(conversation_id, principal, uow)
    assert_can_change_role(
        principal.user_id,
        conversation.role_of(principal.user_id),
        user_id,
        conversation.role_of(user_id),
        new_role,
    )

    await uow.members_w.set_role(conversation_id, user_id, MemberRole(new_role))

    target_name = await display_name(uow, user_id)
    if new_role == MemberRole.ADMIN:
        text = f"made {target_name} an admin"
    else:
        text = f"removed {target_name} as admin"
    await send_system_message(uow, conversation_id, principal.user_id, text)
    await uow.commit()
    return await _reload(conversation_id, uow)

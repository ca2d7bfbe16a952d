from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone

from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from setu_chat.application.policies.permissions import (
    assert_can_delete_group,
    assert_can_edit_settings,
    assert_conversation_access,
    assert_group,
    assert_membership_shape,
)
from setu_chat.application.uow import UnitOfWork
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole
from setu_chat.services._shared import hydrate_one, send_system_message


async def _reload(conversation_id: str, uow: UnitOfWork) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found")
    return conversation


async def _insert(
    uow: UnitOfWork,
    principal: Principal,
    conversation_type: ConversationType,
    member_ids: list[str],
    *,
    name: str | None = None,
    description: str | None = None,
) -> Conversation:
    now = datetime.now(timezone.utc)
    conversation_id = str(uuid.uuid4())
    creator_role = (
        MemberRole.OWNER if conversation_type == ConversationType.GROUP else MemberRole.MEMBER
    )
    members = [
        ConversationMember(
            conversation_id=conversation_id,
            user_id=principal.user_id,
            role=creator_role,
            joined_at=now,
        ),
        *(
            ConversationMember(
                conversation_id=conversation_id,
                user_id=user_id,
                role=MemberRole.MEMBER,
                joined_at=now,
            )
            for user_id in member_ids
        ),
    ]
    assert_membership_shape(conversation_type, members)

    is_group = conversation_type == ConversationType.GROUP
    conversation = Conversation(
        id=conversation_id,
        type=conversation_type,
        created_by=principal.user_id,
        created_at=now,
        updated_at=now,
        last_message_at=now,
        name=name if is_group else None,
        description=description if is_group else None,
    )
    await uow.conversations_w.create(conversation)
    await uow.members_w.add_many(members)
    await uow.commit()
    return await _reload(conversation_id, uow)


async def _assert_users_exist(user_ids: list[str], uow: UnitOfWork) -> None:
    found = await uow.profiles.get_many(user_ids)
    missing = [u for u in user_ids if u not in found]
    if missing:
        raise NotFoundError(f"Unknown user(s): {', '.join(missing)}")


async def open_private_conversation(
    principal: Principal,
    other_user_id: str,
    uow: UnitOfWork,
) -> Conversation:
    """Return the private conversation with ``other_user_id``, creating it if needed."""
    if other_user_id == principal.user_id:
        raise ValidationError("Private chat requires exactly one other member")
    existing = await uow.conversations.find_private_between(principal.user_id, other_user_id)
    if existing is not None:
        return existing
    await _assert_users_exist([other_user_id], uow)
    return await _insert(uow, principal, ConversationType.PRIVATE, [other_user_id])


async def create_conversation(
    principal: Principal,
    dto: CreateConversationDTO,
    uow: UnitOfWork,
) -> tuple[Conversation, bool]:
    """Create a conversation. Returns (conversation, created).

    Private and self conversations are unique per user pair, so an existing one
    is returned with created=False.
    """
    member_ids = [u for u in dict.fromkeys(dto.member_ids) if u != principal.user_id]

    match dto.type:
        case ConversationType.PRIVATE:
            if len(dto.member_ids) != 1 or len(member_ids) != 1:
                raise ValidationError("Private chat requires exactly one other member")
            existing = await uow.conversations.find_private_between(
                principal.user_id, member_ids[0],
            )
            if existing is not None:
                return existing, False
            await _assert_users_exist(member_ids, uow)
            return await _insert(uow, principal, ConversationType.PRIVATE, member_ids), True

        case ConversationType.SELF:
            for conv in await uow.conversations.list_for_user(principal.user_id):
                if conv.type == ConversationType.SELF:
                    return conv, False
            return await _insert(uow, principal, ConversationType.SELF, []), True

        case ConversationType.GROUP:
            name = (dto.name or "").strip()
            if not name:
                raise ValidationError("Group name is required")
            await _assert_users_exist(member_ids, uow)
            conv = await _insert(
                uow, principal, ConversationType.GROUP, member_ids,
                name=name, description=dto.description,
            )
            return conv, True

    raise ValidationError(f"Unknown conversation type: {dto.type}")


async def list_user_conversations(
    principal: Principal,
    uow: UnitOfWork,
) -> list[Conversation]:
    """Conversations annotated with their last message and the caller's unread count."""
    result: list[Conversation] = []
    for conv in await uow.conversations.list_for_user(principal.user_id):
        last = await uow.messages.last_message(conv.id)
        receipt = await uow.read_receipts.get(conv.id, principal.user_id)
        unread = await uow.messages.count_unread(
            conv.id,
            principal.user_id,
            receipt.last_read_at if receipt else None,
        )
        result.append(
            replace(
                conv,
                last_message=await hydrate_one(last, uow) if last else None,
                unread_count=unread,
            )
        )
    return result


async def get_conversation(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> Conversation:
    conversation = await uow.conversations.get_by_id(conversation_id)
    return assert_conversation_access(principal, conversation)


async def update_conversation(
    conversation_id: str,
    principal: Principal,
    dto: ConversationUpdateDTO,
    uow: UnitOfWork,
) -> Conversation:
    conversation = assert_conversation_access(
        principal, await uow.conversations.get_by_id(conversation_id),
    )
    assert_group(conversation)
    assert_can_edit_settings(conversation.role_of(principal.user_id))

    updates: dict[str, str | None] = {}
    system_messages: list[str] = []
    changes = dto.changes

    if "name" in changes and changes["name"] != conversation.name:
        name = (changes["name"] or "").strip()
        if not name:
            raise ValidationError("Group name is required")
        updates["name"] = name
        system_messages.append(f'changed the group name to "{name}"')
    if "description" in changes:
        updates["description"] = changes["description"]
    if "avatar_url" in changes and changes["avatar_url"] != conversation.avatar_url:
        updates["avatar_url"] = changes["avatar_url"]
        system_messages.append(
            "changed the group photo" if changes["avatar_url"] else "removed the group photo"
        )

    if not updates:
        return conversation

    await uow.conversations_w.update_fields(conversation_id, updates)
    for text in system_messages:
        await send_system_message(uow, conversation_id, principal.user_id, text)
    await uow.commit()
    return await _reload(conversation_id, uow)


async def delete_conversation(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> None:
    """Groups are soft deleted by their owner; other chats are removed by their creator."""
    conversation = assert_conversation_access(
        principal, await uow.conversations.get_by_id(conversation_id),
    )
    if conversation.type == ConversationType.GROUP:
        assert_can_delete_group(conversation.role_of(principal.user_id))
        await send_system_message(uow, conversation_id, principal.user_id, "deleted this group")
        await uow.conversations_w.soft_delete(conversation_id)
    else:
        if conversation.created_by != principal.user_id:
            raise ForbiddenError("Only the creator can delete this conversation")
        await uow.conversations_w.hard_delete(conversation_id)
    await uow.commit()


async def toggle_pin(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> PinState:
    """Pinning is a per-member annotation, not a conversation property."""
    membership = await uow.members.get(conversation_id, principal.user_id)
    if membership is None:
        raise ForbiddenError("You are not a member of this conversation")
    pinned_at = None if membership.pinned_at else datetime.now(timezone.utc)
    await uow.members_w.set_pinned(conversation_id, principal.user_id, pinned_at)
    await uow.commit()
    return PinState(pinned=pinned_at is not None, pinned_at=pinned_at)

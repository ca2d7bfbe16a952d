"""Role-based authorization for conversations.

Roles are totally ordered ``owner > admin > member``. Every check here runs
before any state change, both on the server and in the realtime engine.
"""
from __future__ import annotations

from collections.abc import Sequence
from typing import assert_never

from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole

ROLE_RANK: dict[MemberRole, int] = {
    MemberRole.OWNER: 3,
    MemberRole.ADMIN: 2,
    MemberRole.MEMBER: 1,
}


def has_permission(role: MemberRole | str | None, required: MemberRole | str) -> bool:
    """True if ``role`` ranks at least as high as ``required``. Non-members never pass."""
    if not role:
        return False
    try:
        rank = ROLE_RANK[MemberRole(role)]
    except ValueError:
        # unknown role strings rank as non-members
        return False
    return rank >= ROLE_RANK[MemberRole(required)]


def assert_conversation_access(
    principal: Principal,
    conversation: Conversation | None,
) -> Conversation:
    """Raise if conversation doesn't exist or principal is not a member."""
    if conversation is None or conversation.is_deleted:
        raise NotFoundError("Conversation not found")
    if conversation.member(principal.user_id) is None:
        raise ForbiddenError("You are not a member of this conversation")
    return conversation


def assert_group(conversation: Conversation) -> None:
    if conversation.type != ConversationType.GROUP:
        raise ValidationError("Only group conversations support this operation")


def assert_can_edit_settings(role: MemberRole | None) -> None:
    if not has_permission(role, MemberRole.ADMIN):
        raise ForbiddenError("Only admins and the group owner can update group settings")


def assert_can_add_members(role: MemberRole | None) -> None:
    if not has_permission(role, MemberRole.ADMIN):
        raise ForbiddenError("Only admins and the group owner can add members")


def can_remove_member(actor_role: MemberRole | None, target_role: MemberRole | None) -> bool:
    if actor_role is None or target_role is None:
        return False
    match actor_role:
        case MemberRole.OWNER:
            return target_role != MemberRole.OWNER
        case MemberRole.ADMIN:
            return target_role == MemberRole.MEMBER
        case MemberRole.MEMBER:
            return False
        case _:
            assert_never(actor_role)


def assert_can_leave(role: MemberRole | None) -> None:
    if role is None:
        raise NotFoundError("You are not a member of this group")
    # No ownership transfer exists, so an owner can only delete the group.
    if role == MemberRole.OWNER:
        raise ForbiddenError("The group owner cannot leave; delete the group instead")


def assert_can_remove_member(
    actor_id: str,
    actor_role: MemberRole | None,
    target_id: str,
    target_role: MemberRole | None,
) -> None:
    if actor_id == target_id:
        assert_can_leave(actor_role)
        return
    if target_role is None:
        raise NotFoundError("User is not a member of this group")
    if not can_remove_member(actor_role, target_role):
        raise ForbiddenError("You are not allowed to remove this member")


def assert_can_change_role(
    actor_id: str,
    actor_role: MemberRole | None,
    target_id: str,
    target_role: MemberRole | None,
    new_role: MemberRole | str,
) -> None:
    if actor_role != MemberRole.OWNER:
        raise ForbiddenError("Only the group owner can change member roles")
    if new_role not in (MemberRole.ADMIN, MemberRole.MEMBER):
        raise ValidationError("Role must be 'admin' or 'member'")
    if actor_id == target_id:
        raise ValidationError("Cannot change your own role")
    if target_role is None:
        raise NotFoundError("User is not a member of this group")
    if target_role == new_role:
        raise ValidationError(f"User is already a {new_role}")


def assert_can_delete_group(role: MemberRole | None) -> None:
    if role != MemberRole.OWNER:
        raise ForbiddenError("Only the group owner can delete the group")


def assert_membership_shape(
    conversation_type: ConversationType,
    members: Sequence[ConversationMember],
) -> None:
    count = len(members)
    match conversation_type:
        case ConversationType.PRIVATE:
            if count != 2:
                raise ValidationError("Private chat requires exactly one other member")
        case ConversationType.SELF:
            if count != 1:
                raise ValidationError("Self chat has exactly one member")
        case ConversationType.GROUP:
            owners = sum(1 for m in members if m.role == MemberRole.OWNER)
            if count < 1 or owners != 1:
                raise ValidationError("Group must have exactly one owner")
        case _:
            assert_never(conversation_type)

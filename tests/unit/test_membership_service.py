from __future__ import annotations

import pytest

from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole
from setu_chat.services import membership_service
from tests.conftest import make_conversation

ALICE = Principal(user_id="u-alice")  # owner
BOB = Principal(user_id="u-bob")  # admin
CAROL = Principal(user_id="u-carol")  # member


@pytest.fixture
def group(uow):
    conv = make_conversation(members=[
        ("u-alice", MemberRole.OWNER),
        ("u-bob", MemberRole.ADMIN),
        ("u-carol", MemberRole.MEMBER),
    ])
    uow.add_conversation(conv)
    return conv


def _system_texts(uow) -> list[str]:
    return [m.content for m in uow.messages._messages]


@pytest.mark.asyncio
async def test_admin_adds_members(uow, group):
    conv = await membership_service.add_members(group.id, BOB, ["u-dave", "u-carol"], uow)

    assert conv.role_of("u-dave") == MemberRole.MEMBER
    assert _system_texts(uow) == ["added Dave Diaz to the group"]
    assert uow.messages._messages[0].sender_id == "u-bob"


@pytest.mark.asyncio
async def test_member_cannot_add(uow, group):
    with pytest.raises(ForbiddenError):
        await membership_service.add_members(group.id, CAROL, ["u-dave"], uow)


@pytest.mark.asyncio
async def test_add_only_existing_members(uow, group):
    with pytest.raises(ValidationError):
        await membership_service.add_members(group.id, ALICE, ["u-bob"], uow)


@pytest.mark.asyncio
async def test_add_unknown_user(uow, group):
    with pytest.raises(NotFoundError):
        await membership_service.add_members(group.id, ALICE, ["u-ghost"], uow)
    assert len((await uow.conversations.get_by_id(group.id)).members) == 3


@pytest.mark.asyncio
async def test_add_to_private_chat_rejected(uow):
    uow.add_conversation(make_conversation(
        conversation_id="c-dm", type=ConversationType.PRIVATE,
        members=[("u-alice", MemberRole.MEMBER), ("u-bob", MemberRole.MEMBER)],
    ))

    with pytest.raises(ValidationError):
        await membership_service.add_members("c-dm", ALICE, ["u-carol"], uow)


@pytest.mark.asyncio
async def test_owner_removes_admin(uow, group):
    conv = await membership_service.remove_member(group.id, ALICE, "u-bob", uow)

    assert conv.member("u-bob") is None
    assert _system_texts(uow) == ["removed Bob Brown from the group"]


@pytest.mark.asyncio
async def test_admin_removes_member_but_not_admin_or_owner(uow, group):
    await membership_service.remove_member(group.id, BOB, "u-carol", uow)

    with pytest.raises(ForbiddenError):
        await membership_service.remove_member(group.id, BOB, "u-alice", uow)


@pytest.mark.asyncio
async def test_member_cannot_remove_others(uow, group):
    with pytest.raises(ForbiddenError):
        await membership_service.remove_member(group.id, CAROL, "u-bob", uow)


@pytest.mark.asyncio
async def test_remove_non_member(uow, group):
    with pytest.raises(NotFoundError):
        await membership_service.remove_member(group.id, ALICE, "u-dave", uow)


@pytest.mark.asyncio
async def test_leave_group(uow, group):
    conv = await membership_service.leave_conversation(group.id, CAROL, uow)

    assert conv.member("u-carol") is None
    assert _system_texts(uow) == ["left the group"]


@pytest.mark.asyncio
async def test_owner_cannot_leave(uow, group):
    with pytest.raises(ForbiddenError):
        await membership_service.leave_conversation(group.id, ALICE, uow)


@pytest.mark.asyncio
async def test_owner_promotes_and_demotes(uow, group):
    promoted = await membership_service.change_role(
        group.id, ALICE, "u-carol", MemberRole.ADMIN, uow,
    )
    demoted = await membership_service.change_role(
        group.id, ALICE, "u-carol", MemberRole.MEMBER, uow,
    )

    assert promoted.role_of("u-carol") == MemberRole.ADMIN
    assert demoted.role_of("u-carol") == MemberRole.MEMBER
    assert _system_texts(uow) == ["made Carol Cruz an admin", "removed Carol Cruz as admin"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("actor", "target", "role", "error"),
    [
        (BOB, "u-carol", MemberRole.ADMIN, ForbiddenError),
        (ALICE, "u-alice", MemberRole.ADMIN, ValidationError),
        (ALICE, "u-carol", MemberRole.OWNER, ValidationError),
        (ALICE, "u-bob", MemberRole.ADMIN, ValidationError),
        (ALICE, "u-dave", MemberRole.ADMIN, NotFoundError),
    ],
)
async def test_change_role_rejections(uow, group, actor, target, role, error):
    with pytest.raises(error):
        await membership_service.change_role(group.id, actor, target, role, uow)
    assert uow.messages._messages == []

from __future__ import annotations

from fastapi import APIRouter

from setu_chat.api.deps import CurrentPrincipal, UoWDep
from setu_chat.api.v1.schemas.conversation import (
    AddMembersRequest,
    ChangeRoleRequest,
    ConversationResponse,
)
from setu_chat.services import membership_service

router = APIRouter(prefix="/api/v1/conversations", tags=["members"])


@router.post("/{conversation_id}/members", response_model=ConversationResponse)
async def add_members(
    conversation_id: str,
    body: AddMembersRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await membership_service.add_members(conversation_id, principal, body.user_ids, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.patch("/{conversation_id}/members/role", response_model=ConversationResponse)
async def change_role(
    conversation_id: str,
    body: ChangeRoleRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await membership_service.change_role(
        conversation_id, principal, body.user_id, body.role, uow,
    )
    return ConversationResponse.model_validate(conv, from_attributes=True)


@router.delete("/{conversation_id}/members/{user_id}", response_model=ConversationResponse)
async def remove_member(
    conversation_id: str,
    user_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    """Removing yourself leaves the group."""
    conv = await membership_service.remove_member(conversation_id, principal, user_id, uow)
    return ConversationResponse.model_validate(conv, from_attributes=True)

from __future__ import annotations

from fastapi import APIRouter, Response, status

from setu_chat.api.deps import CurrentPrincipal, UoWDep
from setu_chat.api.v1.schemas.conversation import (
    ConversationResponse,
    CreateConversationRequest,
    MarkReadRequest,
    PinResponse,
    UpdateConversationRequest,
)
from setu_chat.services import conversation_service, read_state_service

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])


def _to_response(conversation: object) -> ConversationResponse:
    return ConversationResponse.model_validate(conversation, from_attributes=True)


@router.get("", response_model=list[ConversationResponse])
async def list_conversations(
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ConversationResponse]:
    convs = await conversation_service.list_user_conversations(principal, uow)
    return [_to_response(c) for c in convs]


@router.post("", response_model=ConversationResponse, status_code=201)
async def create_conversation(
    body: CreateConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> ConversationResponse:
    conv, created = await conversation_service.create_conversation(principal, body.to_dto(), uow)
    if not created:
        response.status_code = status.HTTP_200_OK
    return _to_response(conv)


@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.get_conversation(conversation_id, principal, uow)
    return _to_response(conv)


@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str,
    body: UpdateConversationRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await conversation_service.update_conversation(
        conversation_id, principal, body.to_dto(), uow,
    )
    return _to_response(conv)


@router.delete("/{conversation_id}", status_code=204)
async def delete_conversation(
    conversation_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await conversation_service.delete_conversation(conversation_id, principal, uow)


@router.patch("/{conversation_id}/pin", response_model=PinResponse)
async def toggle_pin(
    conversation_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> PinResponse:
    state = await conversation_service.toggle_pin(conversation_id, principal, uow)
    return PinResponse.model_validate(state, from_attributes=True)


@router.post("/{conversation_id}/read", status_code=204)
async def mark_read(
    conversation_id: str,
    body: MarkReadRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await read_state_service.mark_read(conversation_id, principal, body.last_message_id, uow)

from __future__ import annotations

from fastapi import APIRouter, Query, Response, status

from setu_chat.api.deps import CurrentPrincipal, UoWDep
from setu_chat.api.v1.schemas.message import (
    EditMessageRequest,
    ForwardRequest,
    ForwardResponse,
    MessagePageResponse,
    MessageResponse,
    ReactionRequest,
    ReactionResponse,
    ReactionToggleResponse,
    SendMessageRequest,
)
from setu_chat.services import message_service

router = APIRouter(prefix="/api/v1", tags=["messages"])


@router.get("/conversations/{conversation_id}/messages", response_model=MessagePageResponse)
async def list_messages(
    conversation_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
    cursor: str | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
) -> MessagePageResponse:
    page = await message_service.list_messages(
        conversation_id, principal, cursor, limit, uow,
    )
    return MessagePageResponse(
        items=[MessageResponse.model_validate(m, from_attributes=True) for m in page.items],
        next_cursor=page.next_cursor,
        has_more=page.has_more,
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=201,
)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
    response: Response,
) -> MessageResponse:
    msg, created = await message_service.send_message(
        conversation_id, principal, body.to_dto(), uow,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.post("/messages/forward", response_model=ForwardResponse)
async def forward_message(
    body: ForwardRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ForwardResponse:
    """Per-target failures are reported in ``errors``; the request itself succeeds."""
    result = await message_service.forward_message(
        principal, body.message_id, body.conversation_ids, body.user_ids, uow,
    )
    return ForwardResponse.model_validate(result, from_attributes=True)


@router.get("/messages/{message_id}", response_model=MessageResponse)
async def get_message(
    message_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.get_message(message_id, principal, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def edit_message(
    message_id: str,
    body: EditMessageRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> MessageResponse:
    msg = await message_service.edit_message(message_id, principal, body.content, uow)
    return MessageResponse.model_validate(msg, from_attributes=True)


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    await message_service.delete_message(message_id, principal, uow)


@router.post("/messages/{message_id}/reactions", response_model=ReactionToggleResponse)
async def toggle_reaction(
    message_id: str,
    body: ReactionRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> ReactionToggleResponse:
    added = await message_service.toggle_reaction(message_id, principal, body.reaction, uow)
    return ReactionToggleResponse(added=added)


@router.get("/messages/{message_id}/reactions", response_model=list[ReactionResponse])
async def list_reactions(
    message_id: str,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> list[ReactionResponse]:
    reactions = await message_service.list_reactions(message_id, principal, uow)
    return [ReactionResponse.model_validate(r, from_attributes=True) for r in reactions]

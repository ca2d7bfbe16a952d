from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Query

from setu_chat.api.deps import CurrentPrincipal, UoWDep
from setu_chat.api.v1.schemas.user import PresenceRequest, ProfileResponse
from setu_chat.services import presence_service

router = APIRouter(prefix="/api/v1", tags=["users"])


@router.get("/users/search", response_model=list[ProfileResponse])
async def search_users(
    principal: CurrentPrincipal,
    uow: UoWDep,
    q: str = Query(""),
    limit: int = Query(20, ge=1, le=50),
) -> list[ProfileResponse]:
    profiles = await presence_service.search_users(principal, q, uow, limit=limit)
    return [ProfileResponse.model_validate(p, from_attributes=True) for p in profiles]


@router.get("/users/{user_id}", response_model=ProfileResponse)
async def get_user(
    user_id: str,
    _principal: CurrentPrincipal,
    uow: UoWDep,
) -> ProfileResponse:
    profile = await presence_service.get_profile(user_id, uow)
    return ProfileResponse.model_validate(profile, from_attributes=True)


@router.post("/presence", status_code=204)
async def set_presence(
    body: PresenceRequest,
    principal: CurrentPrincipal,
    uow: UoWDep,
) -> None:
    last_seen = body.last_seen or datetime.now(timezone.utc)
    await presence_service.set_presence(principal, body.is_online, last_seen, uow)

from __future__ import annotations

from datetime import datetime

from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import NotFoundError
from setu_chat.application.uow import UnitOfWork
from setu_chat.domain.entities.profile import Profile

SEARCH_MIN_LENGTH = 2


async def set_presence(
    principal: Principal,
    is_online: bool,
    last_seen: datetime,
    uow: UnitOfWork,
) -> None:
    await uow.profiles_w.set_presence(principal.user_id, is_online, last_seen)
    await uow.commit()


async def get_profile(user_id: str, uow: UnitOfWork) -> Profile:
    profile = await uow.profiles.get_by_id(user_id)
    if profile is None:
        raise NotFoundError("User not found")
    return profile


async def search_users(
    principal: Principal,
    query: str,
    uow: UnitOfWork,
    *,
    limit: int = 20,
) -> list[Profile]:
    query = query.strip()
    if len(query) < SEARCH_MIN_LENGTH:
        return []
    return await uow.profiles.search(query, exclude_user_id=principal.user_id, limit=limit)

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from setu_chat.domain.entities.profile import Profile


class ProfileReader(Protocol):
    async def get_by_id(self, user_id: str) -> Profile | None: ...

    async def get_many(self, user_ids: list[str]) -> dict[str, Profile]: ...

    async def search(
        self, query: str, *, exclude_user_id: str | None = None, limit: int = 20,
    ) -> list[Profile]: ...


class ProfileWriter(Protocol):
    async def set_presence(
        self, user_id: str, is_online: bool, last_seen: datetime,
    ) -> None: ...

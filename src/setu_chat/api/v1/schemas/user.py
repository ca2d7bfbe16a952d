from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from setu_chat.domain.entities.profile import Profile


class ProfileResponse(BaseModel):
    id: str
    username: str | None = None
    first_name: str = ""
    last_name: str = ""
    avatar_url: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> Profile:
        return Profile(
            id=self.id,
            username=self.username,
            first_name=self.first_name,
            last_name=self.last_name,
            avatar_url=self.avatar_url,
            is_online=self.is_online,
            last_seen=self.last_seen,
        )


class PresenceRequest(BaseModel):
    is_online: bool
    last_seen: datetime | None = None

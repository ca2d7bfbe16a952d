from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Profile:
    id: str
    username: str | None
    first_name: str
    last_name: str
    avatar_url: str | None = None
    is_online: bool = False
    last_seen: datetime | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "Unknown User"

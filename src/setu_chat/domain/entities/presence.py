from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Presence:
    user_id: str
    is_online: bool
    last_seen: datetime | None = None


@dataclass(frozen=True, slots=True)
class TypingUser:
    user_id: str
    username: str
    timestamp: float

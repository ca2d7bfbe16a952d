from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from setu_chat.domain.value_objects.enums import ConversationType

GROUP_SETTING_FIELDS = ("name", "description", "avatar_url")


@dataclass(frozen=True, slots=True)
class CreateConversationDTO:
    type: ConversationType
    member_ids: list[str] = field(default_factory=list)
    name: str | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class ConversationUpdateDTO:
    """Group settings patch. Only keys present in ``changes`` are applied."""

    changes: dict[str, str | None] = field(default_factory=dict)

    def __post_init__(self) -> None:
        unknown = set(self.changes) - set(GROUP_SETTING_FIELDS)
        if unknown:
            raise ValueError(f"Unknown conversation fields: {sorted(unknown)}")


@dataclass(frozen=True, slots=True)
class PinState:
    pinned: bool
    pinned_at: datetime | None

from __future__ import annotations

from typing import Protocol

from setu_chat.domain.entities.message import Reaction


class ReactionReader(Protocol):
    async def list_for_messages(
        self, message_ids: list[str],
    ) -> dict[str, list[Reaction]]: ...


class ReactionWriter(Protocol):
    async def toggle(self, message_id: str, user_id: str, reaction: str) -> bool:
        """Add the reaction, or remove it if present. Return True when added."""
        ...

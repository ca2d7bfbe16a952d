from __future__ import annotations

from dataclasses import dataclass

from setu_chat.domain.entities.message import Message
from setu_chat.domain.value_objects.enums import ChangeOp


@dataclass(frozen=True, slots=True)
class MessageChanged:
    """Durable row change delivered on ``messages:<conversation_id>``."""

    op: ChangeOp
    row: Message

    @property
    def conversation_id(self) -> str:
        return self.row.conversation_id

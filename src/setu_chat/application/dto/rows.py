"""Plain-dict rows for durable change-events (outbox payloads and bus frames)."""
from __future__ import annotations

from typing import Any

from pydantic import TypeAdapter

from setu_chat.domain.entities.message import Message

# Reactions travel on the reaction-sync channel, snapshots are resolved by readers.
ROW_EXCLUDE = frozenset({"reactions", "sender", "reply_message", "delivery", "error"})

_message_adapter = TypeAdapter(Message)


def message_to_row(message: Message) -> dict[str, Any]:
    return _message_adapter.dump_python(message, mode="json", exclude=set(ROW_EXCLUDE))


def row_to_message(row: dict[str, Any]) -> Message:
    return _message_adapter.validate_python(
        {k: v for k, v in row.items() if k not in ROW_EXCLUDE}
    )

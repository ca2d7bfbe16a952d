from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from setu_chat.domain.entities.message import Message


def is_unread(message: Message, user_id: str, last_read_at: datetime | None) -> bool:
    if message.sender_id == user_id:
        return False
    return last_read_at is None or message.created_at > last_read_at


def unread_count(
    messages: Iterable[Message],
    user_id: str,
    last_read_at: datetime | None,
) -> int:
    """Messages from others after the read receipt; all of them without one."""
    return sum(1 for m in messages if is_unread(m, user_id, last_read_at))

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class ReadReceipt:
    conversation_id: str
    user_id: str
    last_read_message_id: str | None
    last_read_at: datetime

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from setu_chat.domain.entities.read_receipt import ReadReceipt


class ReadReceiptReader(Protocol):
    async def get(self, conversation_id: str, user_id: str) -> ReadReceipt | None: ...


class ReadReceiptWriter(Protocol):
    async def upsert_last_read(
        self,
        conversation_id: str,
        user_id: str,
        last_message_id: str,
        last_read_at: datetime,
    ) -> None: ...

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.domain.entities.read_receipt import ReadReceipt
from setu_chat.infrastructure.db.mappers._ids import to_str, to_uuid
from setu_chat.infrastructure.db.models.read_receipt import ReadReceiptModel


class ReadReceiptReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, conversation_id: str, user_id: str) -> ReadReceipt | None:
        stmt = select(ReadReceiptModel).where(
            ReadReceiptModel.conversation_id == to_uuid(conversation_id),
            ReadReceiptModel.user_id == to_uuid(user_id),
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return ReadReceipt(
            conversation_id=str(model.conversation_id),
            user_id=str(model.user_id),
            last_read_message_id=to_str(model.last_read_message_id),
            last_read_at=model.last_read_at,
        )


class ReadReceiptWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_last_read(
        self,
        conversation_id: str,
        user_id: str,
        last_message_id: str,
        last_read_at: datetime,
    ) -> None:
        stmt = pg_insert(ReadReceiptModel).values(
            conversation_id=to_uuid(conversation_id),
            user_id=to_uuid(user_id),
            last_read_message_id=to_uuid(last_message_id),
            last_read_at=last_read_at,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["conversation_id", "user_id"],
            set_={
                "last_read_message_id": stmt.excluded.last_read_message_id,
                "last_read_at": stmt.excluded.last_read_at,
            },
        )
        await self._session.execute(stmt)

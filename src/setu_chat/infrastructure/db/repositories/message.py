from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.application.dto.message import MessagePage
from setu_chat.domain.entities.message import Message
from setu_chat.infrastructure.db.mappers import message as mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.message import MessageModel
from setu_chat.infrastructure.db.repositories._cursor import decode_cursor, encode_cursor


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, message_id: str) -> Message | None:
        mid = to_uuid(message_id)
        if mid is None:
            return None
        model = await self._session.get(MessageModel, mid, populate_existing=True)
        return mapper.model_to_entity(model) if model else None

    async def get_many(self, message_ids: list[str]) -> list[Message]:
        ids = [u for u in (to_uuid(m) for m in message_ids) if u is not None]
        if not ids:
            return []
        result = await self._session.execute(
            select(MessageModel).where(MessageModel.id.in_(ids))
        )
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_page(
        self,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> MessagePage:
        cid = to_uuid(conversation_id)
        if cid is None:
            return MessagePage(items=[])
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == cid)
            .order_by(MessageModel.created_at.desc(), MessageModel.id.desc())
            .limit(limit + 1)
        )
        if cursor:
            ts, mid = decode_cursor(cursor)
            stmt = stmt.where(
                (MessageModel.created_at < ts)
                | ((MessageModel.created_at == ts) & (MessageModel.id < mid))
            )
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        has_more = len(rows) > limit
        rows = rows[:limit]
        next_cursor = encode_cursor(rows[-1].created_at, rows[-1].id) if has_more else None
        return MessagePage(
            items=[mapper.model_to_entity(m) for m in rows],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def last_message(self, conversation_id: str) -> Message | None:
        page = await self.list_page(conversation_id, limit=1)
        return page.items[0] if page.items else None

    async def count_unread(
        self,
        conversation_id: str,
        user_id: str,
        since: datetime | None,
    ) -> int:
        stmt = select(func.count()).select_from(MessageModel).where(
            MessageModel.conversation_id == to_uuid(conversation_id),
            MessageModel.sender_id != to_uuid(user_id),
        )
        if since is not None:
            stmt = stmt.where(MessageModel.created_at > since)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        """Insert message idempotently. Returns (message, created_flag)."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .on_conflict_do_nothing(constraint="uq_message_idempotency")
            .returning(MessageModel)
        )
        result = await self._session.execute(stmt)
        row = result.scalar_one_or_none()

        if row is not None:
            return mapper.model_to_entity(row), True

        # Conflict: return the row that won
        existing = await self.get_by_client_request_id(
            message.conversation_id,
            message.sender_id,
            message.client_request_id,
        )
        assert existing is not None
        return existing, False

    async def get_by_client_request_id(
        self,
        conversation_id: str,
        sender_id: str,
        client_request_id: str | None,
    ) -> Message | None:
        if client_request_id is None:
            return None
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == to_uuid(conversation_id),
            MessageModel.sender_id == to_uuid(sender_id),
            MessageModel.client_request_id == client_request_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def update_fields(self, message_id: str, fields: dict[str, Any]) -> Message | None:
        mid = to_uuid(message_id)
        if mid is None:
            return None
        stmt = (
            update(MessageModel)
            .where(MessageModel.id == mid)
            .values(**fields)
            .returning(MessageModel)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

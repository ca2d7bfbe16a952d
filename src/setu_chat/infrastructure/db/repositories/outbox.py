from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.application.repositories.outbox import OutboxRecord
from setu_chat.domain.value_objects.enums import OutboxStatus
from setu_chat.infrastructure.db.models.outbox import OutboxMessageModel

_DUE = (OutboxStatus.PENDING.value, OutboxStatus.FAILED.value)


def _to_record(model: OutboxMessageModel) -> OutboxRecord:
    return OutboxRecord(
        id=model.id,
        topic=model.topic,
        event_type=model.event_type,
        payload=model.payload,
        attempts=model.attempts,
    )


class OutboxWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, topic: str, event_type: str, payload: dict[str, Any]) -> None:
        self._session.add(
            OutboxMessageModel(topic=topic, event_type=event_type, payload=payload)
        )
        await self._session.flush()

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        # Rows stay locked until commit, so concurrent workers skip them.
        stmt = (
            select(OutboxMessageModel)
            .where(
                OutboxMessageModel.status.in_(_DUE),
                or_(
                    OutboxMessageModel.next_retry_at.is_(None),
                    OutboxMessageModel.next_retry_at <= datetime.now(timezone.utc),
                ),
            )
            .order_by(OutboxMessageModel.id)
            .limit(batch_size)
            .with_for_update(skip_locked=True)
        )
        result = await self._session.execute(stmt)
        return [_to_record(m) for m in result.scalars().all()]

    async def _set(self, ids: list[int], **values: Any) -> None:
        await self._session.execute(
            update(OutboxMessageModel)
            .where(OutboxMessageModel.id.in_(ids))
            .values(**values)
        )

    async def mark_sent(self, ids: list[int]) -> None:
        if ids:
            await self._set(ids, status=OutboxStatus.SENT.value)

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        await self._set(
            [record_id],
            status=OutboxStatus.FAILED.value,
            attempts=OutboxMessageModel.attempts + 1,
            next_retry_at=next_retry_at,
        )

    async def mark_dead(self, record_id: int) -> None:
        await self._set([record_id], status=OutboxStatus.DEAD.value)

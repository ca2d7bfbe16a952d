from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.domain.entities.message import Reaction
from setu_chat.infrastructure.db.mappers import message as mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.reaction import MessageReactionModel


class ReactionReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def list_for_messages(self, message_ids: list[str]) -> dict[str, list[Reaction]]:
        ids = [u for u in (to_uuid(m) for m in message_ids) if u is not None]
        if not ids:
            return {}
        stmt = (
            select(MessageReactionModel)
            .where(MessageReactionModel.message_id.in_(ids))
            .order_by(MessageReactionModel.created_at.asc())
        )
        result = await self._session.execute(stmt)
        grouped: dict[str, list[Reaction]] = {}
        for model in result.scalars().all():
            grouped.setdefault(str(model.message_id), []).append(mapper.reaction_to_entity(model))
        return grouped


class ReactionWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def toggle(self, message_id: str, user_id: str, reaction: str) -> bool:
        mid, uid = to_uuid(message_id), to_uuid(user_id)
        removed = await self._session.execute(
            delete(MessageReactionModel)
            .where(
                MessageReactionModel.message_id == mid,
                MessageReactionModel.user_id == uid,
                MessageReactionModel.reaction == reaction,
            )
            .returning(MessageReactionModel.id)
        )
        if removed.first() is not None:
            return False
        self._session.add(MessageReactionModel(message_id=mid, user_id=uid, reaction=reaction))
        await self._session.flush()
        return True

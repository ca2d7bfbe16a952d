from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.value_objects.enums import ConversationType
from setu_chat.infrastructure.db.mappers import conversation as mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.conversation import ConversationModel
from setu_chat.infrastructure.db.models.member import ConversationMemberModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        cid = to_uuid(conversation_id)
        if cid is None:
            return None
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == cid)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ConversationMemberModel,
                ConversationMemberModel.conversation_id == ConversationModel.id,
            )
            .where(
                ConversationMemberModel.user_id == to_uuid(user_id),
                ConversationModel.is_deleted.is_(False),
            )
            .order_by(
                func.coalesce(
                    ConversationModel.last_message_at, ConversationModel.created_at,
                ).desc(),
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def find_private_between(
        self, user_id: str, other_user_id: str,
    ) -> Conversation | None:
        mine = (
            select(ConversationMemberModel.conversation_id)
            .where(ConversationMemberModel.user_id == to_uuid(user_id))
        )
        stmt = (
            select(ConversationModel)
            .join(
                ConversationMemberModel,
                ConversationMemberModel.conversation_id == ConversationModel.id,
            )
            .where(
                ConversationModel.type == ConversationType.PRIVATE.value,
                ConversationModel.is_deleted.is_(False),
                ConversationModel.id.in_(mine),
                ConversationMemberModel.user_id == to_uuid(other_user_id),
            )
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        model = mapper.entity_to_model(conversation)
        self._session.add(model)
        await self._session.flush()
        return conversation

    async def update_fields(self, conversation_id: str, fields: dict[str, Any]) -> None:
        await self._session.execute(
            update(ConversationModel)
            .where(ConversationModel.id == to_uuid(conversation_id))
            .values(**fields)
        )

    async def soft_delete(self, conversation_id: str) -> None:
        await self.update_fields(conversation_id, {"is_deleted": True})

    async def hard_delete(self, conversation_id: str) -> None:
        await self._session.execute(
            delete(ConversationModel).where(ConversationModel.id == to_uuid(conversation_id))
        )

    async def touch_last_message_at(self, conversation_id: str, ts: datetime) -> None:
        await self.update_fields(conversation_id, {"last_message_at": ts})

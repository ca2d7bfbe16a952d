from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.value_objects.enums import MemberRole
from setu_chat.infrastructure.db.mappers import member as mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.member import ConversationMemberModel


class MemberReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, conversation_id: str, user_id: str) -> ConversationMember | None:
        cid, uid = to_uuid(conversation_id), to_uuid(user_id)
        if cid is None or uid is None:
            return None
        stmt = (
            select(ConversationMemberModel)
            .where(
                ConversationMemberModel.conversation_id == cid,
                ConversationMemberModel.user_id == uid,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_members(self, conversation_id: str) -> list[ConversationMember]:
        stmt = (
            select(ConversationMemberModel)
            .where(ConversationMemberModel.conversation_id == to_uuid(conversation_id))
            .order_by(ConversationMemberModel.joined_at.asc())
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class MemberWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add_many(self, members: list[ConversationMember]) -> None:
        self._session.add_all([mapper.entity_to_model(m) for m in members])
        await self._session.flush()

    async def remove(self, conversation_id: str, user_id: str) -> None:
        await self._session.execute(
            delete(ConversationMemberModel).where(
                ConversationMemberModel.conversation_id == to_uuid(conversation_id),
                ConversationMemberModel.user_id == to_uuid(user_id),
            )
        )

    async def set_role(self, conversation_id: str, user_id: str, role: MemberRole) -> None:
        await self._update(conversation_id, user_id, role=role.value)

    async def set_pinned(
        self, conversation_id: str, user_id: str, pinned_at: datetime | None,
    ) -> None:
        await self._update(conversation_id, user_id, pinned_at=pinned_at)

    async def _update(self, conversation_id: str, user_id: str, **values: object) -> None:
        await self._session.execute(
            update(ConversationMemberModel)
            .where(
                ConversationMemberModel.conversation_id == to_uuid(conversation_id),
                ConversationMemberModel.user_id == to_uuid(user_id),
            )
            .values(**values)
        )

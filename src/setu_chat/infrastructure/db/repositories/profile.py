from __future__ import annotations

from datetime import datetime

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.domain.entities.profile import Profile
from setu_chat.infrastructure.db.mappers import profile as mapper
from setu_chat.infrastructure.db.mappers._ids import to_uuid
from setu_chat.infrastructure.db.models.profile import ProfileModel


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class ProfileReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: str) -> Profile | None:
        uid = to_uuid(user_id)
        if uid is None:
            return None
        model = await self._session.get(ProfileModel, uid, populate_existing=True)
        return mapper.model_to_entity(model) if model else None

    async def get_many(self, user_ids: list[str]) -> dict[str, Profile]:
        ids = [u for u in (to_uuid(i) for i in user_ids) if u is not None]
        if not ids:
            return {}
        result = await self._session.execute(select(ProfileModel).where(ProfileModel.id.in_(ids)))
        return {str(m.id): mapper.model_to_entity(m) for m in result.scalars().all()}

    async def search(
        self, query: str, *, exclude_user_id: str | None = None, limit: int = 20,
    ) -> list[Profile]:
        pattern = f"%{_escape_like(query)}%"
        stmt = (
            select(ProfileModel)
            .where(
                or_(
                    ProfileModel.username.ilike(pattern),
                    ProfileModel.first_name.ilike(pattern),
                    ProfileModel.last_name.ilike(pattern),
                )
            )
            .order_by(ProfileModel.username.asc())
            .limit(limit)
        )
        exclude = to_uuid(exclude_user_id)
        if exclude is not None:
            stmt = stmt.where(ProfileModel.id != exclude)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ProfileWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def set_presence(self, user_id: str, is_online: bool, last_seen: datetime) -> None:
        await self._session.execute(
            update(ProfileModel)
            .where(ProfileModel.id == to_uuid(user_id))
            .values(is_online=is_online, last_seen=last_seen)
        )

from __future__ import annotations

from types import TracebackType
from typing import Self

from sqlalchemy.ext.asyncio import AsyncSession

from setu_chat.infrastructure.db.repositories.conversation import (
    ConversationReaderRepo,
    ConversationWriterRepo,
)
from setu_chat.infrastructure.db.repositories.member import (
    MemberReaderRepo,
    MemberWriterRepo,
)
from setu_chat.infrastructure.db.repositories.message import (
    MessageReaderRepo,
    MessageWriterRepo,
)
from setu_chat.infrastructure.db.repositories.outbox import OutboxWriterRepo
from setu_chat.infrastructure.db.repositories.profile import (
    ProfileReaderRepo,
    ProfileWriterRepo,
)
from setu_chat.infrastructure.db.repositories.reaction import (
    ReactionReaderRepo,
    ReactionWriterRepo,
)
from setu_chat.infrastructure.db.repositories.read_state import (
    ReadReceiptReaderRepo,
    ReadReceiptWriterRepo,
)


class SqlAlchemyUoW:
    """Concrete Unit-of-Work backed by a single AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self.conversations = ConversationReaderRepo(session)
        self.conversations_w = ConversationWriterRepo(session)
        self.members = MemberReaderRepo(session)
        self.members_w = MemberWriterRepo(session)
        self.messages = MessageReaderRepo(session)
        self.messages_w = MessageWriterRepo(session)
        self.reactions = ReactionReaderRepo(session)
        self.reactions_w = ReactionWriterRepo(session)
        self.profiles = ProfileReaderRepo(session)
        self.profiles_w = ProfileWriterRepo(session)
        self.read_receipts = ReadReceiptReaderRepo(session)
        self.read_receipts_w = ReadReceiptWriterRepo(session)
        self.outbox = OutboxWriterRepo(session)

    async def flush(self) -> None:
        await self._session.flush()

    async def commit(self) -> None:
        await self._session.commit()

    async def rollback(self) -> None:
        await self._session.rollback()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()

"""Shared test fixtures."""
from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.application.dto.message import (
    ForwardError,
    ForwardResult,
    MessagePage,
    SendMessageDTO,
)
from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import NotFoundError
from setu_chat.application.repositories.outbox import OutboxRecord
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.member import ConversationMember
from setu_chat.domain.entities.message import Message, Reaction
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.entities.read_receipt import ReadReceipt
from setu_chat.domain.value_objects.enums import (
    ConversationType,
    MemberRole,
    MessageType,
)

BASE_TIME = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)  # 1700000000 s


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME) -> None:
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def user_principal() -> Principal:
    return Principal(user_id="u-alice")


@pytest.fixture
def other_principal() -> Principal:
    return Principal(user_id="u-bob")


# -- builders ---------------------------------------------------------------


def make_profile(
    user_id: str = "u-alice",
    *,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str = "Test",
    is_online: bool = False,
    last_seen: datetime | None = None,
) -> Profile:
    short = user_id.removeprefix("u-")
    return Profile(
        id=user_id,
        username=username if username is not None else short,
        first_name=first_name if first_name is not None else short.capitalize(),
        last_name=last_name,
        is_online=is_online,
        last_seen=last_seen,
    )


def make_message(
    *,
    message_id: str | None = None,
    conversation_id: str = "c-1",
    sender_id: str = "u-alice",
    content: str | None = "hello",
    message_type: MessageType = MessageType.TEXT,
    created_at: datetime | None = None,
    **overrides: Any,
) -> Message:
    ts = created_at or BASE_TIME
    return Message(
        id=message_id or f"m-{next(_ids)}",
        conversation_id=conversation_id,
        sender_id=sender_id,
        content=content,
        message_type=message_type,
        created_at=ts,
        updated_at=ts,
        **overrides,
    )


def make_member(
    user_id: str,
    role: MemberRole = MemberRole.MEMBER,
    *,
    conversation_id: str = "c-1",
    joined_at: datetime | None = None,
    profile: Profile | None = None,
) -> ConversationMember:
    return ConversationMember(
        conversation_id=conversation_id,
        user_id=user_id,
        role=role,
        joined_at=joined_at or BASE_TIME,
        profile=profile,
    )


def make_conversation(
    *,
    conversation_id: str = "c-1",
    type: ConversationType = ConversationType.GROUP,
    members: list[tuple[str, MemberRole]] | None = None,
    name: str | None = "Team",
    created_by: str | None = None,
    last_message_at: datetime | None = None,
    **overrides: Any,
) -> Conversation:
    if members is None:
        members = [("u-alice", MemberRole.OWNER), ("u-bob", MemberRole.MEMBER)]
    return Conversation(
        id=conversation_id,
        type=type,
        created_by=created_by or members[0][0],
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
        last_message_at=last_message_at,
        name=name if type == ConversationType.GROUP else None,
        members=tuple(
            make_member(
                uid, role, conversation_id=conversation_id,
                joined_at=BASE_TIME + timedelta(seconds=i),
            )
            for i, (uid, role) in enumerate(members)
        ),
        **overrides,
    )


_ids = itertools.count(1)


# -- repositories -----------------------------------------------------------


@dataclass
class FakeProfileReader:
    _store: dict[str, Profile] = field(default_factory=dict)

    async def get_by_id(self, user_id: str) -> Profile | None:
        return self._store.get(user_id)

    async def get_many(self, user_ids: list[str]) -> dict[str, Profile]:
        return {u: self._store[u] for u in user_ids if u in self._store}

    async def search(
        self, query: str, *, exclude_user_id: str | None = None, limit: int = 20,
    ) -> list[Profile]:
        q = query.lower()
        found = [
            p for p in self._store.values()
            if p.id != exclude_user_id
            and any(q in (v or "").lower() for v in (p.username, p.first_name, p.last_name))
        ]
        return sorted(found, key=lambda p: p.username or "")[:limit]


@dataclass
class FakeProfileWriter:
    _reader: FakeProfileReader

    async def set_presence(self, user_id: str, is_online: bool, last_seen: datetime) -> None:
        profile = self._reader._store.get(user_id)
        if profile is not None:
            self._reader._store[user_id] = replace(
                profile, is_online=is_online, last_seen=last_seen,
            )


@dataclass
class FakeMemberReader:
    _members: list[ConversationMember] = field(default_factory=list)
    _profiles: FakeProfileReader | None = None

    def _hydrate(self, member: ConversationMember) -> ConversationMember:
        if self._profiles is None:
            return member
        return replace(member, profile=self._profiles._store.get(member.user_id))

    async def get(self, conversation_id: str, user_id: str) -> ConversationMember | None:
        for m in self._members:
            if m.conversation_id == conversation_id and m.user_id == user_id:
                return self._hydrate(m)
        return None

    async def list_members(self, conversation_id: str) -> list[ConversationMember]:
        found = [m for m in self._members if m.conversation_id == conversation_id]
        return [self._hydrate(m) for m in sorted(found, key=lambda m: m.joined_at)]


@dataclass
class FakeMemberWriter:
    _reader: FakeMemberReader

    async def add_many(self, members: list[ConversationMember]) -> None:
        self._reader._members.extend(replace(m, profile=None) for m in members)

    async def remove(self, conversation_id: str, user_id: str) -> None:
        self._reader._members = [
            m for m in self._reader._members
            if not (m.conversation_id == conversation_id and m.user_id == user_id)
        ]

    def _update(self, conversation_id: str, user_id: str, **fields: Any) -> None:
        self._reader._members = [
            replace(m, **fields)
            if m.conversation_id == conversation_id and m.user_id == user_id
            else m
            for m in self._reader._members
        ]

    async def set_role(self, conversation_id: str, user_id: str, role: MemberRole) -> None:
        self._update(conversation_id, user_id, role=role)

    async def set_pinned(
        self, conversation_id: str, user_id: str, pinned_at: datetime | None,
    ) -> None:
        self._update(conversation_id, user_id, pinned_at=pinned_at)


@dataclass
class FakeConversationReader:
    _store: dict[str, Conversation] = field(default_factory=dict)
    _members: FakeMemberReader | None = None

    async def _assemble(self, conversation: Conversation) -> Conversation:
        assert self._members is not None
        members = await self._members.list_members(conversation.id)
        return replace(conversation, members=tuple(members))

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        conversation = self._store.get(conversation_id)
        return await self._assemble(conversation) if conversation else None

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        assert self._members is not None
        ids = {m.conversation_id for m in self._members._members if m.user_id == user_id}
        found = [
            await self._assemble(c) for c in self._store.values()
            if c.id in ids and not c.is_deleted
        ]
        return sorted(found, key=lambda c: c.last_message_at or c.created_at, reverse=True)

    async def find_private_between(
        self, user_id: str, other_user_id: str,
    ) -> Conversation | None:
        for conv in await self.list_for_user(user_id):
            if conv.type == ConversationType.PRIVATE and conv.member(other_user_id):
                return conv
        return None


@dataclass
class FakeConversationWriter:
    _reader: FakeConversationReader

    async def create(self, conversation: Conversation) -> Conversation:
        self._reader._store[conversation.id] = replace(conversation, members=())
        return conversation

    async def update_fields(self, conversation_id: str, fields: dict[str, Any]) -> None:
        self._reader._store[conversation_id] = replace(
            self._reader._store[conversation_id], **fields,
        )

    async def soft_delete(self, conversation_id: str) -> None:
        await self.update_fields(conversation_id, {"is_deleted": True})

    async def hard_delete(self, conversation_id: str) -> None:
        self._reader._store.pop(conversation_id, None)
        if self._reader._members is not None:
            self._reader._members._members = [
                m for m in self._reader._members._members
                if m.conversation_id != conversation_id
            ]

    async def touch_last_message_at(self, conversation_id: str, ts: datetime) -> None:
        await self.update_fields(conversation_id, {"last_message_at": ts})


@dataclass
class FakeMessageReader:
    _messages: list[Message] = field(default_factory=list)

    async def get_by_id(self, message_id: str) -> Message | None:
        return next((m for m in self._messages if m.id == message_id), None)

    async def get_many(self, message_ids: list[str]) -> list[Message]:
        return [m for m in self._messages if m.id in message_ids]

    async def list_page(
        self,
        conversation_id: str,
        *,
        cursor: str | None = None,
        limit: int = 50,
    ) -> MessagePage:
        ordered = sorted(
            (m for m in self._messages if m.conversation_id == conversation_id),
            key=lambda m: (m.created_at, m.id),
            reverse=True,
        )
        if cursor:
            ids = [m.id for m in ordered]
            ordered = ordered[ids.index(cursor) + 1:] if cursor in ids else []
        items = ordered[:limit]
        has_more = len(ordered) > limit
        return MessagePage(
            items=items,
            next_cursor=items[-1].id if has_more else None,
            has_more=has_more,
        )

    async def last_message(self, conversation_id: str) -> Message | None:
        page = await self.list_page(conversation_id, limit=1)
        return page.items[0] if page.items else None

    async def count_unread(
        self, conversation_id: str, user_id: str, since: datetime | None,
    ) -> int:
        return sum(
            1 for m in self._messages
            if m.conversation_id == conversation_id
            and m.sender_id != user_id
            and (since is None or m.created_at > since)
        )


@dataclass
class FakeMessageWriter:
    _reader: FakeMessageReader
    # inserts into these conversations raise, to exercise partial failures
    fail_for: set[str] = field(default_factory=set)

    async def create_if_not_exists(self, message: Message) -> tuple[Message, bool]:
        if message.conversation_id in self.fail_for:
            raise RuntimeError("database unavailable")
        if message.client_request_id is not None:
            for m in self._reader._messages:
                if (
                    m.conversation_id == message.conversation_id
                    and m.sender_id == message.sender_id
                    and m.client_request_id == message.client_request_id
                ):
                    return m, False
        self._reader._messages.append(message)
        return message, True

    async def update_fields(self, message_id: str, fields: dict[str, Any]) -> Message | None:
        for i, m in enumerate(self._reader._messages):
            if m.id == message_id:
                updated = replace(m, **fields)
                self._reader._messages[i] = updated
                return updated
        return None


@dataclass
class FakeReactionReader:
    _store: dict[str, list[Reaction]] = field(default_factory=dict)

    async def list_for_messages(self, message_ids: list[str]) -> dict[str, list[Reaction]]:
        return {i: list(self._store[i]) for i in message_ids if self._store.get(i)}


@dataclass
class FakeReactionWriter:
    _reader: FakeReactionReader

    async def toggle(self, message_id: str, user_id: str, reaction: str) -> bool:
        current = self._reader._store.setdefault(message_id, [])
        for r in current:
            if r.user_id == user_id and r.reaction == reaction:
                current.remove(r)
                return False
        current.append(Reaction(user_id=user_id, reaction=reaction, created_at=BASE_TIME))
        return True


@dataclass
class FakeReadReceiptReader:
    _store: dict[tuple[str, str], ReadReceipt] = field(default_factory=dict)

    async def get(self, conversation_id: str, user_id: str) -> ReadReceipt | None:
        return self._store.get((conversation_id, user_id))


@dataclass
class FakeReadReceiptWriter:
    _reader: FakeReadReceiptReader

    async def upsert_last_read(
        self,
        conversation_id: str,
        user_id: str,
        last_message_id: str,
        last_read_at: datetime,
    ) -> None:
        self._reader._store[(conversation_id, user_id)] = ReadReceipt(
            conversation_id=conversation_id,
            user_id=user_id,
            last_read_message_id=last_message_id,
            last_read_at=last_read_at,
        )


@dataclass
class FakeOutboxWriter:
    _records: list[dict[str, Any]] = field(default_factory=list)
    sent: list[int] = field(default_factory=list)
    failed: list[int] = field(default_factory=list)
    dead: list[int] = field(default_factory=list)

    async def add(self, topic: str, event_type: str, payload: dict[str, Any]) -> None:
        self._records.append({"topic": topic, "event_type": event_type, "payload": payload})

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        pending = [
            OutboxRecord(
                id=i, topic=r["topic"], event_type=r["event_type"], payload=r["payload"],
                attempts=self.failed.count(i),
            )
            for i, r in enumerate(self._records, start=1)
            if i not in self.sent and i not in self.dead
        ]
        return pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        self.sent.extend(ids)

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self.failed.append(record_id)

    async def mark_dead(self, record_id: int) -> None:
        self.dead.append(record_id)


@dataclass
class FakeUoW:
    """In-memory UoW for unit tests."""
    profiles: FakeProfileReader = field(default_factory=FakeProfileReader)
    profiles_w: FakeProfileWriter | None = None
    members: FakeMemberReader = field(default_factory=FakeMemberReader)
    members_w: FakeMemberWriter | None = None
    conversations: FakeConversationReader = field(default_factory=FakeConversationReader)
    conversations_w: FakeConversationWriter | None = None
    messages: FakeMessageReader = field(default_factory=FakeMessageReader)
    messages_w: FakeMessageWriter | None = None
    reactions: FakeReactionReader = field(default_factory=FakeReactionReader)
    reactions_w: FakeReactionWriter | None = None
    read_receipts: FakeReadReceiptReader = field(default_factory=FakeReadReceiptReader)
    read_receipts_w: FakeReadReceiptWriter | None = None
    outbox: FakeOutboxWriter = field(default_factory=FakeOutboxWriter)
    _committed: bool = False
    _rollbacks: int = 0

    def __post_init__(self) -> None:
        self.members._profiles = self.profiles
        self.conversations._members = self.members
        if self.profiles_w is None:
            self.profiles_w = FakeProfileWriter(self.profiles)
        if self.members_w is None:
            self.members_w = FakeMemberWriter(self.members)
        if self.conversations_w is None:
            self.conversations_w = FakeConversationWriter(self.conversations)
        if self.messages_w is None:
            self.messages_w = FakeMessageWriter(self.messages)
        if self.reactions_w is None:
            self.reactions_w = FakeReactionWriter(self.reactions)
        if self.read_receipts_w is None:
            self.read_receipts_w = FakeReadReceiptWriter(self.read_receipts)

    def add_profiles(self, *profiles: Profile) -> None:
        for p in profiles:
            self.profiles._store[p.id] = p

    def add_conversation(self, conversation: Conversation) -> None:
        self.conversations._store[conversation.id] = replace(conversation, members=())
        self.members._members.extend(replace(m, profile=None) for m in conversation.members)

    def add_messages(self, *messages: Message) -> None:
        self.messages._messages.extend(messages)

    @property
    def outbox_events(self) -> list[tuple[str, str]]:
        return [(r["topic"], r["event_type"]) for r in self.outbox._records]

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self._committed = True

    async def rollback(self) -> None:
        self._rollbacks += 1


@pytest.fixture
def uow() -> FakeUoW:
    store = FakeUoW()
    store.add_profiles(
        make_profile("u-alice", first_name="Alice", last_name="Ames"),
        make_profile("u-bob", first_name="Bob", last_name="Brown"),
        make_profile("u-carol", first_name="Carol", last_name="Cruz"),
        make_profile("u-dave", first_name="Dave", last_name="Diaz"),
    )
    return store


# -- realtime engine ----------------------------------------------------------


class FakeChatApi:
    """In-memory ChatApi.

    ``fail(method, exc)`` makes the next call of ``method`` raise ``exc``.
    ``hold(method)`` blocks calls of ``method`` until the returned event is set.
    """

    def __init__(self, user_id: str = "u-alice", clock: FixedClock | None = None) -> None:
        self.user_id = user_id
        self.clock = clock or FixedClock()
        self.profiles: dict[str, Profile] = {}
        self.messages: dict[str, Message] = {}
        self.reactions: dict[str, list[Reaction]] = {}
        self.conversations: dict[str, Conversation] = {}
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.next_ids: list[str] = []
        self._failures: dict[str, Exception] = {}
        self._gates: dict[str, asyncio.Event] = {}
        self._counter = itertools.count(1)

    def fail(self, method: str, exc: Exception) -> None:
        self._failures[method] = exc

    def hold(self, method: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[method] = gate
        return gate

    def called(self, method: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == method]

    async def _enter(self, method: str, *args: Any) -> None:
        self.calls.append((method, args))
        gate = self._gates.get(method)
        if gate is not None:
            await gate.wait()
        exc = self._failures.pop(method, None)
        if exc is not None:
            raise exc

    def _new_id(self) -> str:
        return self.next_ids.pop(0) if self.next_ids else f"m-{next(self._counter)}"

    def add_profiles(self, *profiles: Profile) -> None:
        for p in profiles:
            self.profiles[p.id] = p

    def add_messages(self, *messages: Message) -> None:
        for m in messages:
            self.messages[m.id] = m

    # MessageApi

    async def create_message(self, conversation_id: str, dto: SendMessageDTO) -> Message:
        await self._enter("create_message", conversation_id, dto)
        for m in self.messages.values():
            if m.client_request_id == dto.client_request_id:
                return m
        now = self.clock.now()
        message = Message(
            id=self._new_id(),
            conversation_id=conversation_id,
            sender_id=self.user_id,
            content=dto.content,
            message_type=dto.message_type,
            created_at=now,
            updated_at=now,
            file_url=dto.file.url if dto.file else None,
            file_name=dto.file.name if dto.file else None,
            file_size=dto.file.size if dto.file else None,
            reply_to=dto.reply_to,
            client_request_id=dto.client_request_id,
        )
        self.messages[message.id] = message
        return message

    async def update_message(self, message_id: str, content: str) -> Message:
        await self._enter("update_message", message_id, content)
        updated = replace(self.messages[message_id], content=content, is_edited=True)
        self.messages[message_id] = updated
        return updated

    async def delete_message(self, message_id: str) -> None:
        await self._enter("delete_message", message_id)
        self.messages[message_id] = replace(
            self.messages[message_id], is_deleted=True, content=None,
        )

    async def get_message(self, message_id: str) -> Message | None:
        await self._enter("get_message", message_id)
        return self.messages.get(message_id)

    async def list_messages(
        self, conversation_id: str, *, cursor: str | None = None, limit: int = 50,
    ) -> MessagePage:
        await self._enter("list_messages", conversation_id, cursor, limit)
        ordered = sorted(
            (m for m in self.messages.values() if m.conversation_id == conversation_id),
            key=lambda m: (m.created_at, m.id),
            reverse=True,
        )
        if cursor:
            ids = [m.id for m in ordered]
            ordered = ordered[ids.index(cursor) + 1:] if cursor in ids else []
        items = ordered[:limit]
        has_more = len(ordered) > limit
        return MessagePage(items=items, next_cursor=items[-1].id if has_more else None, has_more=has_more)

    async def toggle_reaction(self, message_id: str, emoji: str) -> None:
        await self._enter("toggle_reaction", message_id, emoji)
        current = self.reactions.setdefault(message_id, [])
        for r in current:
            if r.user_id == self.user_id and r.reaction == emoji:
                current.remove(r)
                return
        current.append(Reaction(user_id=self.user_id, reaction=emoji, created_at=self.clock.now()))

    async def list_reactions(self, message_id: str) -> list[Reaction]:
        await self._enter("list_reactions", message_id)
        return list(self.reactions.get(message_id, []))

    async def forward_message(
        self, message_id: str, conversation_ids: list[str], user_ids: list[str],
    ) -> ForwardResult:
        await self._enter("forward_message", message_id, conversation_ids, user_ids)
        original = self.messages[message_id]
        result = ForwardResult()
        for cid in conversation_ids:
            if cid not in self.conversations:
                result.errors.append(ForwardError(error="Conversation not found", conversation_id=cid))
                continue
            copy = replace(
                original,
                id=self._new_id(),
                conversation_id=cid,
                sender_id=self.user_id,
                forwarded_from=original.id,
                client_request_id=None,
            )
            self.messages[copy.id] = copy
            result.forwarded.append(copy)
        for uid in user_ids:
            result.errors.append(ForwardError(error="User not found", user_id=uid))
        return result

    # ConversationApi

    async def get_conversation(self, conversation_id: str) -> Conversation:
        await self._enter("get_conversation", conversation_id)
        if conversation_id not in self.conversations:
            raise NotFoundError("Conversation not found")
        return self.conversations[conversation_id]

    async def list_conversations(self) -> list[Conversation]:
        await self._enter("list_conversations")
        return list(self.conversations.values())

    async def create_conversation(self, dto: CreateConversationDTO) -> Conversation:
        await self._enter("create_conversation", dto)
        conv = make_conversation(
            conversation_id=f"c-{next(self._counter)}",
            type=dto.type,
            name=dto.name,
            members=[(self.user_id, MemberRole.OWNER)] + [(u, MemberRole.MEMBER) for u in dto.member_ids],
        )
        self.conversations[conv.id] = conv
        return conv

    async def update_conversation(
        self, conversation_id: str, dto: ConversationUpdateDTO,
    ) -> Conversation:
        await self._enter("update_conversation", conversation_id, dto)
        updated = replace(self.conversations[conversation_id], **dto.changes)
        self.conversations[conversation_id] = updated
        return updated

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._enter("delete_conversation", conversation_id)
        self.conversations.pop(conversation_id, None)

    async def add_members(self, conversation_id: str, user_ids: list[str]) -> Conversation:
        await self._enter("add_members", conversation_id, user_ids)
        conv = self.conversations[conversation_id]
        added = tuple(make_member(u, conversation_id=conversation_id) for u in user_ids)
        updated = replace(conv, members=conv.members + added)
        self.conversations[conversation_id] = updated
        return updated

    async def remove_member(self, conversation_id: str, user_id: str) -> Conversation:
        await self._enter("remove_member", conversation_id, user_id)
        conv = self.conversations[conversation_id]
        updated = replace(conv, members=tuple(m for m in conv.members if m.user_id != user_id))
        self.conversations[conversation_id] = updated
        return updated

    async def change_role(
        self, conversation_id: str, user_id: str, role: MemberRole,
    ) -> Conversation:
        await self._enter("change_role", conversation_id, user_id, role)
        conv = self.conversations[conversation_id]
        updated = replace(
            conv,
            members=tuple(replace(m, role=role) if m.user_id == user_id else m for m in conv.members),
        )
        self.conversations[conversation_id] = updated
        return updated

    async def toggle_pin(self, conversation_id: str) -> PinState:
        await self._enter("toggle_pin", conversation_id)
        return PinState(pinned=True, pinned_at=self.clock.now())

    async def mark_read(self, conversation_id: str, last_message_id: str) -> None:
        await self._enter("mark_read", conversation_id, last_message_id)

    # IdentityLookup / PresenceApi

    async def get_profile(self, user_id: str) -> Profile | None:
        await self._enter("get_profile", user_id)
        return self.profiles.get(user_id)

    async def search_users(self, query: str) -> list[Profile]:
        await self._enter("search_users", query)
        q = query.lower()
        return [p for p in self.profiles.values() if q in (p.username or "").lower()]

    async def set_presence(self, is_online: bool, last_seen: datetime) -> None:
        await self._enter("set_presence", is_online, last_seen)


class RecordingChannel:
    """BroadcastChannel stand-in that records what was sent."""

    def __init__(self, topic: str = "typing:c-1") -> None:
        self.topic = topic
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.closed = False
        self.error: Exception | None = None

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append((str(event), payload))

    async def close(self) -> None:
        self.closed = True

    def events(self) -> list[str]:
        return [e for e, _ in self.sent]


@pytest.fixture
def me() -> Profile:
    return make_profile("u-alice", first_name="Alice", last_name="Ames")


@pytest.fixture
def api(clock: FixedClock) -> FakeChatApi:
    fake = FakeChatApi(user_id="u-alice", clock=clock)
    fake.add_profiles(
        make_profile("u-alice", first_name="Alice", last_name="Ames"),
        make_profile("u-bob", first_name="Bob", last_name="Brown"),
        make_profile("u-carol", first_name="Carol", last_name="Cruz"),
    )
    return fake

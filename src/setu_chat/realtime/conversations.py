"""Sidebar view of the user's conversations."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, assert_never

from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.message import Message
from setu_chat.domain.value_objects.enums import ConversationType, MessageType

PREVIEW_LENGTH = 40


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    title: str
    preview: str
    avatar_url: str | None
    unread_count: int
    is_online: bool = False


def truncate(text: str, length: int = PREVIEW_LENGTH) -> str:
    return text if len(text) <= length else f"{text[:length]}..."


def message_preview(message: Message | None) -> str:
    if message is None:
        return "Start a conversation"
    if message.is_deleted:
        return "This message was deleted"
    if message.content:
        return truncate(message.content)
    match message.message_type:
        case MessageType.IMAGE:
            return "📷 Image"
        case MessageType.FILE:
            return "📎 File"
        case MessageType.TEXT | MessageType.SYSTEM:
            return "Start a conversation"
        case _:
            assert_never(message.message_type)


class ConversationList:
    """Pinned conversations first, then most recently active."""

    def __init__(self, user_id: str) -> None:
        self._user_id = user_id
        self._items: dict[str, Conversation] = {}
        self.loaded = False

    def _pinned_at(self, conversation: Conversation) -> datetime | None:
        me = conversation.member(self._user_id)
        return me.pinned_at if me else None

    def _activity(self, conversation: Conversation) -> float:
        return (conversation.last_message_at or conversation.created_at).timestamp()

    @property
    def items(self) -> list[Conversation]:
        pinned = [c for c in self._items.values() if self._pinned_at(c) is not None]
        rest = [c for c in self._items.values() if self._pinned_at(c) is None]
        pinned.sort(key=lambda c: self._pinned_at(c).timestamp(), reverse=True)  # type: ignore[union-attr]
        rest.sort(key=self._activity, reverse=True)
        return pinned + rest

    def get(self, conversation_id: str) -> Conversation | None:
        return self._items.get(conversation_id)

    def set_all(self, conversations: Iterable[Conversation]) -> None:
        self._items = {c.id: c for c in conversations if not c.is_deleted}
        self.loaded = True

    def replace(self, conversation: Conversation) -> None:
        """Swap in a fresh copy of a conversation.

        Membership and settings responses carry no list annotations, so the
        known last message and unread count are kept when the copy lacks them.
        """
        if conversation.is_deleted:
            self.remove(conversation.id)
            return
        current = self._items.get(conversation.id)
        if current is not None and conversation.last_message is None:
            conversation = replace(
                conversation,
                last_message=current.last_message,
                unread_count=conversation.unread_count or current.unread_count,
            )
        self._items[conversation.id] = conversation

    def remove(self, conversation_id: str) -> Conversation | None:
        return self._items.pop(conversation_id, None)

    def touch(self, message: Message) -> None:
        conversation = self._items.get(message.conversation_id)
        if conversation is None:
            return
        self._items[conversation.id] = replace(
            conversation, last_message=message, last_message_at=message.created_at,
        )

    def increment_unread(self, conversation_id: str) -> None:
        conversation = self._items.get(conversation_id)
        if conversation is not None:
            self._items[conversation_id] = replace(
                conversation, unread_count=conversation.unread_count + 1,
            )

    def reset_unread(self, conversation_id: str) -> None:
        conversation = self._items.get(conversation_id)
        if conversation is not None and conversation.unread_count:
            self._items[conversation_id] = replace(conversation, unread_count=0)

    def set_pinned(self, conversation_id: str, pinned_at: datetime | None) -> None:
        conversation = self._items.get(conversation_id)
        if conversation is None:
            return
        members = tuple(
            replace(m, pinned_at=pinned_at) if m.user_id == self._user_id else m
            for m in conversation.members
        )
        self._items[conversation_id] = replace(conversation, members=members)

    def describe(self, conversation: Conversation) -> ConversationSummary:
        preview = message_preview(conversation.last_message)
        match conversation.type:
            case ConversationType.SELF:
                return ConversationSummary(
                    title="Saved Messages",
                    preview=preview,
                    avatar_url=None,
                    unread_count=conversation.unread_count,
                )
            case ConversationType.GROUP:
                return ConversationSummary(
                    title=conversation.name or "Group Chat",
                    preview=preview,
                    avatar_url=conversation.avatar_url,
                    unread_count=conversation.unread_count,
                )
            case ConversationType.PRIVATE:
                other = next(
                    (m for m in conversation.members if m.user_id != self._user_id), None,
                )
                profile = other.profile if other else None
                return ConversationSummary(
                    title=(profile.full_name or "Unknown User") if profile else "Unknown User",
                    preview=preview,
                    avatar_url=profile.avatar_url if profile else None,
                    unread_count=conversation.unread_count,
                    is_online=profile.is_online if profile else False,
                )
            case _:
                assert_never(conversation.type)

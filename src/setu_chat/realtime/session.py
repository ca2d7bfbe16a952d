"""A signed-in user's chat session: conversation list plus one open conversation.

Opening a conversation tears down everything tied to the previous one (change
subscription, typing and reaction channels, typing state) before the store is
activated for the new id. Every await in the open sequence re-checks the store
generation so a slow response for an abandoned conversation is never applied.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.application.dto.message import FileAttachment, ForwardResult
from setu_chat.application.exceptions import ConflictError, NotFoundError
from setu_chat.application.policies.permissions import (
    assert_can_add_members,
    assert_can_change_role,
    assert_can_delete_group,
    assert_can_edit_settings,
    assert_can_leave,
    assert_can_remove_member,
    assert_group,
)
from setu_chat.application.ports.bus import BroadcastChannel, EventBus, Subscription
from setu_chat.application.ports.chat_api import ChatApi
from setu_chat.application.ports.clock import Clock, SystemClock
from setu_chat.config import settings
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.message import Message
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import ConversationType, MemberRole, MessageType
from setu_chat.domain.value_objects.ids import reaction_topic, typing_topic
from setu_chat.realtime.conversations import ConversationList
from setu_chat.realtime.presence import PresenceBook
from setu_chat.realtime.reconciler import ActionResult, MessageReconciler
from setu_chat.realtime.store import ConversationStore
from setu_chat.realtime.typing import TypingEmitter, TypingTracker

logger = logging.getLogger(__name__)


class ChatSession:
    def __init__(
        self,
        user: Profile,
        api: ChatApi,
        bus: EventBus,
        *,
        clock: Clock | None = None,
        page_size: int | None = None,
        typing_timeout: float | None = None,
        typing_idle: float | None = None,
    ) -> None:
        self.user = user
        self._api = api
        self._bus = bus
        self._clock = clock or SystemClock()
        self._page_size = settings.MESSAGE_PAGE_SIZE if page_size is None else page_size
        self._typing_idle = typing_idle

        self.store = ConversationStore()
        self.conversations = ConversationList(user.id)
        self.typing = TypingTracker(user.id, timeout=typing_timeout)
        self.presence = PresenceBook()
        self.active: Conversation | None = None

        self._reconciler: MessageReconciler | None = None
        self._subscription: Subscription | None = None
        self._typing_channel: BroadcastChannel | None = None
        self._reaction_channel: BroadcastChannel | None = None
        self._emitter: TypingEmitter | None = None
        self._loading_older = False

    @property
    def reconciler(self) -> MessageReconciler:
        if self._reconciler is None:
            raise ConflictError("No conversation is open")
        return self._reconciler

    # -- conversation list ----------------------------------------------

    async def refresh_conversations(self) -> list[Conversation]:
        conversations = await self._api.list_conversations()
        self.conversations.set_all(conversations)
        for conversation in conversations:
            self.presence.seed(m.profile for m in conversation.members if m.profile)
        return self.conversations.items

    async def create_conversation(self, dto: CreateConversationDTO) -> Conversation:
        conversation = await self._api.create_conversation(dto)
        self.conversations.replace(conversation)
        return conversation

    def note_incoming(self, message: Message) -> None:
        """Account for a message that arrived outside the open conversation."""
        self.conversations.touch(message)
        if message.sender_id != self.user.id and message.conversation_id != self.store.conversation_id:
            self.conversations.increment_unread(message.conversation_id)

    # -- open / close -----------------------------------------------------

    async def open_conversation(self, conversation_id: str) -> bool:
        """Make ``conversation_id`` the active conversation and load its first page.

        Returns False when the conversation was abandoned (another one was
        opened meanwhile) or the initial load failed.
        """
        await self.close_conversation()
        generation = self.store.activate(conversation_id)
        opened: list[Subscription | BroadcastChannel] = []

        async def _abandon() -> bool:
            for resource in opened:
                await _close_quietly(resource)
            return False

        reaction_channel = await self._bus.open_broadcast(
            reaction_topic(conversation_id), self._on_reaction_broadcast,
        )
        opened.append(reaction_channel)
        if not self.store.is_current(generation):
            return await _abandon()

        reconciler = MessageReconciler(
            self.store,
            self._api,
            self._api,
            self.user,
            reaction_channel=reaction_channel,
            clock=self._clock,
        )

        typing_channel = await self._bus.open_broadcast(
            typing_topic(conversation_id), self.typing.handle_broadcast,
        )
        opened.append(typing_channel)
        if not self.store.is_current(generation):
            return await _abandon()

        subscription = await self._bus.subscribe_changes(conversation_id, reconciler.handle_change)
        opened.append(subscription)
        if not self.store.is_current(generation):
            return await _abandon()

        # From here on close_conversation owns the channels.
        self._reaction_channel = reaction_channel
        self._typing_channel = typing_channel
        self._subscription = subscription
        self._reconciler = reconciler
        self._emitter = TypingEmitter(
            typing_channel, self.user, idle_seconds=self._typing_idle, clock=self._clock,
        )

        try:
            conversation, page = await asyncio.gather(
                self._api.get_conversation(conversation_id),
                self._api.list_messages(conversation_id, limit=self._page_size),
            )
        except Exception:
            logger.exception("Loading conversation %s failed", conversation_id)
            return False

        if not self.store.is_current(generation):
            logger.debug("Discarding load for abandoned conversation %s", conversation_id)
            return False

        self.active = conversation
        self.presence.seed(m.profile for m in conversation.members if m.profile)
        self.conversations.replace(conversation)
        loaded = self.store.load(conversation_id, page)
        if page.items:
            await self.mark_read(conversation_id, page.items[0].id)
        return loaded

    async def close_conversation(self) -> None:
        emitter = self._emitter
        resources = [
            r for r in (self._subscription, self._typing_channel, self._reaction_channel)
            if r is not None
        ]
        self._emitter = None
        self._subscription = None
        self._typing_channel = None
        self._reaction_channel = None
        self._reconciler = None
        self.active = None
        self.typing.clear()
        if self.store.conversation_id is not None:
            self.store.deactivate()

        if emitter is not None:
            await emitter.close()
        for resource in resources:
            await _close_quietly(resource)
        if self.store.conversation_id is None:
            # frames delivered while the channels were closing
            self.typing.clear()

    async def load_older(self) -> bool:
        conversation_id = self.store.conversation_id
        cursor = self.store.cursor
        if conversation_id is None or not self.store.has_more or not cursor:
            return False
        if self._loading_older:
            return False
        self._loading_older = True
        try:
            page = await self._api.list_messages(
                conversation_id, cursor=cursor, limit=self._page_size,
            )
        except Exception:
            logger.warning("Loading older messages for %s failed", conversation_id, exc_info=True)
            return False
        finally:
            self._loading_older = False
        return self.store.load_older(conversation_id, page, cursor)

    async def _on_reaction_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if self._reconciler is not None:
            await self._reconciler.on_reaction_broadcast(event, payload)

    # -- messages ---------------------------------------------------------

    async def send(
        self,
        content: str | None,
        *,
        message_type: MessageType = MessageType.TEXT,
        file: FileAttachment | None = None,
        reply_to: Message | None = None,
    ) -> ActionResult:
        reconciler = self.reconciler
        if self._emitter is not None:
            await self._emitter.stop()
        result = await reconciler.send(
            content, message_type=message_type, file=file, reply_to=reply_to,
        )
        if result.ok:
            sent = self.store.get(result.message_id)
            if sent is not None:
                self.conversations.touch(sent)
        return result

    async def retry(self, temp_id: str) -> ActionResult:
        return await self.reconciler.retry(temp_id)

    async def edit(self, message_id: str, content: str) -> ActionResult:
        return await self.reconciler.edit(message_id, content)

    async def delete(self, message_id: str) -> ActionResult:
        return await self.reconciler.delete(message_id)

    async def toggle_reaction(self, message_id: str, emoji: str) -> ActionResult:
        return await self.reconciler.toggle_reaction(message_id, emoji)

    async def forward(
        self,
        message_id: str,
        *,
        conversation_ids: list[str] | tuple[str, ...] = (),
        user_ids: list[str] | tuple[str, ...] = (),
    ) -> ForwardResult:
        result = await self.reconciler.forward(
            message_id, conversation_ids=conversation_ids, user_ids=user_ids,
        )
        for copy in result.forwarded:
            if self.conversations.get(copy.conversation_id) is not None:
                self.conversations.touch(copy)
        return result

    async def keystroke(self) -> None:
        if self._emitter is not None:
            await self._emitter.keystroke()

    async def mark_read(self, conversation_id: str, last_message_id: str) -> None:
        self.conversations.reset_unread(conversation_id)
        try:
            await self._api.mark_read(conversation_id, last_message_id)
        except Exception:
            logger.debug("Marking %s read failed", conversation_id, exc_info=True)

    # -- membership and settings -----------------------------------------

    def _conversation(self, conversation_id: str) -> Conversation:
        if self.active is not None and self.active.id == conversation_id:
            return self.active
        conversation = self.conversations.get(conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation not found")
        return conversation

    def _merge(self, conversation: Conversation) -> Conversation:
        self.conversations.replace(conversation)
        if self.active is not None and self.active.id == conversation.id:
            self.active = conversation
        return conversation

    async def _forget(self, conversation_id: str) -> None:
        self.conversations.remove(conversation_id)
        if self.store.conversation_id == conversation_id:
            await self.close_conversation()

    async def update_settings(
        self, conversation_id: str, dto: ConversationUpdateDTO,
    ) -> Conversation:
        conversation = self._conversation(conversation_id)
        assert_group(conversation)
        assert_can_edit_settings(conversation.role_of(self.user.id))
        return self._merge(await self._api.update_conversation(conversation_id, dto))

    async def add_members(self, conversation_id: str, user_ids: list[str]) -> Conversation:
        conversation = self._conversation(conversation_id)
        assert_group(conversation)
        assert_can_add_members(conversation.role_of(self.user.id))
        return self._merge(await self._api.add_members(conversation_id, user_ids))

    async def remove_member(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = self._conversation(conversation_id)
        assert_group(conversation)
        assert_can_remove_member(
            self.user.id,
            conversation.role_of(self.user.id),
            user_id,
            conversation.role_of(user_id),
        )
        updated = await self._api.remove_member(conversation_id, user_id)
        if user_id == self.user.id:
            await self._forget(conversation_id)
            return updated
        return self._merge(updated)

    async def leave(self, conversation_id: str) -> None:
        conversation = self._conversation(conversation_id)
        assert_group(conversation)
        assert_can_leave(conversation.role_of(self.user.id))
        await self._api.remove_member(conversation_id, self.user.id)
        await self._forget(conversation_id)

    async def change_role(
        self, conversation_id: str, user_id: str, role: MemberRole,
    ) -> Conversation:
        conversation = self._conversation(conversation_id)
        assert_group(conversation)
        assert_can_change_role(
            self.user.id,
            conversation.role_of(self.user.id),
            user_id,
            conversation.role_of(user_id),
            role,
        )
        return self._merge(await self._api.change_role(conversation_id, user_id, role))

    async def delete_conversation(self, conversation_id: str) -> None:
        conversation = self._conversation(conversation_id)
        if conversation.type == ConversationType.GROUP:
            assert_can_delete_group(conversation.role_of(self.user.id))
        await self._api.delete_conversation(conversation_id)
        await self._forget(conversation_id)

    async def toggle_pin(self, conversation_id: str) -> PinState:
        state = await self._api.toggle_pin(conversation_id)
        self.conversations.set_pinned(conversation_id, state.pinned_at)
        return state


async def _close_quietly(resource: Subscription | BroadcastChannel) -> None:
    try:
        await resource.close()
    except Exception:
        logger.debug("Closing %r failed", resource, exc_info=True)

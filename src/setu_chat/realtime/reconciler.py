"""Merges local optimistic writes with server confirmations and remote changes.

One reconciler is built per conversation activation. It captures the store
generation at construction time; any result that lands after the store moved
on to another conversation is dropped instead of applied.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, assert_never

from setu_chat.application.dto.message import (
    FileAttachment,
    ForwardError,
    ForwardResult,
    SendMessageDTO,
)
from setu_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    UnconfirmedMessageError,
    ValidationError,
)
from setu_chat.application.ports.bus import BroadcastChannel
from setu_chat.application.ports.chat_api import IdentityLookup, MessageApi
from setu_chat.application.ports.clock import Clock, SystemClock
from setu_chat.domain.entities.message import Message, Reaction, ReplySnapshot
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.events.message_changed import MessageChanged
from setu_chat.domain.value_objects.enums import (
    BroadcastEvent,
    ChangeOp,
    DeliveryState,
    MessageType,
)
from setu_chat.domain.value_objects.ids import TEMP_ID_PREFIX, is_temp_id
from setu_chat.realtime.store import ConversationStore

logger = logging.getLogger(__name__)

# Columns a remote update may change.
DURABLE_FIELDS = (
    "content",
    "message_type",
    "file_url",
    "file_name",
    "file_size",
    "is_edited",
    "is_deleted",
    "updated_at",
)


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    message_id: str
    action: str
    error: str | None = None


def describe_error(exc: BaseException) -> str:
    if isinstance(exc, AppError) and exc.detail:
        return exc.detail
    return str(exc) or exc.__class__.__name__


def durable_fields(message: Message) -> dict[str, Any]:
    return {name: getattr(message, name) for name in DURABLE_FIELDS}


class MessageReconciler:
    def __init__(
        self,
        store: ConversationStore,
        api: MessageApi,
        identity: IdentityLookup,
        user: Profile,
        *,
        reaction_channel: BroadcastChannel | None = None,
        clock: Clock | None = None,
    ) -> None:
        if store.conversation_id is None:
            raise ConflictError("No active conversation")
        self._store = store
        self._api = api
        self._identity = identity
        self._user = user
        self._reaction_channel = reaction_channel
        self._clock = clock or SystemClock()
        self._conversation_id = store.conversation_id
        self._generation = store.generation

    @property
    def conversation_id(self) -> str:
        return self._conversation_id

    def is_live(self) -> bool:
        return (
            self._store.is_current(self._generation)
            and self._store.conversation_id == self._conversation_id
        )

    # -- sending ---------------------------------------------------------

    def _next_temp_id(self) -> str:
        ms = int(self._clock.now().timestamp() * 1000)
        while self._store.get(f"{TEMP_ID_PREFIX}{ms}") is not None:
            ms += 1
        return f"{TEMP_ID_PREFIX}{ms}"

    async def send(
        self,
        content: str | None,
        *,
        message_type: MessageType = MessageType.TEXT,
        file: FileAttachment | None = None,
        reply_to: Message | None = None,
    ) -> ActionResult:
        """Show the message immediately, then confirm it with the server."""
        if message_type == MessageType.TEXT and not (content or "").strip():
            raise ValidationError("Message content is required")
        if message_type in (MessageType.IMAGE, MessageType.FILE) and file is None:
            raise ValidationError("A file is required for this message type")

        now = self._clock.now()
        temp_id = self._next_temp_id()
        reply_snapshot = None
        if reply_to is not None:
            reply_snapshot = ReplySnapshot(
                id=reply_to.id,
                content=reply_to.content,
                message_type=reply_to.message_type,
                sender_id=reply_to.sender_id,
                sender=reply_to.sender,
            )
        optimistic = Message(
            id=temp_id,
            conversation_id=self._conversation_id,
            sender_id=self._user.id,
            content=content,
            message_type=message_type,
            created_at=now,
            updated_at=now,
            file_url=file.url if file else None,
            file_name=file.name if file else None,
            file_size=file.size if file else None,
            reply_to=reply_to.id if reply_to else None,
            client_request_id=uuid.uuid4().hex,
            sender=self._user,
            reply_message=reply_snapshot,
            delivery=DeliveryState.PENDING,
        )
        self._store.append(optimistic)
        return await self._deliver(optimistic)

    async def retry(self, temp_id: str) -> ActionResult:
        """Re-send a failed message with its original correlation token."""
        message = self._store.get(temp_id)
        if message is None:
            raise NotFoundError("Message not found")
        if message.delivery != DeliveryState.FAILED:
            raise ConflictError("Only failed messages can be retried")
        pending = self._store.apply_update(temp_id, delivery=DeliveryState.PENDING, error=None)
        assert pending is not None
        return await self._deliver(pending)

    async def _deliver(self, optimistic: Message) -> ActionResult:
        temp_id = optimistic.id
        file = None
        if optimistic.file_url:
            file = FileAttachment(
                url=optimistic.file_url,
                name=optimistic.file_name or "",
                size=optimistic.file_size or 0,
            )
        dto = SendMessageDTO(
            content=optimistic.content,
            client_request_id=optimistic.client_request_id or uuid.uuid4().hex,
            message_type=optimistic.message_type,
            file=file,
            reply_to=optimistic.reply_to,
        )
        try:
            confirmed = await self._api.create_message(self._conversation_id, dto)
        except Exception as exc:
            error = describe_error(exc)
            logger.warning("Sending %s failed: %s", temp_id, error)
            if self.is_live():
                self._store.apply_update(temp_id, delivery=DeliveryState.FAILED, error=error)
            return ActionResult(ok=False, message_id=temp_id, action="send", error=error)

        confirmed = replace(
            confirmed,
            sender=confirmed.sender or optimistic.sender,
            reply_message=confirmed.reply_message or optimistic.reply_message,
            delivery=DeliveryState.SENT,
            error=None,
        )
        if self.is_live():
            self._store.replace_temp(temp_id, confirmed)
        else:
            logger.debug("Confirmation for %s arrived after switching away", temp_id)
        return ActionResult(ok=True, message_id=confirmed.id, action="send")

    # -- remote changes --------------------------------------------------

    async def handle_change(self, event: MessageChanged) -> None:
        if event.conversation_id != self._conversation_id or not self.is_live():
            return
        match event.op:
            case ChangeOp.INSERT:
                await self._remote_insert(event.row)
            case ChangeOp.UPDATE:
                self._remote_update(event.row)
            case _:
                assert_never(event.op)

    async def _remote_insert(self, row: Message) -> None:
        if row.sender_id == self._user.id:
            # our own insert; the send confirmation already placed it
            return
        if self._store.get(row.id) is not None:
            return
        try:
            sender = row.sender or await self._identity.get_profile(row.sender_id)
            reply = await self._resolve_reply(row.reply_to) if row.reply_to else None
        except Exception:
            logger.warning("Lookup for incoming message %s failed", row.id, exc_info=True)
            return
        if sender is None:
            logger.warning("Dropping message %s: sender %s not found", row.id, row.sender_id)
            return
        if not self.is_live():
            logger.debug("Dropping message %s: conversation no longer active", row.id)
            return
        self._store.append(
            replace(row, sender=sender, reply_message=reply, delivery=DeliveryState.SENT, error=None)
        )

    async def _resolve_reply(self, reply_to: str) -> ReplySnapshot | None:
        target = self._store.get(reply_to)
        if target is None:
            target = await self._api.get_message(reply_to)
        if target is None:
            return None
        return ReplySnapshot(
            id=target.id,
            content=target.content,
            message_type=target.message_type,
            sender_id=target.sender_id,
            sender=target.sender,
        )

    def _remote_update(self, row: Message) -> None:
        if self._store.apply_update(row.id, **durable_fields(row)) is None:
            logger.debug("Update for unknown message %s ignored", row.id)

    async def handle_reaction_sync(self, message_id: str) -> None:
        """Replace a message's reactions with the server's current set."""
        if is_temp_id(message_id) or self._store.get(message_id) is None:
            return
        try:
            reactions = await self._api.list_reactions(message_id)
        except Exception:
            logger.debug("Reaction refresh for %s failed", message_id, exc_info=True)
            return
        if self.is_live():
            self._store.apply_update(message_id, reactions=tuple(reactions))

    async def on_reaction_broadcast(self, event: str, payload: dict[str, Any]) -> None:
        if event != BroadcastEvent.REACTION_UPDATE:
            return
        message_id = payload.get("message_id")
        if message_id:
            await self.handle_reaction_sync(str(message_id))

    # -- optimistic mutations -------------------------------------------

    def _require(self, message_id: str, *, own: bool) -> Message:
        if is_temp_id(message_id):
            raise UnconfirmedMessageError("Message has not been confirmed yet")
        message = self._store.get(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        if own and message.sender_id != self._user.id:
            raise ForbiddenError("Only the sender can change this message")
        return message

    def _rollback(self, snapshot: Message, action: str, exc: Exception) -> ActionResult:
        error = describe_error(exc)
        logger.warning("%s of %s failed, rolling back: %s", action, snapshot.id, error)
        if self.is_live():
            self._store.restore(snapshot)
        return ActionResult(ok=False, message_id=snapshot.id, action=action, error=error)

    async def edit(self, message_id: str, content: str) -> ActionResult:
        snapshot = self._require(message_id, own=True)
        if snapshot.is_deleted:
            raise ConflictError("Cannot edit a deleted message")
        if not content.strip():
            raise ValidationError("Message content is required")

        self._store.apply_update(message_id, content=content, is_edited=True)
        try:
            confirmed = await self._api.update_message(message_id, content)
        except Exception as exc:
            return self._rollback(snapshot, "edit", exc)
        if self.is_live():
            self._store.apply_update(message_id, **durable_fields(confirmed))
        return ActionResult(ok=True, message_id=message_id, action="edit")

    async def delete(self, message_id: str) -> ActionResult:
        snapshot = self._require(message_id, own=True)
        if snapshot.is_deleted:
            return ActionResult(ok=True, message_id=message_id, action="delete")

        self._store.apply_update(
            message_id,
            is_deleted=True,
            content=None,
            file_url=None,
            file_name=None,
            file_size=None,
        )
        try:
            await self._api.delete_message(message_id)
        except Exception as exc:
            return self._rollback(snapshot, "delete", exc)
        return ActionResult(ok=True, message_id=message_id, action="delete")

    async def toggle_reaction(self, message_id: str, emoji: str) -> ActionResult:
        snapshot = self._require(message_id, own=False)
        me = self._user.id
        if any(r.user_id == me and r.reaction == emoji for r in snapshot.reactions):
            reactions = tuple(
                r for r in snapshot.reactions if not (r.user_id == me and r.reaction == emoji)
            )
        else:
            reactions = snapshot.reactions + (
                Reaction(user_id=me, reaction=emoji, created_at=self._clock.now()),
            )

        self._store.apply_update(message_id, reactions=reactions)
        try:
            await self._api.toggle_reaction(message_id, emoji)
        except Exception as exc:
            return self._rollback(snapshot, "react", exc)
        await self._announce_reaction(message_id)
        return ActionResult(ok=True, message_id=message_id, action="react")

    async def _announce_reaction(self, message_id: str) -> None:
        if self._reaction_channel is None:
            return
        try:
            await self._reaction_channel.send(
                BroadcastEvent.REACTION_UPDATE, {"message_id": message_id},
            )
        except Exception:
            logger.debug("Reaction broadcast for %s failed", message_id, exc_info=True)

    async def forward(
        self,
        message_id: str,
        *,
        conversation_ids: list[str] | tuple[str, ...] = (),
        user_ids: list[str] | tuple[str, ...] = (),
    ) -> ForwardResult:
        if is_temp_id(message_id):
            raise UnconfirmedMessageError("Message has not been confirmed yet")
        if not conversation_ids and not user_ids:
            raise ValidationError("Select at least one recipient")
        try:
            result = await self._api.forward_message(
                message_id, list(conversation_ids), list(user_ids),
            )
        except Exception as exc:
            error = describe_error(exc)
            logger.warning("Forwarding %s failed: %s", message_id, error)
            return ForwardResult(errors=[ForwardError(error=error)])

        if self.is_live():
            for copy in result.forwarded:
                if copy.conversation_id == self._conversation_id:
                    self._store.append(replace(copy, sender=copy.sender or self._user))
        return result

"""In-memory projection of the active conversation's message list.

Ordering is by position in the backing list. Only ``load`` sorts (by
``created_at`` ascending); after that every insert keeps its position and a
confirmed message takes the exact slot of the temp message it replaces.
Message ids are unique at all times.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable

from setu_chat.application.dto.message import MessagePage
from setu_chat.domain.entities.message import Message
from setu_chat.domain.value_objects.ids import is_temp_id

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ConversationStore:
    """Owns the messages of exactly one active conversation."""

    def __init__(self) -> None:
        self._conversation_id: str | None = None
        self._generation = 0
        self._messages: list[Message] = []
        self._cursor: str | None = None
        self._has_more = False
        self._seen_cursors: set[str] = set()
        self._listeners: list[Listener] = []

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def ids(self) -> list[str]:
        return [m.id for m in self._messages]

    @property
    def cursor(self) -> str | None:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._has_more

    def is_current(self, generation: int) -> bool:
        return generation == self._generation and self._conversation_id is not None

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Store listener failed")

    def _reset(self) -> None:
        self._messages = []
        self._cursor = None
        self._has_more = False
        self._seen_cursors = set()

    # -- lifecycle -------------------------------------------------------

    def activate(self, conversation_id: str) -> int:
        """Switch to ``conversation_id``, discarding the previous list."""
        self._conversation_id = conversation_id
        self._generation += 1
        self._reset()
        self._notify()
        return self._generation

    def deactivate(self) -> None:
        self._conversation_id = None
        self._generation += 1
        self._reset()
        self._notify()

    # -- pages -----------------------------------------------------------

    def load(self, conversation_id: str, page: MessagePage) -> bool:
        """Replace the list with a freshly fetched (newest-first) page.

        Returns False and changes nothing if ``conversation_id`` is no longer
        active. Unconfirmed local messages and live inserts newer than the
        page survive at the tail.
        """
        if conversation_id != self._conversation_id:
            logger.debug("Discarding stale page for conversation %s", conversation_id)
            return False

        loaded = sorted(_unique(page.items), key=lambda m: (m.created_at, m.id))
        loaded_ids = {m.id for m in loaded}
        newest = loaded[-1].created_at if loaded else None
        kept = [
            m for m in self._messages
            if m.id not in loaded_ids
            and (is_temp_id(m.id) or newest is None or m.created_at > newest)
        ]

        self._messages = loaded + kept
        self._cursor = page.next_cursor
        self._has_more = page.has_more
        self._seen_cursors = set()
        self._notify()
        return True

    def load_older(self, conversation_id: str, page: MessagePage, cursor: str) -> bool:
        """Prepend an older (newest-first) page fetched with ``cursor``.

        A cursor that was already applied is ignored, and ids already present
        are skipped.
        """
        if conversation_id != self._conversation_id:
            logger.debug("Discarding stale older page for conversation %s", conversation_id)
            return False
        if cursor in self._seen_cursors:
            logger.debug("Older page for cursor %s already applied", cursor)
            return False
        self._seen_cursors.add(cursor)

        present = set(self.ids)
        older = [m for m in _unique(reversed(page.items)) if m.id not in present]
        self._messages = older + self._messages
        self._cursor = page.next_cursor
        self._has_more = page.has_more
        self._notify()
        return True

    # -- single message mutations ---------------------------------------

    def _index_of(self, message_id: str) -> int | None:
        for i, m in enumerate(self._messages):
            if m.id == message_id:
                return i
        return None

    def get(self, message_id: str) -> Message | None:
        idx = self._index_of(message_id)
        return self._messages[idx] if idx is not None else None

    def find_by_request_id(self, client_request_id: str) -> Message | None:
        for m in self._messages:
            if m.client_request_id == client_request_id:
                return m
        return None

    def append(self, message: Message) -> bool:
        if self._index_of(message.id) is not None:
            return False
        self._messages.append(message)
        self._notify()
        return True

    def apply_update(self, message_id: str, **fields: Any) -> Message | None:
        """Merge ``fields`` into the message. Unknown ids are ignored."""
        idx = self._index_of(message_id)
        if idx is None:
            return None
        updated = replace(self._messages[idx], **fields)
        self._messages[idx] = updated
        self._notify()
        return updated

    def replace_temp(self, temp_id: str, confirmed: Message) -> bool:
        """Swap a temp message for its confirmed copy, in place."""
        idx = self._index_of(temp_id)
        if idx is None:
            return False
        if confirmed.id != temp_id and self._index_of(confirmed.id) is not None:
            del self._messages[idx]
        else:
            self._messages[idx] = confirmed
        self._notify()
        return True

    def restore(self, snapshot: Message) -> bool:
        """Put a previously captured message back in its slot."""
        idx = self._index_of(snapshot.id)
        if idx is None:
            return False
        self._messages[idx] = snapshot
        self._notify()
        return True

    def remove(self, message_id: str) -> Message | None:
        idx = self._index_of(message_id)
        if idx is None:
            return None
        removed = self._messages.pop(idx)
        self._notify()
        return removed


def _unique(messages: Any) -> list[Message]:
    seen: set[str] = set()
    result: list[Message] = []
    for m in messages:
        if m.id not in seen:
            seen.add(m.id)
            result.append(m)
    return result

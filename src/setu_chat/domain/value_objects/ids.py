from __future__ import annotations

from datetime import datetime
from typing import NewType

ConversationId = NewType("ConversationId", str)
MessageId = NewType("MessageId", str)
UserId = NewType("UserId", str)

TEMP_ID_PREFIX = "temp-"


def make_temp_id(now: datetime) -> str:
    """Placeholder id for a message the server has not confirmed yet."""
    return f"{TEMP_ID_PREFIX}{int(now.timestamp() * 1000)}"


def is_temp_id(message_id: str) -> bool:
    return message_id.startswith(TEMP_ID_PREFIX)


def messages_topic(conversation_id: str) -> str:
    return f"messages:{conversation_id}"


def typing_topic(conversation_id: str) -> str:
    return f"typing:{conversation_id}"


def reaction_topic(conversation_id: str) -> str:
    return f"reaction-sync:{conversation_id}"


TOPIC_KINDS = ("messages", "typing", "reaction-sync")
BROADCAST_TOPIC_KINDS = ("typing", "reaction-sync")


def parse_topic(topic: str) -> tuple[str, str] | None:
    """Split ``kind:conversation_id``; None when the kind is unknown."""
    kind, sep, conversation_id = topic.partition(":")
    if not sep or not conversation_id or kind not in TOPIC_KINDS:
        return None
    return kind, conversation_id

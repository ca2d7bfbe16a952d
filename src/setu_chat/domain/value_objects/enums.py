from __future__ import annotations

from enum import StrEnum


class ConversationType(StrEnum):
    PRIVATE = "private"
    GROUP = "group"
    SELF = "self"


class MemberRole(StrEnum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    FILE = "file"
    SYSTEM = "system"


class DeliveryState(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class ChangeOp(StrEnum):
    INSERT = "insert"
    UPDATE = "update"


class BroadcastEvent(StrEnum):
    TYPING = "typing"
    STOP_TYPING = "stop_typing"
    REACTION_UPDATE = "reaction_update"


class OutboxStatus(StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DEAD = "dead"

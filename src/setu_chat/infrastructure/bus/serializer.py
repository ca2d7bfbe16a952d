from __future__ import annotations

import json
from datetime import datetime
from typing import Any
from uuid import UUID

from setu_chat.application.dto.rows import message_to_row, row_to_message
from setu_chat.domain.events.message_changed import MessageChanged
from setu_chat.domain.value_objects.enums import ChangeOp


class _Encoder(json.JSONEncoder):
    def default(self, o: object) -> Any:
        if isinstance(o, UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        return super().default(o)


def serialize_event(
    event_type: str,
    payload: dict[str, Any],
    *,
    origin: str | None = None,
) -> str:
    envelope = {"event": event_type, "data": payload, "origin": origin}
    return json.dumps(envelope, cls=_Encoder)


def deserialize_event(raw: str | bytes) -> tuple[str, dict[str, Any], str | None]:
    data = json.loads(raw)
    return data["event"], data["data"], data.get("origin")


def change_to_frame(event: MessageChanged) -> tuple[str, dict[str, Any]]:
    return event.op.value, {"row": message_to_row(event.row)}


def change_from_frame(event_type: str, data: dict[str, Any]) -> MessageChanged:
    return MessageChanged(op=ChangeOp(event_type), row=row_to_message(data["row"]))

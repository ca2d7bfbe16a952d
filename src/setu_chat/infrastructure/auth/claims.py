from __future__ import annotations

from typing import Any

import jwt

from setu_chat.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """The user id is the token subject."""
    subject = payload.get("sub")
    if not subject:
        raise jwt.InvalidTokenError("Token has no subject")
    return Principal(user_id=str(subject))

from __future__ import annotations

from uuid import UUID


def to_uuid(value: str | None) -> UUID | None:
    """Parse an id; malformed ids map to None so lookups simply miss."""
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def to_str(value: UUID | None) -> str | None:
    return str(value) if value is not None else None

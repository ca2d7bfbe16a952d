from __future__ import annotations

from setu_chat.domain.entities.profile import Profile
from setu_chat.infrastructure.db.models.profile import ProfileModel


def model_to_entity(model: ProfileModel) -> Profile:
    return Profile(
        id=str(model.id),
        username=model.username,
        first_name=model.first_name,
        last_name=model.last_name,
        avatar_url=model.avatar_url,
        is_online=model.is_online,
        last_seen=model.last_seen,
    )

"""HTTP implementation of the ChatApi the realtime engine talks to."""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from setu_chat.api.middleware.correlation_id import HEADER, correlation_id_ctx
from setu_chat.api.v1.schemas.conversation import (
    AddMembersRequest,
    ChangeRoleRequest,
    ConversationResponse,
    CreateConversationRequest,
    MarkReadRequest,
    PinResponse,
)
from setu_chat.api.v1.schemas.message import (
    EditMessageRequest,
    ForwardRequest,
    ForwardResponse,
    MessagePageResponse,
    MessageResponse,
    ReactionRequest,
    ReactionResponse,
    SendMessageRequest,
)
from setu_chat.api.v1.schemas.user import PresenceRequest, ProfileResponse
from setu_chat.application.dto.conversation import (
    ConversationUpdateDTO,
    CreateConversationDTO,
    PinState,
)
from setu_chat.application.dto.message import ForwardResult, MessagePage, SendMessageDTO
from setu_chat.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from setu_chat.config import settings
from setu_chat.domain.entities.conversation import Conversation
from setu_chat.domain.entities.message import Message, Reaction
from setu_chat.domain.entities.profile import Profile
from setu_chat.domain.value_objects.enums import MemberRole

logger = logging.getLogger(__name__)

_STATUS_ERRORS: dict[int, type[AppError]] = {
    400: ValidationError,
    401: ForbiddenError,
    403: ForbiddenError,
    404: NotFoundError,
    409: ConflictError,
    422: ValidationError,
}


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, str):
        return detail
    return str(detail or body)


class ChatApiClient:
    """Implements application.ports.chat_api.ChatApi over the REST API.

    Transport failures and 5xx responses raise PersistenceError; 4xx
    responses raise the matching AppError subclass.
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.API_BASE_URL,
            timeout=settings.API_TIMEOUT_SECONDS if timeout is None else timeout,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ChatApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = {}
        cid = correlation_id_ctx.get()
        if cid:
            headers[HEADER] = cid
        try:
            response = await self._client.request(
                method, path, json=json, params=params, headers=headers,
            )
        except httpx.RequestError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise PersistenceError(f"Request failed: {exc}") from exc

        if response.status_code >= 500:
            raise PersistenceError(_detail(response))
        error_cls = _STATUS_ERRORS.get(response.status_code)
        if error_cls is not None:
            raise error_cls(_detail(response))
        if response.status_code >= 400:
            raise AppError(_detail(response))
        return response

    # -- messages ---------------------------------------------------------

    async def create_message(self, conversation_id: str, dto: SendMessageDTO) -> Message:
        body = SendMessageRequest.from_dto(dto).model_dump(mode="json")
        response = await self._request(
            "POST", f"/api/v1/conversations/{conversation_id}/messages", json=body,
        )
        return MessageResponse.model_validate(response.json()).to_entity()

    async def update_message(self, message_id: str, content: str) -> Message:
        response = await self._request(
            "PATCH",
            f"/api/v1/messages/{message_id}",
            json=EditMessageRequest(content=content).model_dump(),
        )
        return MessageResponse.model_validate(response.json()).to_entity()

    async def delete_message(self, message_id: str) -> None:
        await self._request("DELETE", f"/api/v1/messages/{message_id}")

    async def get_message(self, message_id: str) -> Message | None:
        try:
            response = await self._request("GET", f"/api/v1/messages/{message_id}")
        except NotFoundError:
            return None
        return MessageResponse.model_validate(response.json()).to_entity()

    async def list_messages(
        self, conversation_id: str, *, cursor: str | None = None, limit: int = 50,
    ) -> MessagePage:
        params: dict[str, Any] = {"limit": limit}
        if cursor:
            params["cursor"] = cursor
        response = await self._request(
            "GET", f"/api/v1/conversations/{conversation_id}/messages", params=params,
        )
        return MessagePageResponse.model_validate(response.json()).to_page()

    async def toggle_reaction(self, message_id: str, emoji: str) -> None:
        await self._request(
            "POST",
            f"/api/v1/messages/{message_id}/reactions",
            json=ReactionRequest(reaction=emoji).model_dump(),
        )

    async def list_reactions(self, message_id: str) -> list[Reaction]:
        response = await self._request("GET", f"/api/v1/messages/{message_id}/reactions")
        return [ReactionResponse.model_validate(r).to_entity() for r in response.json()]

    async def forward_message(
        self, message_id: str, conversation_ids: list[str], user_ids: list[str],
    ) -> ForwardResult:
        body = ForwardRequest(
            message_id=message_id, conversation_ids=conversation_ids, user_ids=user_ids,
        )
        response = await self._request("POST", "/api/v1/messages/forward", json=body.model_dump())
        return ForwardResponse.model_validate(response.json()).to_result()

    # -- conversations ----------------------------------------------------

    def _conversation(self, response: httpx.Response) -> Conversation:
        return ConversationResponse.model_validate(response.json()).to_entity()

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return self._conversation(
            await self._request("GET", f"/api/v1/conversations/{conversation_id}")
        )

    async def list_conversations(self) -> list[Conversation]:
        response = await self._request("GET", "/api/v1/conversations")
        return [ConversationResponse.model_validate(c).to_entity() for c in response.json()]

    async def create_conversation(self, dto: CreateConversationDTO) -> Conversation:
        body = CreateConversationRequest(
            type=dto.type, member_ids=dto.member_ids, name=dto.name, description=dto.description,
        )
        return self._conversation(
            await self._request("POST", "/api/v1/conversations", json=body.model_dump(mode="json"))
        )

    async def update_conversation(
        self, conversation_id: str, dto: ConversationUpdateDTO,
    ) -> Conversation:
        return self._conversation(
            await self._request(
                "PATCH", f"/api/v1/conversations/{conversation_id}", json=dict(dto.changes),
            )
        )

    async def delete_conversation(self, conversation_id: str) -> None:
        await self._request("DELETE", f"/api/v1/conversations/{conversation_id}")

    async def add_members(self, conversation_id: str, user_ids: list[str]) -> Conversation:
        return self._conversation(
            await self._request(
                "POST",
                f"/api/v1/conversations/{conversation_id}/members",
                json=AddMembersRequest(user_ids=user_ids).model_dump(),
            )
        )

    async def remove_member(self, conversation_id: str, user_id: str) -> Conversation:
        return self._conversation(
            await self._request(
                "DELETE", f"/api/v1/conversations/{conversation_id}/members/{user_id}",
            )
        )

    async def change_role(
        self, conversation_id: str, user_id: str, role: MemberRole,
    ) -> Conversation:
        body = ChangeRoleRequest(user_id=user_id, role=role)
        return self._conversation(
            await self._request(
                "PATCH",
                f"/api/v1/conversations/{conversation_id}/members/role",
                json=body.model_dump(mode="json"),
            )
        )

    async def toggle_pin(self, conversation_id: str) -> PinState:
        response = await self._request("PATCH", f"/api/v1/conversations/{conversation_id}/pin")
        return PinResponse.model_validate(response.json()).to_state()

    async def mark_read(self, conversation_id: str, last_message_id: str) -> None:
        await self._request(
            "POST",
            f"/api/v1/conversations/{conversation_id}/read",
            json=MarkReadRequest(last_message_id=last_message_id).model_dump(),
        )

    # -- identity and presence -------------------------------------------

    async def get_profile(self, user_id: str) -> Profile | None:
        try:
            response = await self._request("GET", f"/api/v1/users/{user_id}")
        except NotFoundError:
            return None
        return ProfileResponse.model_validate(response.json()).to_entity()

    async def search_users(self, query: str) -> list[Profile]:
        response = await self._request(
            "GET", "/api/v1/users/search", params={"q": query, "limit": settings.SEARCH_LIMIT},
        )
        return [ProfileResponse.model_validate(p).to_entity() for p in response.json()]

    async def set_presence(self, is_online: bool, last_seen: datetime) -> None:
        body = PresenceRequest(is_online=is_online, last_seen=last_seen)
        await self._request("POST", "/api/v1/presence", json=body.model_dump(mode="json"))

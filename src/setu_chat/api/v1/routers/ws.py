from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from setu_chat.api.deps import authenticate
from setu_chat.application.dto.principal import Principal
from setu_chat.application.exceptions import AppError
from setu_chat.config import settings
from setu_chat.domain.value_objects.ids import BROADCAST_TOPIC_KINDS, parse_topic
from setu_chat.infrastructure.db.session import AsyncSessionLocal
from setu_chat.infrastructure.db.uow import SqlAlchemyUoW
from setu_chat.infrastructure.ws.manager import ConnectionManager
from setu_chat.infrastructure.ws.protocol import WsInbound, WsOutbound
from setu_chat.services import conversation_service

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])

manager = ConnectionManager()


def get_manager() -> ConnectionManager:
    return manager


@asynccontextmanager
async def _uow_scope() -> AsyncIterator[SqlAlchemyUoW]:
    async with AsyncSessionLocal() as session:
        yield SqlAlchemyUoW(session)


async def _send(ws: WebSocket, frame: WsOutbound) -> None:
    await ws.send_text(frame.model_dump_json())


async def _error(ws: WebSocket, code: str, **data: str) -> None:
    await _send(ws, WsOutbound(type="error", data={"code": code, **data}))


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    connection_id = await manager.connect(websocket)

    heartbeat_task = asyncio.create_task(
        _heartbeat(websocket), name=f"ws-heartbeat-{connection_id}",
    )
    try:
        await _read_loop(websocket, principal, connection_id)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", principal.principal_key)
    finally:
        heartbeat_task.cancel()
        manager.disconnect(connection_id)


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await _send(ws, WsOutbound(type="pong"))
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, principal: Principal, connection_id: str) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except Exception:
            await _error(ws, "invalid_payload")
            continue

        match msg.type:
            case "ping":
                await _send(ws, WsOutbound(type="pong"))
            case "subscribe":
                await _handle_subscribe(ws, principal, connection_id, msg.topic)
            case "unsubscribe":
                if msg.topic:
                    manager.unsubscribe(connection_id, msg.topic)
            case "broadcast":
                await _handle_broadcast(ws, connection_id, msg)
            case _:
                await _error(ws, "unknown_type", type=msg.type)


async def _handle_subscribe(
    ws: WebSocket,
    principal: Principal,
    connection_id: str,
    topic: str | None,
) -> None:
    parsed = parse_topic(topic or "")
    if topic is None or parsed is None:
        await _error(ws, "invalid_topic")
        return

    _, conversation_id = parsed
    async with _uow_scope() as uow:
        try:
            await conversation_service.get_conversation(conversation_id, principal, uow)
        except AppError as exc:
            await _error(ws, "forbidden", topic=topic, detail=exc.detail)
            return

    manager.subscribe(connection_id, topic)
    await _send(ws, WsOutbound(type="subscribed", topic=topic))


async def _handle_broadcast(ws: WebSocket, connection_id: str, msg: WsInbound) -> None:
    parsed = parse_topic(msg.topic or "")
    if msg.topic is None or parsed is None or parsed[0] not in BROADCAST_TOPIC_KINDS:
        await _error(ws, "invalid_topic")
        return
    if not msg.event:
        await _error(ws, "invalid_data", detail="event is required")
        return
    if not manager.is_subscribed(connection_id, msg.topic):
        await _error(ws, "not_subscribed", topic=msg.topic)
        return

    publisher = ws.app.state.publisher
    await publisher.publish_broadcast(msg.topic, msg.event, msg.data, origin=connection_id)

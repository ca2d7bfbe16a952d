from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from setu_chat.api.v1.routers.ws import get_manager
from setu_chat.infrastructure.db.session import AsyncSessionLocal

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


async def _check_postgres(_request: Request) -> None:
    async with AsyncSessionLocal() as session:
        await session.execute(text("SELECT 1"))


async def _check_fanout(request: Request) -> None:
    await request.app.state.redis.ping()
    subscriber = getattr(request.app.state, "pubsub_subscriber", None)
    if subscriber is None or not subscriber.running:
        raise RuntimeError("fan-out subscriber is not running")


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Ready once storage answers and realtime fan-out is listening."""
    errors: list[str] = []
    for name, check in (("postgres", _check_postgres), ("redis", _check_fanout)):
        try:
            await check(request)
        except Exception as exc:  # noqa: BLE001
            errors.append(f"{name}: {exc}")

    connections = get_manager().connection_count
    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors, "connections": connections},
        )
    return JSONResponse(content={"status": "ready", "connections": connections})

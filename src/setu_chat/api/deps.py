"""FastAPI dependency injection helpers."""
from __future__ import annotations

import logging
from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from setu_chat.application.dto.principal import Principal
from setu_chat.application.ports.auth import TokenVerifier
from setu_chat.config import settings
from setu_chat.infrastructure.auth.hs256_verifier import HS256Verifier
from setu_chat.infrastructure.auth.jwks_verifier import JWKSVerifier
from setu_chat.infrastructure.db.session import AsyncSessionLocal
from setu_chat.infrastructure.db.uow import SqlAlchemyUoW

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_uow() -> AsyncIterator[SqlAlchemyUoW]:
    """One session per request; anything not committed is rolled back."""
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        try:
            yield uow
        except Exception:
            await uow.rollback()
            raise


UoWDep = Annotated[SqlAlchemyUoW, Depends(get_uow)]


def _build_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        assert settings.JWKS_URL, "JWKS_URL must be set when JWT_VERIFY_MODE=jwks"
        return JWKSVerifier(settings.JWKS_URL)
    return HS256Verifier(settings.JWT_SECRET, settings.JWT_ALGORITHM)


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _build_verifier()
    return _verifier


async def authenticate(token: str) -> Principal | None:
    """Resolve a bearer token to its user, or None when it does not verify."""
    try:
        return await get_verifier().verify(token)
    except Exception as exc:
        logger.debug("Token rejected: %s", exc)
        return None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(_bearer_scheme)],
) -> Principal:
    if credentials is None:
        raise _unauthorized("Not authenticated")
    principal = await authenticate(credentials.credentials)
    if principal is None:
        raise _unauthorized("Invalid token")
    return principal


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]

from __future__ import annotations

from functools import lru_cache
from typing import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.config import get_settings
from modcore.persistence.db import get_session
from modcore.services.content import ContentService, HttpContentService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    # One AsyncSession per request; context manager ensures close on success/error.
    async with get_session() as session:
        yield session


def get_caller_id(request: Request) -> str:
    """Return the caller's user id as forwarded by the authenticating gateway.

    Authentication happens upstream; this service only trusts the configured
    identity header and rejects requests that arrive without it.
    """
    header = get_settings().user_id_header
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHENTICATED", "message": f"{header} header is required"},
        )
    return user_id


@lru_cache
def _http_content_service() -> HttpContentService:
    return HttpContentService()


def get_content_service() -> ContentService:
    # Overridden in tests with an in-memory directory.
    return _http_content_service()

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar
from uuid import uuid4

from fastapi import Request
from pydantic import BaseModel, Field

from modcore.domain.pagination import Page


API_VERSION = "v1"
REQUEST_ID_HEADER = "X-Request-Id"

T = TypeVar("T")


class ResponseMeta(BaseModel):
    request_id: str
    api_version: str = Field(default=API_VERSION)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | None = None


class SuccessEnvelope(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta


class ErrorEnvelope(BaseModel):
    error: ErrorDetail
    meta: ResponseMeta


class PageData(BaseModel, Generic[T]):
    """One page of a newest-first listing (report queue, moderation log)."""

    items: list[T]
    offset: int
    page_size: int
    total: int
    has_more: bool


def get_request_id(request: Request) -> str:
    # The middleware stamps request.state first; fall back for handlers invoked outside it.
    request_id = getattr(request.state, "request_id", None)
    if not request_id:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id
    return request_id


def success_response(*, request: Request, data: Any) -> dict[str, Any]:
    meta = ResponseMeta(request_id=get_request_id(request))
    return {"data": data, "meta": meta.model_dump()}


def page_response(*, request: Request, page: Page, serialize: Callable[[Any], BaseModel]) -> dict[str, Any]:
    data = PageData(
        items=[serialize(item).model_dump() for item in page.items],
        offset=page.offset,
        page_size=page.page_size,
        total=page.total,
        has_more=page.has_more,
    )
    return success_response(request=request, data=data.model_dump())


def error_response(
    *,
    request: Request,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    meta = ResponseMeta(request_id=get_request_id(request))
    error = ErrorDetail(code=code, message=message, details=details)
    return {"error": error.model_dump(exclude_none=True), "meta": meta.model_dump()}

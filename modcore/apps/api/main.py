from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from modcore.apps.api.errors import (
    http_exception_handler,
    moderation_error_handler,
    unhandled_exception_handler,
    validation_exception_handler,
)
from modcore.apps.api.response import API_VERSION, REQUEST_ID_HEADER, get_request_id
from modcore.apps.api.routes.moderation import router as moderation_router
from modcore.core.config import get_settings
from modcore.core.errors import ModerationError
from modcore.core.logging import configure_logging


logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()
    settings = get_settings()
    app = FastAPI(title="Moderation API")

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next):  # type: ignore[override]
        request_id = get_request_id(request)
        start = time.monotonic()
        response = await call_next(request)
        latency_ms = (time.monotonic() - start) * 1000.0
        logger.info(
            "request method=%s path=%s status=%s latency_ms=%.1f request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            latency_ms,
            request_id,
        )
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response

    @app.exception_handler(ModerationError)
    async def _moderation_error_handler(request: Request, exc: ModerationError):
        return await moderation_error_handler(request, exc)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
        return await http_exception_handler(request, exc)

    @app.exception_handler(RequestValidationError)
    async def _validation_exception_handler(request: Request, exc: RequestValidationError):
        return await validation_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def _unhandled_exception_handler(request: Request, exc: Exception):
        return await unhandled_exception_handler(request, exc)

    app.include_router(moderation_router, prefix=f"/{API_VERSION}")

    def custom_openapi() -> dict:
        # Document the identity header every moderation route expects.
        if app.openapi_schema:
            return app.openapi_schema
        schema = get_openapi(title="Moderation API", version=API_VERSION, routes=app.routes)
        components = schema.setdefault("components", {})
        security_schemes = components.setdefault("securitySchemes", {})
        security_schemes["UserIdHeader"] = {
            "type": "apiKey",
            "in": "header",
            "name": settings.user_id_header,
        }
        for operations in schema.get("paths", {}).values():
            for operation in operations.values():
                operation.setdefault("security", [{"UserIdHeader": []}])
        app.openapi_schema = schema
        return app.openapi_schema

    app.openapi = custom_openapi  # type: ignore[method-assign]

    return app


app = create_app()

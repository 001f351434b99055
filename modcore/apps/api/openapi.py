from __future__ import annotations

from typing import Any

from modcore.apps.api.response import ErrorEnvelope


def _error_example(*, code: str, message: str) -> dict[str, Any]:
    # Build a consistent error envelope example for OpenAPI docs.
    return {
        "error": {"code": code, "message": message},
        "meta": {"request_id": "req_example", "api_version": "v1"},
    }


def _response(description: str, code: str, message: str) -> dict[str, Any]:
    return {
        "model": ErrorEnvelope,
        "description": description,
        "content": {"application/json": {"example": _error_example(code=code, message=message)}},
    }


DEFAULT_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    401: _response("Unauthenticated", "UNAUTHENTICATED", "X-User-Id header is required"),
    403: _response(
        "Permission denied",
        "PERMISSION_DENIED",
        "You don't have permission to assign roles at this scope",
    ),
    404: _response("Not found", "NOT_FOUND", "Report not found"),
    409: _response("Conflict or invalid state", "INVALID_STATE", "Report is not pending"),
    422: _response("Invalid argument", "INVALID_ARGUMENT", "expires_at must be in the future"),
    503: _response("Storage failure", "STORAGE_FAILURE", "Storage failure during bans.ban"),
}

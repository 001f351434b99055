from __future__ import annotations


class ModerationError(Exception):
    """Base error for the moderation engine."""

    code = "MODERATION_ERROR"
    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class PermissionDeniedError(ModerationError):
    """Actor lacks the required authority at the target scope."""

    code = "PERMISSION_DENIED"
    status_code = 403


class NotFoundError(ModerationError):
    """Referenced grant, ban, report, reason or scope does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(ModerationError):
    """Duplicate active grant, banning a moderator, or granting to a banned user."""

    code = "CONFLICT"
    status_code = 409


class AlreadyUnbannedError(ModerationError):
    """Ban record was already closed out."""

    code = "ALREADY_UNBANNED"
    status_code = 409


class InvalidStateError(ModerationError):
    """Transition attempted on a terminal report."""

    code = "INVALID_STATE"
    status_code = 409


class InvalidArgumentError(ModerationError):
    """Malformed target, past expiry, unknown role/ban type or empty content."""

    code = "INVALID_ARGUMENT"
    status_code = 422


class StorageFailureError(ModerationError):
    """Persistence or content-service failure; never retried by the engine."""

    code = "STORAGE_FAILURE"
    status_code = 503

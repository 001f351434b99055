from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    # Use UTC for every moderation timestamp to avoid timezone ambiguity.
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on read; stored values are always UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

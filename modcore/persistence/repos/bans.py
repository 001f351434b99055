from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.domain.models import BanRecord


def _active_predicate(now: datetime) -> tuple[object, ...]:
    # Active means not closed out and not past expiry (lazy expiry, no sweep required).
    return (
        BanRecord.unbanned_at.is_(None),
        or_(BanRecord.expires_at.is_(None), BanRecord.expires_at > now),
    )


async def get_ban(session: AsyncSession, *, ban_id: str) -> BanRecord | None:
    result = await session.execute(select(BanRecord).where(BanRecord.id == ban_id))
    return result.scalar_one_or_none()


async def list_active_bans_for_scopes(
    session: AsyncSession,
    *,
    subject_user_id: str,
    scope_keys: Iterable[str],
    now: datetime,
    ban_types: Iterable[str] | None = None,
) -> list[BanRecord]:
    stmt = select(BanRecord).where(
        BanRecord.subject_user_id == subject_user_id,
        BanRecord.scope_key.in_(list(scope_keys)),
        *_active_predicate(now),
    )
    if ban_types is not None:
        stmt = stmt.where(BanRecord.ban_type.in_(list(ban_types)))
    result = await session.execute(stmt.order_by(BanRecord.banned_at.desc(), BanRecord.id.asc()))
    return list(result.scalars().all())


async def list_active_bans_for_user(
    session: AsyncSession,
    *,
    subject_user_id: str,
    now: datetime,
) -> list[BanRecord]:
    result = await session.execute(
        select(BanRecord)
        .where(BanRecord.subject_user_id == subject_user_id, *_active_predicate(now))
        .order_by(BanRecord.banned_at.desc(), BanRecord.id.asc())
    )
    return list(result.scalars().all())


async def list_expired_open_bans(
    session: AsyncSession,
    *,
    now: datetime,
    limit: int = 500,
) -> list[BanRecord]:
    # Expired bans nobody closed out; only the housekeeping sweep reads these.
    result = await session.execute(
        select(BanRecord)
        .where(
            BanRecord.unbanned_at.is_(None),
            BanRecord.expires_at.is_not(None),
            BanRecord.expires_at <= now,
        )
        .order_by(BanRecord.expires_at.asc(), BanRecord.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def close_ban(
    session: AsyncSession,
    *,
    ban_id: str,
    unbanned_by_user_id: str | None,
    unbanned_at: datetime,
) -> int:
    # Compare-and-set on unbanned_at so racing unbans cannot both record a closer.
    result = await session.execute(
        update(BanRecord)
        .where(BanRecord.id == ban_id, BanRecord.unbanned_at.is_(None))
        .values(unbanned_at=unbanned_at, unbanned_by_user_id=unbanned_by_user_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)

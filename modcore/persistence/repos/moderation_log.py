from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.domain.models import ModerationLogEntry
from modcore.persistence.guards import scope_path_predicate


async def list_entries_for_paths(
    session: AsyncSession,
    *,
    path_prefixes: Iterable[str],
    offset: int = 0,
    limit: int = 25,
) -> list[ModerationLogEntry]:
    # Newest first; the autoincrement id breaks ties between entries written in the same instant.
    stmt = (
        select(ModerationLogEntry)
        .where(scope_path_predicate(ModerationLogEntry, path_prefixes))
        .order_by(ModerationLogEntry.created_at.desc(), ModerationLogEntry.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_entries_for_paths(session: AsyncSession, *, path_prefixes: Iterable[str]) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(ModerationLogEntry)
        .where(scope_path_predicate(ModerationLogEntry, path_prefixes))
    )
    return int(result.scalar() or 0)


async def list_entries_by_actor(
    session: AsyncSession,
    *,
    actor_user_id: str,
    offset: int = 0,
    limit: int = 25,
) -> list[ModerationLogEntry]:
    result = await session.execute(
        select(ModerationLogEntry)
        .where(ModerationLogEntry.actor_user_id == actor_user_id)
        .order_by(ModerationLogEntry.created_at.desc(), ModerationLogEntry.id.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_entries_by_actor(session: AsyncSession, *, actor_user_id: str) -> int:
    result = await session.execute(
        select(func.count())
        .select_from(ModerationLogEntry)
        .where(ModerationLogEntry.actor_user_id == actor_user_id)
    )
    return int(result.scalar() or 0)

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.domain.models import RoleGrant


async def get_grant(session: AsyncSession, *, grant_id: str) -> RoleGrant | None:
    result = await session.execute(select(RoleGrant).where(RoleGrant.id == grant_id))
    return result.scalar_one_or_none()


async def find_active_grant(
    session: AsyncSession,
    *,
    subject_user_id: str,
    role_type: str,
    scope_key: str,
) -> RoleGrant | None:
    # Mirror the partial unique index so callers can fail fast before insert.
    result = await session.execute(
        select(RoleGrant).where(
            RoleGrant.subject_user_id == subject_user_id,
            RoleGrant.role_type == role_type,
            RoleGrant.scope_key == scope_key,
            RoleGrant.revoked_at.is_(None),
        )
    )
    return result.scalars().first()


async def has_active_grant(
    session: AsyncSession,
    *,
    subject_user_id: str,
    role_types: Iterable[str],
    scope_keys: Iterable[str],
) -> bool:
    # One indexed lookup over the whole ancestor chain keeps checks O(depth).
    result = await session.execute(
        select(RoleGrant.id)
        .where(
            RoleGrant.subject_user_id == subject_user_id,
            RoleGrant.role_type.in_(list(role_types)),
            RoleGrant.scope_key.in_(list(scope_keys)),
            RoleGrant.revoked_at.is_(None),
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def list_active_grants_for_user(session: AsyncSession, *, subject_user_id: str) -> list[RoleGrant]:
    result = await session.execute(
        select(RoleGrant)
        .where(RoleGrant.subject_user_id == subject_user_id, RoleGrant.revoked_at.is_(None))
        .order_by(RoleGrant.granted_at.asc(), RoleGrant.id.asc())
    )
    return list(result.scalars().all())


async def list_active_grants_for_scope(session: AsyncSession, *, scope_key: str) -> list[RoleGrant]:
    result = await session.execute(
        select(RoleGrant)
        .where(RoleGrant.scope_key == scope_key, RoleGrant.revoked_at.is_(None))
        .order_by(RoleGrant.granted_at.asc(), RoleGrant.id.asc())
    )
    return list(result.scalars().all())


async def close_grant(
    session: AsyncSession,
    *,
    grant_id: str,
    revoked_by_user_id: str,
    now: datetime,
) -> int:
    # Conditional update so a concurrent revoke observes zero rows instead of overwriting the closer.
    result = await session.execute(
        update(RoleGrant)
        .where(RoleGrant.id == grant_id, RoleGrant.revoked_at.is_(None))
        .values(revoked_at=now, revoked_by_user_id=revoked_by_user_id)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)

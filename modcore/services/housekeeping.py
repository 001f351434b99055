from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import as_utc, utc_now
from modcore.core.errors import ModerationError
from modcore.domain.scope import ModerationAction, Scope, scope_from_row
from modcore.persistence.db import storage_guard
from modcore.persistence.repos import bans as bans_repo
from modcore.services import moderation_log
from modcore.services.content import ContentDirectory
from modcore.services.scope import resolve_or_detached


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepResult:
    processed: int
    skipped: int


@dataclass(frozen=True)
class _ExpiredBan:
    # Plain snapshot; ORM rows expire on rollback and cannot lazy-load under asyncio.
    ban_id: str
    subject_user_id: str
    ban_type: str
    scope: Scope
    expires_at: datetime


async def _close_expired(session: AsyncSession, content: ContentDirectory, item: _ExpiredBan) -> bool:
    # Close at the moment the ban lapsed, not at sweep time, so history reads correctly.
    chain = await resolve_or_detached(content, item.scope)
    async with storage_guard(session, operation="housekeeping.close_expired_ban"):
        updated = await bans_repo.close_ban(
            session, ban_id=item.ban_id, unbanned_by_user_id=None, unbanned_at=item.expires_at
        )
        if updated == 0:
            await session.rollback()
            return False
        moderation_log.append(
            session,
            action=ModerationAction.ban_expired,
            actor_user_id=moderation_log.SYSTEM_ACTOR,
            chain=chain,
            target_description=f"user:{item.subject_user_id} ban:{item.ban_type}",
            now=item.expires_at,
        )
        await session.commit()
    return True


async def sweep_expired_bans(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    now: datetime | None = None,
    limit: int = 500,
) -> SweepResult:
    """Close out bans whose expiry has passed but were never unbanned.

    Lazy expiry already treats these as inactive; the sweep only makes the
    ledger and the moderation log reflect it. Best effort: one failing item
    is logged and counted as skipped, and the batch continues.
    """
    now = now or utc_now()
    async with storage_guard(session, operation="housekeeping.list_expired_bans"):
        rows = await bans_repo.list_expired_open_bans(session, now=now, limit=limit)
    candidates = [
        _ExpiredBan(
            ban_id=row.id,
            subject_user_id=row.subject_user_id,
            ban_type=row.ban_type,
            scope=scope_from_row(row),
            expires_at=as_utc(row.expires_at),
        )
        for row in rows
    ]

    processed = 0
    skipped = 0
    for item in candidates:
        try:
            closed = await _close_expired(session, content, item)
        except ModerationError as exc:
            logger.warning("ban_expiry_skipped ban_id=%s error=%s", item.ban_id, exc.code)
            skipped += 1
            continue
        if closed:
            processed += 1
        else:
            skipped += 1

    logger.info("ban_expiry_sweep processed=%s skipped=%s", processed, skipped)
    return SweepResult(processed=processed, skipped=skipped)

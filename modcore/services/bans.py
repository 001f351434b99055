from __future__ import annotations

from datetime import datetime
import logging
from typing import Literal
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import as_utc, utc_now
from modcore.core.errors import (
    AlreadyUnbannedError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from modcore.domain.models import BanRecord
from modcore.domain.scope import BanType, ModerationAction, RoleType, Scope, ScopeChain, scope_from_row
from modcore.persistence.db import storage_guard
from modcore.persistence.repos import bans as bans_repo
from modcore.services import moderation_log
from modcore.services.content import ContentDirectory
from modcore.services.roles import has_role_in_chain
from modcore.services.scope import global_chain, resolve_ancestors, resolve_or_detached, try_resolve_ancestors


logger = logging.getLogger(__name__)

Access = Literal["read", "write"]

# Both ban types block writing; only read_write blocks reading.
_BAN_TYPES_BY_ACCESS: dict[str, list[str] | None] = {
    "write": None,
    "read": [BanType.read_write.value],
}


def _describe(subject_user_id: str, ban_type: BanType | str) -> str:
    value = ban_type.value if isinstance(ban_type, BanType) else ban_type
    return f"user:{subject_user_id} ban:{value}"


async def ban_user(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    target_user_id: str,
    ban_type: BanType | str,
    scope: Scope,
    banner_user_id: str,
    reason: str | None = None,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> BanRecord:
    kind = BanType.parse(ban_type)
    if not target_user_id:
        raise InvalidArgumentError("target_user_id is required")
    now = as_utc(now or utc_now())
    if expires_at is not None:
        if expires_at.tzinfo is None:
            raise InvalidArgumentError("expires_at must include a timezone")
        expires_at = as_utc(expires_at)
        if expires_at <= now:
            raise InvalidArgumentError("expires_at must be in the future")
    chain = await resolve_ancestors(content, scope)

    async with storage_guard(session, operation="bans.ban"):
        if not await has_role_in_chain(session, user_id=banner_user_id, chain=chain, required=RoleType.moderator):
            logger.info("ban_denied banner=%s scope=%s", banner_user_id, scope.key)
            raise PermissionDeniedError("You don't have permission to ban users at this scope")
        if target_user_id == banner_user_id:
            raise InvalidArgumentError("You cannot ban yourself")
        if await has_role_in_chain(session, user_id=target_user_id, chain=chain, required=RoleType.moderator):
            raise ConflictError("Cannot ban a user who holds moderator privileges at this scope")

        ban = BanRecord(
            id=uuid4().hex,
            subject_user_id=target_user_id,
            ban_type=kind.value,
            community_id=scope.community_id,
            hub_id=scope.hub_id,
            space_id=scope.space_id,
            scope_key=scope.key,
            reason=reason,
            banned_by_user_id=banner_user_id,
            banned_at=now,
            expires_at=expires_at,
        )
        session.add(ban)
        moderation_log.append(
            session,
            action=ModerationAction.ban_user,
            actor_user_id=banner_user_id,
            chain=chain,
            target_description=_describe(target_user_id, kind),
            reason=reason,
            now=now,
        )
        await session.commit()

    logger.info(
        "user_banned ban_id=%s subject=%s type=%s scope=%s expires_at=%s",
        ban.id,
        target_user_id,
        kind.value,
        scope.key,
        expires_at.isoformat() if expires_at else None,
    )
    return ban


async def unban_user(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    ban_id: str,
    unbanner_user_id: str,
    now: datetime | None = None,
) -> BanRecord:
    now = now or utc_now()
    async with storage_guard(session, operation="bans.unban"):
        ban = await bans_repo.get_ban(session, ban_id=ban_id)
        if ban is None:
            raise NotFoundError("Ban not found")
        if ban.unbanned_at is not None:
            raise AlreadyUnbannedError("Ban has already been lifted")
        chain = await resolve_or_detached(content, scope_from_row(ban))
        if not await has_role_in_chain(session, user_id=unbanner_user_id, chain=chain, required=RoleType.moderator):
            logger.info("unban_denied unbanner=%s ban_id=%s", unbanner_user_id, ban_id)
            raise PermissionDeniedError("You don't have permission to lift bans at this scope")
        updated = await bans_repo.close_ban(
            session, ban_id=ban_id, unbanned_by_user_id=unbanner_user_id, unbanned_at=now
        )
        if updated == 0:
            raise AlreadyUnbannedError("Ban has already been lifted")
        moderation_log.append(
            session,
            action=ModerationAction.unban_user,
            actor_user_id=unbanner_user_id,
            chain=chain,
            target_description=_describe(ban.subject_user_id, ban.ban_type),
            now=now,
        )
        await session.commit()
        await session.refresh(ban)

    logger.info("user_unbanned ban_id=%s unbanner=%s", ban_id, unbanner_user_id)
    return ban


async def _chain_for_check(content: ContentDirectory, scope: Scope | None) -> ScopeChain:
    # No scope, or a scope that no longer resolves, only consults global bans.
    if scope is None:
        return global_chain()
    chain = await try_resolve_ancestors(content, scope)
    return chain if chain is not None else global_chain()


async def get_active_ban(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    user_id: str,
    scope: Scope | None = None,
    access: Access = "write",
    now: datetime | None = None,
) -> BanRecord | None:
    """Return the narrowest active ban blocking ``access`` at ``scope``.

    A ban at any ancestor applies to descendants. Expired bans are treated
    as lifted whether or not the housekeeping sweep has closed them.
    """
    if access not in _BAN_TYPES_BY_ACCESS:
        raise InvalidArgumentError(f"Unknown access kind: {access}")
    now = now or utc_now()
    chain = await _chain_for_check(content, scope)
    async with storage_guard(session, operation="bans.check"):
        bans = await bans_repo.list_active_bans_for_scopes(
            session,
            subject_user_id=user_id,
            scope_keys=chain.keys,
            now=now,
            ban_types=_BAN_TYPES_BY_ACCESS[access],
        )
    if not bans:
        return None
    rank = {key: index for index, key in enumerate(chain.keys)}
    return min(bans, key=lambda ban: rank.get(ban.scope_key, len(rank)))


async def is_banned(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    user_id: str,
    scope: Scope | None = None,
    access: Access = "write",
    now: datetime | None = None,
) -> bool:
    ban = await get_active_ban(session, content, user_id=user_id, scope=scope, access=access, now=now)
    return ban is not None


async def list_active_bans(
    session: AsyncSession,
    *,
    user_id: str,
    now: datetime | None = None,
) -> list[BanRecord]:
    async with storage_guard(session, operation="bans.list_for_user"):
        return await bans_repo.list_active_bans_for_user(
            session, subject_user_id=user_id, now=now or utc_now()
        )


async def get_ban(session: AsyncSession, *, ban_id: str) -> BanRecord:
    async with storage_guard(session, operation="bans.get"):
        ban = await bans_repo.get_ban(session, ban_id=ban_id)
    if ban is None:
        raise NotFoundError("Ban not found")
    return ban

from __future__ import annotations

from datetime import datetime
import logging
from uuid import uuid4

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import utc_now
from modcore.core.errors import ConflictError, InvalidArgumentError, NotFoundError, PermissionDeniedError
from modcore.domain.models import RoleGrant
from modcore.domain.scope import ModerationAction, RoleType, Scope, ScopeChain, scope_from_row
from modcore.persistence.db import storage_guard
from modcore.persistence.repos import bans as bans_repo
from modcore.persistence.repos import roles as roles_repo
from modcore.services import moderation_log
from modcore.services.content import ContentDirectory
from modcore.services.scope import resolve_ancestors, resolve_or_detached, try_resolve_ancestors


logger = logging.getLogger(__name__)


def _role_types_granting(required: RoleType) -> list[str]:
    return [role.value for role in RoleType if role.implies(required)]


async def has_role_in_chain(
    session: AsyncSession,
    *,
    user_id: str,
    chain: ScopeChain,
    required: RoleType,
) -> bool:
    # A grant at the scope or any ancestor satisfies the check; no cached effective-permission table.
    if not user_id:
        return False
    async with storage_guard(session, operation="roles.check"):
        return await roles_repo.has_active_grant(
            session,
            subject_user_id=user_id,
            role_types=_role_types_granting(required),
            scope_keys=chain.keys,
        )


async def can_moderate(session: AsyncSession, content: ContentDirectory, *, user_id: str, scope: Scope) -> bool:
    chain = await try_resolve_ancestors(content, scope)
    if chain is None:
        return False
    return await has_role_in_chain(session, user_id=user_id, chain=chain, required=RoleType.moderator)


async def can_administer(session: AsyncSession, content: ContentDirectory, *, user_id: str, scope: Scope) -> bool:
    chain = await try_resolve_ancestors(content, scope)
    if chain is None:
        return False
    return await has_role_in_chain(session, user_id=user_id, chain=chain, required=RoleType.administrator)


def _describe(subject_user_id: str, role: RoleType | str) -> str:
    value = role.value if isinstance(role, RoleType) else role
    return f"user:{subject_user_id} role:{value}"


async def assign_role(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    target_user_id: str,
    role_type: RoleType | str,
    scope: Scope,
    assigner_user_id: str,
    now: datetime | None = None,
) -> RoleGrant:
    role = RoleType.parse(role_type)
    if not target_user_id:
        raise InvalidArgumentError("target_user_id is required")
    now = now or utc_now()
    chain = await resolve_ancestors(content, scope)

    async with storage_guard(session, operation="roles.assign"):
        if not await has_role_in_chain(
            session, user_id=assigner_user_id, chain=chain, required=RoleType.administrator
        ):
            logger.info("role_assign_denied assigner=%s scope=%s", assigner_user_id, scope.key)
            raise PermissionDeniedError("You don't have permission to assign roles at this scope")
        existing = await roles_repo.find_active_grant(
            session, subject_user_id=target_user_id, role_type=role.value, scope_key=scope.key
        )
        if existing is not None:
            raise ConflictError(f"User already holds an active {role.value} grant at {scope.key}")
        bans = await bans_repo.list_active_bans_for_scopes(
            session, subject_user_id=target_user_id, scope_keys=chain.keys, now=now
        )
        if bans:
            raise ConflictError("Cannot grant a role to a user banned at or above this scope")

        grant = RoleGrant(
            id=uuid4().hex,
            subject_user_id=target_user_id,
            role_type=role.value,
            community_id=scope.community_id,
            hub_id=scope.hub_id,
            space_id=scope.space_id,
            scope_key=scope.key,
            granted_by_user_id=assigner_user_id,
            granted_at=now,
        )
        session.add(grant)
        moderation_log.append(
            session,
            action=ModerationAction.assign_role,
            actor_user_id=assigner_user_id,
            chain=chain,
            target_description=_describe(target_user_id, role),
            now=now,
        )
        try:
            await session.commit()
        except IntegrityError as exc:
            # A concurrent assign won the partial unique index race.
            await session.rollback()
            raise ConflictError(f"User already holds an active {role.value} grant at {scope.key}") from exc

    logger.info(
        "role_assigned grant_id=%s subject=%s role=%s scope=%s",
        grant.id,
        target_user_id,
        role.value,
        scope.key,
    )
    return grant


async def revoke_role(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    grant_id: str,
    revoker_user_id: str,
    now: datetime | None = None,
) -> RoleGrant:
    now = now or utc_now()
    async with storage_guard(session, operation="roles.revoke"):
        grant = await roles_repo.get_grant(session, grant_id=grant_id)
        if grant is None or grant.revoked_at is not None:
            raise NotFoundError("Role grant not found or already revoked")
        chain = await resolve_or_detached(content, scope_from_row(grant))
        if not await has_role_in_chain(
            session, user_id=revoker_user_id, chain=chain, required=RoleType.administrator
        ):
            logger.info("role_revoke_denied revoker=%s grant_id=%s", revoker_user_id, grant_id)
            raise PermissionDeniedError("You don't have permission to revoke roles at this scope")
        updated = await roles_repo.close_grant(
            session, grant_id=grant_id, revoked_by_user_id=revoker_user_id, now=now
        )
        if updated == 0:
            raise NotFoundError("Role grant not found or already revoked")
        moderation_log.append(
            session,
            action=ModerationAction.revoke_role,
            actor_user_id=revoker_user_id,
            chain=chain,
            target_description=_describe(grant.subject_user_id, grant.role_type),
            now=now,
        )
        await session.commit()
        await session.refresh(grant)

    logger.info("role_revoked grant_id=%s revoker=%s", grant_id, revoker_user_id)
    return grant


async def get_role(session: AsyncSession, *, grant_id: str) -> RoleGrant:
    async with storage_guard(session, operation="roles.get"):
        grant = await roles_repo.get_grant(session, grant_id=grant_id)
    if grant is None:
        raise NotFoundError("Role grant not found")
    return grant


async def get_active_roles(session: AsyncSession, *, user_id: str) -> list[RoleGrant]:
    async with storage_guard(session, operation="roles.list_for_user"):
        return await roles_repo.list_active_grants_for_user(session, subject_user_id=user_id)


async def list_scope_roles(session: AsyncSession, *, scope: Scope) -> list[RoleGrant]:
    # Active grants held exactly at this scope (not inherited), for role management screens.
    async with storage_guard(session, operation="roles.list_for_scope"):
        return await roles_repo.list_active_grants_for_scope(session, scope_key=scope.key)


async def bootstrap_global_admin(
    session: AsyncSession,
    *,
    user_id: str,
    now: datetime | None = None,
) -> RoleGrant:
    """Grant Global Administrator without an assigner check.

    Used once per environment to seed the first administrator; calling it
    again for the same user returns the existing active grant.
    """
    if not user_id:
        raise InvalidArgumentError("user_id is required")
    now = now or utc_now()
    scope = Scope.global_scope()
    chain = ScopeChain((scope,))
    async with storage_guard(session, operation="roles.bootstrap"):
        existing = await roles_repo.find_active_grant(
            session,
            subject_user_id=user_id,
            role_type=RoleType.administrator.value,
            scope_key=scope.key,
        )
        if existing is not None:
            return existing
        grant = RoleGrant(
            id=uuid4().hex,
            subject_user_id=user_id,
            role_type=RoleType.administrator.value,
            scope_key=scope.key,
            granted_by_user_id=moderation_log.SYSTEM_ACTOR,
            granted_at=now,
        )
        session.add(grant)
        moderation_log.append(
            session,
            action=ModerationAction.assign_role,
            actor_user_id=moderation_log.SYSTEM_ACTOR,
            chain=chain,
            target_description=_describe(user_id, RoleType.administrator),
            reason="bootstrap",
            now=now,
        )
        try:
            await session.commit()
        except IntegrityError:
            await session.rollback()
            existing = await roles_repo.find_active_grant(
                session,
                subject_user_id=user_id,
                role_type=RoleType.administrator.value,
                scope_key=scope.key,
            )
            if existing is None:
                raise
            return existing

    logger.info("global_admin_bootstrapped grant_id=%s subject=%s", grant.id, user_id)
    return grant

from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from modcore.core.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
    StorageFailureError,
)
from modcore.domain.models import RoleGrant
from modcore.domain.scope import BanType, RoleType, Scope
from modcore.persistence.db import SessionLocal
from modcore.persistence.repos import roles as roles_repo
from modcore.services import bans, roles
from modcore.tests.utils.moderation import at, grant_role, log_actions


@pytest.mark.asyncio
async def test_moderator_grant_is_inherited_by_descendants(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))

    assert await roles.can_moderate(session, content, user_id="mod", scope=Scope.space("s1"))
    assert await roles.can_moderate(session, content, user_id="mod", scope=Scope.hub("h1"))
    assert not await roles.can_moderate(session, content, user_id="mod", scope=Scope.space("s2"))
    assert not await roles.can_moderate(session, content, user_id="mod", scope=Scope.community("c1"))
    assert not await roles.can_administer(session, content, user_id="mod", scope=Scope.space("s1"))


@pytest.mark.asyncio
async def test_administrator_implies_moderator(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator, scope=Scope.community("c1"))

    assert await roles.can_moderate(session, content, user_id="admin", scope=Scope.space("s2"))
    assert await roles.can_administer(session, content, user_id="admin", scope=Scope.space("s2"))
    assert not await roles.can_moderate(session, content, user_id="admin", scope=Scope.space("s3"))


@pytest.mark.asyncio
async def test_checks_on_unknown_scope_return_false(session, content) -> None:
    await grant_role(session, user_id="root", role_type=RoleType.administrator)

    assert not await roles.can_moderate(session, content, user_id="root", scope=Scope.space("ghost"))
    assert not await roles.can_administer(session, content, user_id="root", scope=Scope.hub("ghost"))


@pytest.mark.asyncio
async def test_assign_and_revoke_round_trip(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator, scope=Scope.community("c1"))

    grant = await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type="moderator",
        scope=Scope.hub("h1"),
        assigner_user_id="admin",
        now=at(1),
    )
    assert grant.scope_key == "hub:h1"
    assert grant.granted_by_user_id == "admin"
    assert await roles.can_moderate(session, content, user_id="u1", scope=Scope.space("s1"))

    revoked = await roles.revoke_role(session, content, grant_id=grant.id, revoker_user_id="admin", now=at(2))
    assert revoked.revoked_at is not None
    assert revoked.revoked_by_user_id == "admin"
    assert not await roles.can_moderate(session, content, user_id="u1", scope=Scope.space("s1"))
    assert await log_actions(session) == ["assign_role", "revoke_role"]


@pytest.mark.asyncio
async def test_assign_requires_administrator_at_scope(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.community("c1"))
    await grant_role(session, user_id="hub-admin", role_type=RoleType.administrator, scope=Scope.hub("h1"))

    with pytest.raises(PermissionDeniedError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.space("s1"),
            assigner_user_id="mod",
        )
    with pytest.raises(PermissionDeniedError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.community("c1"),
            assigner_user_id="hub-admin",
        )
    assert await log_actions(session) == []


@pytest.mark.asyncio
async def test_assign_duplicate_active_grant_conflicts(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type=RoleType.moderator,
        scope=Scope.space("s1"),
        assigner_user_id="admin",
    )

    with pytest.raises(ConflictError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.space("s1"),
            assigner_user_id="admin",
        )


@pytest.mark.asyncio
async def test_concurrent_assign_loses_on_unique_index(session, content, monkeypatch) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type=RoleType.moderator,
        scope=Scope.hub("h2"),
        assigner_user_id="admin",
    )

    # Simulate the second request having passed its pre-check before the first committed.
    async def _no_existing(*_args, **_kwargs):
        return None

    monkeypatch.setattr(roles_repo, "find_active_grant", _no_existing)
    with pytest.raises(ConflictError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.hub("h2"),
            assigner_user_id="admin",
        )

    active = (
        await session.execute(
            select(RoleGrant).where(RoleGrant.subject_user_id == "u1", RoleGrant.revoked_at.is_(None))
        )
    ).scalars().all()
    assert len(active) == 1
    assert await log_actions(session) == ["assign_role"]


@pytest.mark.asyncio
async def test_regrant_after_revoke_is_allowed(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    first = await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type=RoleType.moderator,
        scope=Scope.space("s1"),
        assigner_user_id="admin",
    )
    await roles.revoke_role(session, content, grant_id=first.id, revoker_user_id="admin")

    second = await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type=RoleType.moderator,
        scope=Scope.space("s1"),
        assigner_user_id="admin",
    )
    assert second.id != first.id


@pytest.mark.asyncio
async def test_assign_to_banned_user_conflicts(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    await bans.ban_user(
        session,
        content,
        target_user_id="u1",
        ban_type=BanType.write_only,
        scope=Scope.community("c1"),
        banner_user_id="admin",
    )

    with pytest.raises(ConflictError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.space("s1"),
            assigner_user_id="admin",
        )
    # A ban in another community does not block grants elsewhere.
    grant = await roles.assign_role(
        session,
        content,
        target_user_id="u1",
        role_type=RoleType.moderator,
        scope=Scope.space("s3"),
        assigner_user_id="admin",
    )
    assert grant.scope_key == "space:s3"


@pytest.mark.asyncio
async def test_assign_validates_inputs(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)

    with pytest.raises(NotFoundError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type=RoleType.moderator,
            scope=Scope.space("ghost"),
            assigner_user_id="admin",
        )
    with pytest.raises(InvalidArgumentError):
        await roles.assign_role(
            session,
            content,
            target_user_id="u1",
            role_type="owner",
            scope=Scope.space("s1"),
            assigner_user_id="admin",
        )
    with pytest.raises(InvalidArgumentError):
        await roles.assign_role(
            session,
            content,
            target_user_id="",
            role_type=RoleType.moderator,
            scope=Scope.space("s1"),
            assigner_user_id="admin",
        )


@pytest.mark.asyncio
async def test_revoke_errors(session, content) -> None:
    admin_grant_id = await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    target_grant_id = await grant_role(session, user_id="u1", scope=Scope.hub("h1"))
    await grant_role(session, user_id="hub-mod", scope=Scope.hub("h1"))

    with pytest.raises(NotFoundError):
        await roles.revoke_role(session, content, grant_id="missing", revoker_user_id="admin")
    with pytest.raises(PermissionDeniedError):
        await roles.revoke_role(session, content, grant_id=target_grant_id, revoker_user_id="hub-mod")

    await roles.revoke_role(session, content, grant_id=target_grant_id, revoker_user_id="admin")
    with pytest.raises(NotFoundError):
        await roles.revoke_role(session, content, grant_id=target_grant_id, revoker_user_id="admin")
    assert admin_grant_id != target_grant_id


@pytest.mark.asyncio
async def test_listing_roles(session, content) -> None:
    await grant_role(session, user_id="u1", scope=Scope.hub("h1"), granted_at=at(1))
    await grant_role(session, user_id="u1", role_type=RoleType.administrator, scope=Scope.space("s3"), granted_at=at(2))
    await grant_role(session, user_id="u2", scope=Scope.hub("h1"), granted_at=at(3))

    mine = await roles.get_active_roles(session, user_id="u1")
    assert [grant.scope_key for grant in mine] == ["hub:h1", "space:s3"]
    at_hub = await roles.list_scope_roles(session, scope=Scope.hub("h1"))
    assert [grant.subject_user_id for grant in at_hub] == ["u1", "u2"]
    fetched = await roles.get_role(session, grant_id=mine[0].id)
    assert fetched.subject_user_id == "u1"
    with pytest.raises(NotFoundError):
        await roles.get_role(session, grant_id="missing")


@pytest.mark.asyncio
async def test_bootstrap_global_admin_is_idempotent(session, content) -> None:
    first = await roles.bootstrap_global_admin(session, user_id="root")
    first_id = first.id
    second = await roles.bootstrap_global_admin(session, user_id="root")

    assert second.id == first_id
    assert first.granted_by_user_id == "system"
    assert await roles.can_administer(session, content, user_id="root", scope=Scope.space("s2"))
    assert await log_actions(session) == ["assign_role"]


@pytest.mark.asyncio
async def test_storage_errors_surface_as_storage_failure(session, content, monkeypatch) -> None:
    async def _broken(*_args, **_kwargs):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(roles_repo, "has_active_grant", _broken)
    with pytest.raises(StorageFailureError):
        await roles.can_moderate(session, content, user_id="u1", scope=Scope.space("s1"))


@pytest.mark.asyncio
async def test_racing_revocations_have_one_winner(session, content) -> None:
    await grant_role(session, user_id="admin", role_type=RoleType.administrator)
    grant_id = await grant_role(session, user_id="u1", scope=Scope.hub("h1"))

    async with SessionLocal() as other:
        # The second revoker loaded the grant while it was still active.
        stale = await roles_repo.get_grant(other, grant_id=grant_id)
        assert stale.revoked_at is None

        revoked = await roles.revoke_role(session, content, grant_id=grant_id, revoker_user_id="admin", now=at(1))
        with pytest.raises(NotFoundError):
            await roles.revoke_role(other, content, grant_id=grant_id, revoker_user_id="admin", now=at(2))

    assert revoked.revoked_by_user_id == "admin"
    assert await log_actions(session) == ["revoke_role"]

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from modcore.core.clock import as_utc
from modcore.core.errors import (
    AlreadyUnbannedError,
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PermissionDeniedError,
)
from modcore.domain.scope import BanType, RoleType, Scope
from modcore.persistence.db import SessionLocal
from modcore.persistence.repos import bans as bans_repo
from modcore.services import bans
from modcore.tests.utils.moderation import T0, at, grant_role, log_actions


async def _ban(session, content, *, target="v", scope=Scope.hub("h1"), ban_type=BanType.write_only, **kwargs):
    return await bans.ban_user(
        session,
        content,
        target_user_id=target,
        ban_type=ban_type,
        scope=scope,
        banner_user_id=kwargs.pop("banner", "mod"),
        now=kwargs.pop("now", T0),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_ban_applies_to_scope_and_descendants_only(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.community("c1"))
    await _ban(session, content, scope=Scope.hub("h1"))

    now = at(1)
    assert await bans.is_banned(session, content, user_id="v", scope=Scope.hub("h1"), now=now)
    assert await bans.is_banned(session, content, user_id="v", scope=Scope.space("s1"), now=now)
    assert not await bans.is_banned(session, content, user_id="v", scope=Scope.space("s2"), now=now)
    assert not await bans.is_banned(session, content, user_id="v", scope=Scope.community("c1"), now=now)
    assert not await bans.is_banned(session, content, user_id="v", now=now)
    assert await log_actions(session) == ["ban_user"]


@pytest.mark.asyncio
async def test_ban_expires_lazily_and_can_still_be_closed(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.space("s1"))
    ban = await _ban(session, content, scope=Scope.space("s1"), expires_at=T0 + timedelta(hours=1))
    ban_id = ban.id

    assert await bans.is_banned(session, content, user_id="v", scope=Scope.space("s1"), now=at(30))
    assert not await bans.is_banned(session, content, user_id="v", scope=Scope.space("s1"), now=at(120))

    closed = await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="mod", now=at(180))
    assert closed.unbanned_by_user_id == "mod"
    assert as_utc(closed.unbanned_at) == at(180)
    with pytest.raises(AlreadyUnbannedError):
        await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="mod", now=at(181))


@pytest.mark.asyncio
async def test_unban_lifts_ban(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))
    ban = await _ban(session, content, scope=Scope.hub("h1"))

    await bans.unban_user(session, content, ban_id=ban.id, unbanner_user_id="mod", now=at(5))
    assert not await bans.is_banned(session, content, user_id="v", scope=Scope.space("s1"), now=at(6))
    assert await log_actions(session) == ["ban_user", "unban_user"]


@pytest.mark.asyncio
async def test_cannot_ban_a_moderator_of_the_scope(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.community("c1"))
    await grant_role(session, user_id="other-mod", scope=Scope.hub("h1"))

    with pytest.raises(ConflictError):
        await _ban(session, content, target="other-mod", scope=Scope.space("s1"))
    # Moderating h1 does not shield the user from a ban in h2.
    ban = await _ban(session, content, target="other-mod", scope=Scope.hub("h2"))
    assert ban.scope_key == "hub:h2"


@pytest.mark.asyncio
async def test_ban_permission_and_validation(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))

    with pytest.raises(PermissionDeniedError):
        await _ban(session, content, scope=Scope.hub("h2"))
    with pytest.raises(InvalidArgumentError):
        await _ban(session, content, target="mod")
    with pytest.raises(InvalidArgumentError):
        await _ban(session, content, expires_at=T0 - timedelta(minutes=1))
    with pytest.raises(InvalidArgumentError):
        await _ban(session, content, expires_at=datetime(2027, 1, 1))
    with pytest.raises(InvalidArgumentError):
        await _ban(session, content, ban_type="shadow")
    with pytest.raises(NotFoundError):
        await _ban(session, content, scope=Scope.space("ghost"))
    assert await log_actions(session) == []


@pytest.mark.asyncio
async def test_self_ban_without_authority_is_denied(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))

    # Authority is checked before the self-ban rule.
    with pytest.raises(PermissionDeniedError):
        await _ban(session, content, target="v", banner="v")
    with pytest.raises(PermissionDeniedError):
        await _ban(session, content, target="mod", banner="mod", scope=Scope.hub("h2"))
    assert await log_actions(session) == []


@pytest.mark.asyncio
async def test_naive_now_is_read_as_utc(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))
    naive_now = T0.replace(tzinfo=None)

    with pytest.raises(InvalidArgumentError):
        await _ban(session, content, now=naive_now, expires_at=T0 - timedelta(minutes=1))
    ban = await _ban(session, content, now=naive_now, expires_at=T0 + timedelta(hours=1))

    assert as_utc(ban.banned_at) == T0
    assert as_utc(ban.expires_at) == T0 + timedelta(hours=1)


@pytest.mark.asyncio
async def test_unban_error_order(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))
    ban = await _ban(session, content, scope=Scope.hub("h1"))
    ban_id = ban.id

    with pytest.raises(NotFoundError):
        await bans.unban_user(session, content, ban_id="missing", unbanner_user_id="mod")
    with pytest.raises(PermissionDeniedError):
        await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="stranger")

    await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="mod", now=at(1))
    # Already-lifted is reported before the permission check.
    with pytest.raises(AlreadyUnbannedError):
        await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="stranger")


@pytest.mark.asyncio
async def test_read_access_only_counts_read_write_bans(session, content) -> None:
    await grant_role(session, user_id="mod", role_type=RoleType.administrator)
    await _ban(session, content, target="writer", scope=Scope.space("s1"), ban_type=BanType.write_only)
    await _ban(session, content, target="lurker", scope=Scope.space("s1"), ban_type=BanType.read_write)

    scope = Scope.space("s1")
    assert await bans.is_banned(session, content, user_id="writer", scope=scope, now=at(1))
    assert not await bans.is_banned(session, content, user_id="writer", scope=scope, access="read", now=at(1))
    assert await bans.is_banned(session, content, user_id="lurker", scope=scope, access="read", now=at(1))
    with pytest.raises(InvalidArgumentError):
        await bans.is_banned(session, content, user_id="writer", scope=scope, access="admin")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_unresolvable_hint_only_consults_global_bans(session, content) -> None:
    await grant_role(session, user_id="mod", role_type=RoleType.administrator)
    await _ban(session, content, target="global-v", scope=Scope.global_scope())
    await _ban(session, content, target="hub-v", scope=Scope.hub("h1"))

    ghost = Scope.space("ghost")
    assert await bans.is_banned(session, content, user_id="global-v", scope=ghost, now=at(1))
    assert not await bans.is_banned(session, content, user_id="hub-v", scope=ghost, now=at(1))


@pytest.mark.asyncio
async def test_get_active_ban_prefers_narrowest(session, content) -> None:
    await grant_role(session, user_id="mod", role_type=RoleType.administrator)
    await _ban(session, content, scope=Scope.community("c1"), now=at(1))
    narrow = await _ban(session, content, scope=Scope.space("s1"), now=T0)
    narrow_id = narrow.id

    found = await bans.get_active_ban(session, content, user_id="v", scope=Scope.space("s1"), now=at(2))
    assert found is not None
    assert found.id == narrow_id
    active = await bans.list_active_bans(session, user_id="v", now=at(2))
    assert len(active) == 2
    assert (await bans.get_ban(session, ban_id=narrow_id)).scope_key == "space:s1"
    with pytest.raises(NotFoundError):
        await bans.get_ban(session, ban_id="missing")


@pytest.mark.asyncio
async def test_racing_unbans_have_one_winner(session, content) -> None:
    await grant_role(session, user_id="mod", scope=Scope.hub("h1"))
    await grant_role(session, user_id="other-mod", scope=Scope.community("c1"))
    ban = await _ban(session, content, scope=Scope.hub("h1"))
    ban_id = ban.id

    async with SessionLocal() as other:
        # The second unbanner loaded the ban while it was still open.
        stale = await bans_repo.get_ban(other, ban_id=ban_id)
        assert stale.unbanned_at is None

        lifted = await bans.unban_user(session, content, ban_id=ban_id, unbanner_user_id="mod", now=at(1))
        with pytest.raises(AlreadyUnbannedError):
            await bans.unban_user(other, content, ban_id=ban_id, unbanner_user_id="other-mod", now=at(2))

    assert lifted.unbanned_by_user_id == "mod"
    assert await log_actions(session) == ["ban_user", "unban_user"]

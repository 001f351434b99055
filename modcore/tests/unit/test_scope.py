from __future__ import annotations

import pytest

from modcore.core.errors import InvalidArgumentError, NotFoundError
from modcore.domain.scope import BanType, ReportStatus, RoleType, Scope, ScopeChain, ScopeKind, scope_from_row
from modcore.services.scope import (
    resolve_ancestors,
    resolve_or_detached,
    scope_for_discussion,
    scope_for_post,
    try_resolve_ancestors,
)


def test_scope_keys_and_column_projection() -> None:
    space = Scope.space("s1")
    assert space.key == "space:s1"
    assert (space.community_id, space.hub_id, space.space_id) == (None, None, "s1")
    assert Scope.global_scope().key == "global"
    assert Scope.global_scope().is_global
    assert str(Scope.community("c1")) == "community:c1"


def test_from_ids_rejects_more_than_one_id() -> None:
    with pytest.raises(InvalidArgumentError):
        Scope.from_ids(community_id="c1", hub_id="h1")
    assert Scope.from_ids() == Scope.global_scope()
    assert Scope.from_ids(hub_id="h1") == Scope.hub("h1")


def test_scope_validation() -> None:
    with pytest.raises(InvalidArgumentError):
        Scope(ScopeKind.hub)
    with pytest.raises(InvalidArgumentError):
        Scope(ScopeKind.global_, "x")
    with pytest.raises(InvalidArgumentError):
        Scope.space("a/b")


def test_scope_from_row_reads_scope_columns() -> None:
    class Row:
        community_id = None
        hub_id = "h9"
        space_id = None

    assert scope_from_row(Row()) == Scope.hub("h9")


def test_chain_path_and_inverse() -> None:
    chain = ScopeChain((Scope.space("s1"), Scope.hub("h1"), Scope.community("c1"), Scope.global_scope()))
    assert chain.path == "/community:c1/hub:h1/space:s1/"
    assert chain.keys == ["space:s1", "hub:h1", "community:c1", "global"]
    assert ScopeChain.from_path(chain.path) == chain
    assert ScopeChain.from_path("/").scopes == (Scope.global_scope(),)
    assert chain.contains(Scope.hub("h1"))
    assert not chain.contains(Scope.hub("h2"))


def test_chain_must_end_with_global() -> None:
    with pytest.raises(ValueError):
        ScopeChain((Scope.hub("h1"),))


def test_enum_parsing() -> None:
    assert RoleType.parse("moderator") is RoleType.moderator
    assert RoleType.administrator.implies(RoleType.moderator)
    assert not RoleType.moderator.implies(RoleType.administrator)
    assert BanType.parse("read_write") is BanType.read_write
    assert ReportStatus.dismissed.is_terminal
    assert not ReportStatus.pending.is_terminal
    with pytest.raises(InvalidArgumentError):
        RoleType.parse("owner")
    with pytest.raises(InvalidArgumentError):
        BanType.parse("shadow")


@pytest.mark.asyncio
async def test_resolve_ancestors_walks_to_global(content) -> None:
    chain = await resolve_ancestors(content, Scope.space("s1"))
    assert chain.keys == ["space:s1", "hub:h1", "community:c1", "global"]
    assert (await resolve_ancestors(content, Scope.global_scope())).keys == ["global"]
    assert (await resolve_ancestors(content, Scope.community("c2"))).keys == ["community:c2", "global"]


@pytest.mark.asyncio
async def test_resolve_ancestors_unknown_scope(content) -> None:
    with pytest.raises(NotFoundError):
        await resolve_ancestors(content, Scope.space("missing"))
    with pytest.raises(NotFoundError):
        await resolve_ancestors(content, Scope.community("missing"))
    assert await try_resolve_ancestors(content, Scope.hub("missing")) is None
    detached = await resolve_or_detached(content, Scope.hub("missing"))
    assert detached.keys == ["hub:missing", "global"]


@pytest.mark.asyncio
async def test_content_scope_lookup(content) -> None:
    assert await scope_for_post(content, "p2") == Scope.space("s2")
    assert await scope_for_discussion(content, "d3") == Scope.space("s3")
    with pytest.raises(NotFoundError):
        await scope_for_post(content, "nope")
    with pytest.raises(NotFoundError):
        await scope_for_discussion(content, "nope")

from __future__ import annotations

import pytest

from modcore.core.errors import InvalidArgumentError, NotFoundError
from modcore.domain.pagination import normalize_page
from modcore.domain.scope import ModerationAction, Scope, ScopeChain
from modcore.services import moderation_log
from modcore.services.scope import resolve_ancestors
from modcore.tests.utils.moderation import at


async def _seed_entries(session, content) -> None:
    # One entry per scope level, oldest first.
    scopes = [
        Scope.global_scope(),
        Scope.community("c1"),
        Scope.hub("h1"),
        Scope.space("s1"),
        Scope.space("s2"),
        Scope.space("s3"),
    ]
    for minute, scope in enumerate(scopes):
        chain = await resolve_ancestors(content, scope)
        moderation_log.append(
            session,
            action=ModerationAction.delete_post,
            actor_user_id="mod-a" if minute % 2 == 0 else "mod-b",
            chain=chain,
            target_description=f"post:{scope.key}",
            now=at(minute),
        )
    await session.commit()


@pytest.mark.asyncio
async def test_query_includes_descendants_newest_first(session, content) -> None:
    await _seed_entries(session, content)

    page = await moderation_log.query(session, content, scope=Scope.community("c1"))
    assert [entry.scope_key for entry in page.items] == ["space:s2", "space:s1", "hub:h1", "community:c1"]
    assert page.total == 4
    assert not page.has_more

    hub_page = await moderation_log.query(session, content, scope=Scope.hub("h1"))
    assert [entry.scope_key for entry in hub_page.items] == ["space:s1", "hub:h1"]

    everything = await moderation_log.query(session, content, scope=Scope.global_scope())
    assert everything.total == 6


@pytest.mark.asyncio
async def test_query_pagination(session, content) -> None:
    await _seed_entries(session, content)

    first = await moderation_log.query(session, content, scope=Scope.global_scope(), page_size=4)
    assert len(first.items) == 4
    assert first.has_more
    rest = await moderation_log.query(session, content, scope=Scope.global_scope(), offset=4, page_size=4)
    assert [entry.scope_key for entry in rest.items] == ["community:c1", "global"]
    assert not rest.has_more

    with pytest.raises(InvalidArgumentError):
        await moderation_log.query(session, content, scope=Scope.global_scope(), offset=-1)
    with pytest.raises(NotFoundError):
        await moderation_log.query(session, content, scope=Scope.hub("ghost"))


@pytest.mark.asyncio
async def test_query_by_actor(session, content) -> None:
    await _seed_entries(session, content)

    page = await moderation_log.query_by_actor(session, actor_user_id="mod-b")
    assert [entry.scope_key for entry in page.items] == ["space:s3", "space:s1", "community:c1"]
    assert page.total == 3


@pytest.mark.asyncio
async def test_scope_ids_with_like_wildcards_do_not_leak(session, content) -> None:
    content.add_community("c_")
    content.add_hub("hx", "c_")
    moderation_log.append(
        session,
        action=ModerationAction.lock_discussion,
        actor_user_id="mod",
        chain=await resolve_ancestors(content, Scope.hub("hx")),
        target_description="discussion:x",
        now=at(1),
    )
    moderation_log.append(
        session,
        action=ModerationAction.lock_discussion,
        actor_user_id="mod",
        chain=ScopeChain((Scope.community("c1"), Scope.global_scope())),
        target_description="discussion:y",
        now=at(2),
    )
    await session.commit()

    page = await moderation_log.query(session, content, scope=Scope.community("c_"))
    assert [entry.target_description for entry in page.items] == ["discussion:x"]


def test_normalize_page_clamps_sizes() -> None:
    assert normalize_page(0, None) == (0, 25)
    assert normalize_page(3, 0) == (3, 1)
    assert normalize_page(0, 10_000) == (0, 100)
    with pytest.raises(InvalidArgumentError):
        normalize_page(-5, 10)

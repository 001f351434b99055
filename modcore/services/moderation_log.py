from __future__ import annotations

from datetime import datetime
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import utc_now
from modcore.domain.models import ModerationLogEntry
from modcore.domain.pagination import Page, normalize_page
from modcore.domain.scope import ModerationAction, Scope, ScopeChain
from modcore.persistence.db import storage_guard
from modcore.persistence.repos import moderation_log as log_repo
from modcore.services.content import ContentDirectory
from modcore.services.scope import resolve_ancestors


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def append(
    session: AsyncSession,
    *,
    action: ModerationAction,
    actor_user_id: str,
    chain: ScopeChain,
    target_description: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> ModerationLogEntry:
    """Stage an audit entry on the caller's session.

    The entry is committed together with the action it records, so the two
    succeed or fail as one unit. Nothing here swallows errors: a failed
    commit surfaces to the caller as a storage failure.
    """
    scope = chain.scope
    entry = ModerationLogEntry(
        action_type=action.value,
        actor_user_id=actor_user_id,
        community_id=scope.community_id,
        hub_id=scope.hub_id,
        space_id=scope.space_id,
        scope_key=scope.key,
        scope_path=chain.path,
        target_description=target_description,
        reason=reason,
        created_at=now or utc_now(),
    )
    session.add(entry)
    return entry


async def query(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    scope: Scope,
    offset: int = 0,
    page_size: int | None = None,
) -> Page[ModerationLogEntry]:
    # Entries at the scope and every descendant scope, newest first.
    offset, limit = normalize_page(offset, page_size)
    chain = await resolve_ancestors(content, scope)
    async with storage_guard(session, operation="moderation_log.query"):
        items = await log_repo.list_entries_for_paths(
            session, path_prefixes=[chain.path], offset=offset, limit=limit
        )
        total = await log_repo.count_entries_for_paths(session, path_prefixes=[chain.path])
    return Page(items=items, offset=offset, page_size=limit, total=total)


async def query_by_actor(
    session: AsyncSession,
    *,
    actor_user_id: str,
    offset: int = 0,
    page_size: int | None = None,
) -> Page[ModerationLogEntry]:
    offset, limit = normalize_page(offset, page_size)
    async with storage_guard(session, operation="moderation_log.query_by_actor"):
        items = await log_repo.list_entries_by_actor(
            session, actor_user_id=actor_user_id, offset=offset, limit=limit
        )
        total = await log_repo.count_entries_by_actor(session, actor_user_id=actor_user_id)
    return Page(items=items, offset=offset, page_size=limit, total=total)

from __future__ import annotations

from datetime import datetime
import logging
from typing import Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import utc_now
from modcore.core.errors import ModerationError, PermissionDeniedError
from modcore.domain.scope import ModerationAction, RoleType, ScopeChain
from modcore.persistence.db import storage_guard
from modcore.services import moderation_log
from modcore.services.content import ContentDirectory, ContentGateway
from modcore.services.roles import has_role_in_chain
from modcore.services.scope import resolve_ancestors, scope_for_discussion, scope_for_post


logger = logging.getLogger(__name__)


async def _require_moderator(session: AsyncSession, *, user_id: str, chain: ScopeChain, what: str) -> None:
    if not await has_role_in_chain(session, user_id=user_id, chain=chain, required=RoleType.moderator):
        logger.info("takedown_denied actor=%s target=%s", user_id, what)
        raise PermissionDeniedError("You don't have permission to moderate this content")


async def _take_down(
    session: AsyncSession,
    *,
    action: ModerationAction,
    apply: Callable[[], Awaitable[None]],
    chain: ScopeChain,
    target: str,
    moderator_user_id: str,
    reason: str | None,
    now: datetime | None,
) -> None:
    """Audit a takedown, then perform it against the content service.

    The log entry is committed before the external call, so a storage
    failure leaves the content untouched and a performed takedown always
    has its entry. When the content service refuses afterwards, a
    ``takedown_failed`` entry records the outcome and the error propagates.
    """
    now = now or utc_now()
    async with storage_guard(session, operation=f"moderation.{action.value}"):
        await _require_moderator(session, user_id=moderator_user_id, chain=chain, what=target)
        moderation_log.append(
            session,
            action=action,
            actor_user_id=moderator_user_id,
            chain=chain,
            target_description=target,
            reason=reason,
            now=now,
        )
        await session.commit()

    try:
        await apply()
    except ModerationError as exc:
        logger.warning("takedown_failed action=%s target=%s error=%s", action.value, target, exc.code)
        async with storage_guard(session, operation="moderation.takedown_failed"):
            moderation_log.append(
                session,
                action=ModerationAction.takedown_failed,
                actor_user_id=moderator_user_id,
                chain=chain,
                target_description=target,
                reason=f"{action.value} failed: {exc.code}",
                now=now,
            )
            await session.commit()
        raise

    logger.info("takedown_applied action=%s target=%s moderator=%s", action.value, target, moderator_user_id)


async def delete_post(
    session: AsyncSession,
    content: ContentDirectory,
    gateway: ContentGateway,
    *,
    post_id: str,
    moderator_user_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> None:
    chain = await resolve_ancestors(content, await scope_for_post(content, post_id))
    await _take_down(
        session,
        action=ModerationAction.delete_post,
        apply=lambda: gateway.delete_post(post_id),
        chain=chain,
        target=f"post:{post_id}",
        moderator_user_id=moderator_user_id,
        reason=reason,
        now=now,
    )


async def delete_discussion(
    session: AsyncSession,
    content: ContentDirectory,
    gateway: ContentGateway,
    *,
    discussion_id: str,
    moderator_user_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> None:
    chain = await resolve_ancestors(content, await scope_for_discussion(content, discussion_id))
    await _take_down(
        session,
        action=ModerationAction.delete_discussion,
        apply=lambda: gateway.delete_discussion(discussion_id),
        chain=chain,
        target=f"discussion:{discussion_id}",
        moderator_user_id=moderator_user_id,
        reason=reason,
        now=now,
    )


async def _set_locked(
    session: AsyncSession,
    content: ContentDirectory,
    gateway: ContentGateway,
    *,
    discussion_id: str,
    moderator_user_id: str,
    locked: bool,
    reason: str | None,
    now: datetime | None,
) -> None:
    chain = await resolve_ancestors(content, await scope_for_discussion(content, discussion_id))
    await _take_down(
        session,
        action=ModerationAction.lock_discussion if locked else ModerationAction.unlock_discussion,
        apply=lambda: gateway.set_discussion_locked(discussion_id, locked),
        chain=chain,
        target=f"discussion:{discussion_id}",
        moderator_user_id=moderator_user_id,
        reason=reason,
        now=now,
    )


async def lock_discussion(
    session: AsyncSession,
    content: ContentDirectory,
    gateway: ContentGateway,
    *,
    discussion_id: str,
    moderator_user_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> None:
    await _set_locked(
        session,
        content,
        gateway,
        discussion_id=discussion_id,
        moderator_user_id=moderator_user_id,
        locked=True,
        reason=reason,
        now=now,
    )


async def unlock_discussion(
    session: AsyncSession,
    content: ContentDirectory,
    gateway: ContentGateway,
    *,
    discussion_id: str,
    moderator_user_id: str,
    reason: str | None = None,
    now: datetime | None = None,
) -> None:
    await _set_locked(
        session,
        content,
        gateway,
        discussion_id=discussion_id,
        moderator_user_id=moderator_user_id,
        locked=False,
        reason=reason,
        now=now,
    )

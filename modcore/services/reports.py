from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from modcore.core.clock import utc_now
from modcore.core.errors import (
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from modcore.domain.models import Report, ReportComment, ReportReason
from modcore.domain.pagination import Page, normalize_page
from modcore.domain.scope import (
    ModerationAction,
    ReportStatus,
    RoleType,
    Scope,
    ScopeChain,
    scope_from_row,
)
from modcore.persistence.db import storage_guard
from modcore.persistence.repos import reports as reports_repo
from modcore.persistence.repos import roles as roles_repo
from modcore.services import moderation_log
from modcore.services.content import ContentDirectory
from modcore.services.roles import has_role_in_chain
from modcore.services.scope import (
    global_chain,
    resolve_ancestors,
    resolve_or_detached,
    scope_for_discussion,
    scope_for_post,
    try_resolve_ancestors,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReportTarget:
    """What a report points at; exactly one reference must be set."""

    post_id: str | None = None
    discussion_id: str | None = None
    user_id: str | None = None

    def validate(self) -> None:
        provided = [value for value in (self.post_id, self.discussion_id, self.user_id) if value]
        if len(provided) != 1:
            raise InvalidArgumentError("Exactly one of post_id, discussion_id, user_id must be set")

    def describe(self) -> str:
        if self.post_id:
            return f"post:{self.post_id}"
        if self.discussion_id:
            return f"discussion:{self.discussion_id}"
        return f"user:{self.user_id}"


@dataclass(frozen=True)
class ReportDetail:
    report: Report
    comments: list[ReportComment]


async def infer_target_scope(content: ContentDirectory, target: ReportTarget) -> ScopeChain:
    # Post -> discussion -> space; user reports have no content scope and land at Global.
    target.validate()
    if target.post_id:
        scope = await scope_for_post(content, target.post_id)
    elif target.discussion_id:
        scope = await scope_for_discussion(content, target.discussion_id)
    else:
        return global_chain()
    return await resolve_ancestors(content, scope)


def _clean_text(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _describe_report(report: Report) -> str:
    target = ReportTarget(
        post_id=report.reported_post_id,
        discussion_id=report.reported_discussion_id,
        user_id=report.reported_user_id,
    )
    return f"report:{report.id} {target.describe()}"


async def create_report(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    reporter_user_id: str,
    target: ReportTarget,
    reason_id: str,
    details: str | None = None,
    now: datetime | None = None,
) -> Report:
    if not reporter_user_id:
        raise InvalidArgumentError("reporter_user_id is required")
    now = now or utc_now()
    chain = await infer_target_scope(content, target)
    scope = chain.scope

    async with storage_guard(session, operation="reports.create"):
        reason = await reports_repo.get_reason(session, reason_id=reason_id)
        if reason is None or reason.is_deleted:
            raise InvalidArgumentError("Unknown report reason")
        if reason.scope_key not in chain.keys:
            raise InvalidArgumentError("Report reason does not apply to this content")

        report = Report(
            id=uuid4().hex,
            reporter_user_id=reporter_user_id,
            reported_post_id=target.post_id or None,
            reported_discussion_id=target.discussion_id or None,
            reported_user_id=target.user_id or None,
            reason_id=reason.id,
            details=_clean_text(details),
            status=ReportStatus.pending.value,
            community_id=scope.community_id,
            hub_id=scope.hub_id,
            space_id=scope.space_id,
            scope_key=scope.key,
            scope_path=chain.path,
            created_at=now,
        )
        session.add(report)
        moderation_log.append(
            session,
            action=ModerationAction.create_report,
            actor_user_id=reporter_user_id,
            chain=chain,
            target_description=_describe_report(report),
            reason=reason.name,
            now=now,
        )
        await session.commit()

    logger.info(
        "report_created report_id=%s reporter=%s target=%s scope=%s",
        report.id,
        reporter_user_id,
        target.describe(),
        scope.key,
    )
    return report


async def resolve_report(
    session: AsyncSession,
    *,
    report_id: str,
    resolver_user_id: str,
    note: str | None = None,
    dismiss: bool = False,
    now: datetime | None = None,
) -> Report:
    """Move a pending report to Resolved (or Dismissed when ``dismiss``).

    Only the state transition is enforced here; callers check moderator
    authority first (see :func:`resolve_report_as_moderator`).
    """
    now = now or utc_now()
    status = ReportStatus.dismissed if dismiss else ReportStatus.resolved
    note = _clean_text(note)
    async with storage_guard(session, operation="reports.resolve"):
        report = await reports_repo.get_report(session, report_id=report_id)
        if report is None:
            raise NotFoundError("Report not found")
        if ReportStatus.parse(report.status).is_terminal:
            raise InvalidStateError("Report is not pending")
        updated = await reports_repo.transition_report(
            session,
            report_id=report_id,
            status=status,
            resolved_by_user_id=resolver_user_id,
            resolution_note=note,
            now=now,
        )
        if updated == 0:
            # Lost the compare-and-swap to a concurrent resolution.
            raise InvalidStateError("Report is not pending")
        moderation_log.append(
            session,
            action=ModerationAction.dismiss_report if dismiss else ModerationAction.resolve_report,
            actor_user_id=resolver_user_id,
            chain=ScopeChain.from_path(report.scope_path),
            target_description=_describe_report(report),
            reason=note,
            now=now,
        )
        await session.commit()
        await session.refresh(report)

    logger.info("report_%s report_id=%s resolver=%s", status.value, report_id, resolver_user_id)
    return report


async def resolve_report_as_moderator(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    report_id: str,
    resolver_user_id: str,
    note: str | None = None,
    dismiss: bool = False,
    now: datetime | None = None,
) -> Report:
    async with storage_guard(session, operation="reports.authorize"):
        report = await reports_repo.get_report(session, report_id=report_id)
        if report is None:
            raise NotFoundError("Report not found")
        chain = await resolve_or_detached(content, scope_from_row(report))
        if not await has_role_in_chain(
            session, user_id=resolver_user_id, chain=chain, required=RoleType.moderator
        ):
            logger.info("report_resolve_denied resolver=%s report_id=%s", resolver_user_id, report_id)
            raise PermissionDeniedError("You don't have permission to resolve this report")
    return await resolve_report(
        session,
        report_id=report_id,
        resolver_user_id=resolver_user_id,
        note=note,
        dismiss=dismiss,
        now=now,
    )


async def add_comment(
    session: AsyncSession,
    *,
    report_id: str,
    author_user_id: str,
    content: str,
    now: datetime | None = None,
) -> ReportComment:
    # Comments are accepted whatever the report status, including terminal reports.
    text = _clean_text(content)
    if text is None:
        raise InvalidArgumentError("Comment content must not be empty")
    now = now or utc_now()
    async with storage_guard(session, operation="reports.comment"):
        report = await reports_repo.get_report(session, report_id=report_id)
        if report is None:
            raise NotFoundError("Report not found")
        comment = ReportComment(
            id=uuid4().hex,
            report_id=report.id,
            author_user_id=author_user_id,
            content=text,
            created_at=now,
        )
        session.add(comment)
        moderation_log.append(
            session,
            action=ModerationAction.comment_report,
            actor_user_id=author_user_id,
            chain=ScopeChain.from_path(report.scope_path),
            target_description=_describe_report(report),
            now=now,
        )
        await session.commit()

    logger.info("report_commented report_id=%s author=%s", report_id, author_user_id)
    return comment


async def _moderated_paths(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    moderator_user_id: str,
) -> list[str]:
    # Each active moderator-or-admin grant covers its scope path and everything beneath it.
    grants = await roles_repo.list_active_grants_for_user(session, subject_user_id=moderator_user_id)
    paths: set[str] = set()
    for grant in grants:
        if not RoleType.parse(grant.role_type).implies(RoleType.moderator):
            continue
        chain = await try_resolve_ancestors(content, scope_from_row(grant))
        if chain is not None:
            paths.add(chain.path)
    return sorted(paths)


async def get_reports_for_moderator(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    moderator_user_id: str,
    status: ReportStatus | str | None = None,
    offset: int = 0,
    page_size: int | None = None,
) -> Page[Report]:
    offset, limit = normalize_page(offset, page_size)
    status_filter = ReportStatus.parse(status) if status is not None else None
    async with storage_guard(session, operation="reports.list_for_moderator"):
        paths = await _moderated_paths(session, content, moderator_user_id=moderator_user_id)
        if not paths:
            return Page(items=[], offset=offset, page_size=limit, total=0)
        items = await reports_repo.list_reports_for_paths(
            session, path_prefixes=paths, status=status_filter, offset=offset, limit=limit
        )
        total = await reports_repo.count_reports_for_paths(
            session, path_prefixes=paths, status=status_filter
        )
    return Page(items=items, offset=offset, page_size=limit, total=total)


async def count_pending_reports_for_moderator(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    moderator_user_id: str,
) -> int:
    async with storage_guard(session, operation="reports.count_pending"):
        paths = await _moderated_paths(session, content, moderator_user_id=moderator_user_id)
        if not paths:
            return 0
        return await reports_repo.count_reports_for_paths(
            session, path_prefixes=paths, status=ReportStatus.pending
        )


async def get_report_detail(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    report_id: str,
    viewer_user_id: str,
) -> ReportDetail:
    async with storage_guard(session, operation="reports.detail"):
        report = await reports_repo.get_report(session, report_id=report_id)
        if report is None:
            raise NotFoundError("Report not found")
        chain = await resolve_or_detached(content, scope_from_row(report))
        if viewer_user_id != report.reporter_user_id and not await has_role_in_chain(
            session, user_id=viewer_user_id, chain=chain, required=RoleType.moderator
        ):
            raise PermissionDeniedError("You don't have permission to view this report")
        comments = await reports_repo.list_comments(session, report_id=report_id)
    return ReportDetail(report=report, comments=comments)


async def get_reasons(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    scope: Scope | None = None,
) -> list[ReportReason]:
    # Global reasons plus any attached to the hint's chain; an unknown hint yields global only.
    chain = global_chain()
    if scope is not None:
        chain = await try_resolve_ancestors(content, scope) or chain
    async with storage_guard(session, operation="reports.reasons"):
        return await reports_repo.list_reasons_for_scopes(session, scope_keys=chain.keys)


async def create_reason(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    name: str,
    actor_user_id: str,
    description: str | None = None,
    scope: Scope | None = None,
    display_order: int = 0,
    now: datetime | None = None,
) -> ReportReason:
    clean_name = _clean_text(name)
    if clean_name is None:
        raise InvalidArgumentError("Reason name must not be empty")
    now = now or utc_now()
    scope = scope or Scope.global_scope()
    chain = await resolve_ancestors(content, scope)
    async with storage_guard(session, operation="reports.create_reason"):
        if not await has_role_in_chain(
            session, user_id=actor_user_id, chain=chain, required=RoleType.administrator
        ):
            raise PermissionDeniedError("You don't have permission to manage report reasons here")
        reason = ReportReason(
            id=uuid4().hex,
            name=clean_name,
            description=_clean_text(description),
            community_id=scope.community_id,
            hub_id=scope.hub_id,
            space_id=scope.space_id,
            scope_key=scope.key,
            display_order=display_order,
            created_by_user_id=actor_user_id,
            created_at=now,
            is_deleted=False,
        )
        session.add(reason)
        moderation_log.append(
            session,
            action=ModerationAction.create_report_reason,
            actor_user_id=actor_user_id,
            chain=chain,
            target_description=f"reason:{reason.id} {clean_name}",
            now=now,
        )
        await session.commit()

    logger.info("report_reason_created reason_id=%s scope=%s", reason.id, scope.key)
    return reason


async def delete_reason(
    session: AsyncSession,
    content: ContentDirectory,
    *,
    reason_id: str,
    actor_user_id: str,
    now: datetime | None = None,
) -> ReportReason:
    # Soft delete; existing reports keep pointing at the row.
    now = now or utc_now()
    async with storage_guard(session, operation="reports.delete_reason"):
        reason = await reports_repo.get_reason(session, reason_id=reason_id)
        if reason is None or reason.is_deleted:
            raise NotFoundError("Report reason not found")
        chain = await resolve_or_detached(content, scope_from_row(reason))
        if not await has_role_in_chain(
            session, user_id=actor_user_id, chain=chain, required=RoleType.administrator
        ):
            raise PermissionDeniedError("You don't have permission to manage report reasons here")
        reason.is_deleted = True
        reason.deleted_at = now
        moderation_log.append(
            session,
            action=ModerationAction.delete_report_reason,
            actor_user_id=actor_user_id,
            chain=chain,
            target_description=f"reason:{reason.id} {reason.name}",
            now=now,
        )
        await session.commit()

    logger.info("report_reason_deleted reason_id=%s actor=%s", reason_id, actor_user_id)
    return reason

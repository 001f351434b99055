from __future__ import annotations

from datetime import datetime
from typing import Iterable

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.domain.models import Report, ReportComment, ReportReason
from modcore.domain.scope import ReportStatus
from modcore.persistence.guards import scope_path_predicate


async def get_report(session: AsyncSession, *, report_id: str) -> Report | None:
    result = await session.execute(select(Report).where(Report.id == report_id))
    return result.scalar_one_or_none()


async def transition_report(
    session: AsyncSession,
    *,
    report_id: str,
    status: ReportStatus,
    resolved_by_user_id: str,
    resolution_note: str | None,
    now: datetime,
) -> int:
    # Compare-and-swap on status so only one of two racing resolutions wins.
    result = await session.execute(
        update(Report)
        .where(Report.id == report_id, Report.status == ReportStatus.pending.value)
        .values(
            status=status.value,
            resolved_by_user_id=resolved_by_user_id,
            resolution_note=resolution_note,
            resolved_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def _reports_for_paths(path_prefixes: Iterable[str], status: ReportStatus | None):
    stmt = select(Report).where(scope_path_predicate(Report, path_prefixes))
    if status is not None:
        stmt = stmt.where(Report.status == status.value)
    return stmt


async def list_reports_for_paths(
    session: AsyncSession,
    *,
    path_prefixes: Iterable[str],
    status: ReportStatus | None = None,
    offset: int = 0,
    limit: int = 25,
) -> list[Report]:
    stmt = _reports_for_paths(list(path_prefixes), status)
    stmt = stmt.order_by(Report.created_at.desc(), Report.id.desc()).offset(offset).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def count_reports_for_paths(
    session: AsyncSession,
    *,
    path_prefixes: Iterable[str],
    status: ReportStatus | None = None,
) -> int:
    subquery = _reports_for_paths(list(path_prefixes), status).subquery()
    result = await session.execute(select(func.count()).select_from(subquery))
    return int(result.scalar() or 0)


async def list_comments(session: AsyncSession, *, report_id: str) -> list[ReportComment]:
    result = await session.execute(
        select(ReportComment)
        .where(ReportComment.report_id == report_id)
        .order_by(ReportComment.created_at.asc(), ReportComment.id.asc())
    )
    return list(result.scalars().all())


async def get_reason(session: AsyncSession, *, reason_id: str) -> ReportReason | None:
    result = await session.execute(select(ReportReason).where(ReportReason.id == reason_id))
    return result.scalar_one_or_none()


async def list_reasons_for_scopes(
    session: AsyncSession,
    *,
    scope_keys: Iterable[str],
) -> list[ReportReason]:
    # Global reasons always carry scope_key "global", so callers include it in the chain.
    result = await session.execute(
        select(ReportReason)
        .where(ReportReason.scope_key.in_(list(scope_keys)), ReportReason.is_deleted.is_(False))
        .order_by(ReportReason.display_order.asc(), ReportReason.name.asc())
    )
    return list(result.scalars().all())

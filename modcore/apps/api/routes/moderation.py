from __future__ import annotations

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from modcore.apps.api.deps import get_caller_id, get_content_service, get_db
from modcore.apps.api.openapi import DEFAULT_ERROR_RESPONSES
from modcore.apps.api.response import PageData, SuccessEnvelope, page_response, success_response
from modcore.core.clock import as_utc
from modcore.core.errors import PermissionDeniedError
from modcore.domain.models import BanRecord, ModerationLogEntry, Report, ReportComment, ReportReason, RoleGrant
from modcore.domain.scope import BanType, ReportStatus, RoleType, Scope
from modcore.services import bans as bans_service
from modcore.services import moderation as moderation_service
from modcore.services import moderation_log
from modcore.services import reports as reports_service
from modcore.services import roles as roles_service
from modcore.services.content import ContentService


router = APIRouter(prefix="/moderation", tags=["moderation"], responses=DEFAULT_ERROR_RESPONSES)


def _iso(value: datetime | None) -> str | None:
    # Serialize as UTC ISO-8601; sqlite returns naive values.
    normalized = as_utc(value)
    return normalized.isoformat() if normalized else None


def _scope(community_id: str | None, hub_id: str | None, space_id: str | None) -> Scope:
    return Scope.from_ids(community_id=community_id, hub_id=hub_id, space_id=space_id)


class ScopeFields(BaseModel):
    community_id: str | None = None
    hub_id: str | None = None
    space_id: str | None = None

    model_config = {"extra": "forbid"}

    def to_scope(self) -> Scope:
        return _scope(self.community_id, self.hub_id, self.space_id)


class AssignRoleRequest(ScopeFields):
    user_id: str = Field(min_length=1)
    role_type: RoleType


class BanRequest(ScopeFields):
    user_id: str = Field(min_length=1)
    ban_type: BanType
    reason: str | None = None
    expires_at: datetime | None = None


class CreateReportRequest(BaseModel):
    post_id: str | None = None
    discussion_id: str | None = None
    user_id: str | None = None
    reason_id: str = Field(min_length=1)
    details: str | None = None

    model_config = {"extra": "forbid"}


class ResolveReportRequest(BaseModel):
    note: str | None = None


class CommentRequest(BaseModel):
    content: str


class CreateReasonRequest(ScopeFields):
    name: str = Field(min_length=1)
    description: str | None = None
    display_order: int = 0


class TakedownRequest(BaseModel):
    reason: str | None = None


class RoleGrantResponse(BaseModel):
    id: str
    user_id: str
    role_type: str
    scope: str
    granted_by: str
    granted_at: str | None
    revoked_at: str | None = None
    revoked_by: str | None = None


class BanResponse(BaseModel):
    id: str
    user_id: str
    ban_type: str
    scope: str
    reason: str | None = None
    banned_by: str
    banned_at: str | None
    expires_at: str | None = None
    unbanned_at: str | None = None
    unbanned_by: str | None = None


class BanStatusResponse(BaseModel):
    user_id: str
    banned: bool
    access: str
    ban: BanResponse | None = None


class ReportResponse(BaseModel):
    id: str
    reporter_user_id: str
    post_id: str | None = None
    discussion_id: str | None = None
    user_id: str | None = None
    reason_id: str
    details: str | None = None
    status: str
    scope: str
    created_at: str | None
    resolved_at: str | None = None
    resolved_by: str | None = None
    resolution_note: str | None = None


class CommentResponse(BaseModel):
    id: str
    report_id: str
    author_user_id: str
    content: str
    created_at: str | None


class ReportDetailResponse(BaseModel):
    report: ReportResponse
    comments: list[CommentResponse]


class PendingCountResponse(BaseModel):
    pending: int


class ReasonResponse(BaseModel):
    id: str
    name: str
    description: str | None = None
    scope: str
    display_order: int


class LogEntryResponse(BaseModel):
    id: int
    action_type: str
    actor_user_id: str
    scope: str
    target_description: str
    reason: str | None = None
    created_at: str | None


class TakedownResponse(BaseModel):
    target: str
    action: str


def _grant_response(grant: RoleGrant) -> RoleGrantResponse:
    return RoleGrantResponse(
        id=grant.id,
        user_id=grant.subject_user_id,
        role_type=grant.role_type,
        scope=grant.scope_key,
        granted_by=grant.granted_by_user_id,
        granted_at=_iso(grant.granted_at),
        revoked_at=_iso(grant.revoked_at),
        revoked_by=grant.revoked_by_user_id,
    )


def _ban_response(ban: BanRecord) -> BanResponse:
    return BanResponse(
        id=ban.id,
        user_id=ban.subject_user_id,
        ban_type=ban.ban_type,
        scope=ban.scope_key,
        reason=ban.reason,
        banned_by=ban.banned_by_user_id,
        banned_at=_iso(ban.banned_at),
        expires_at=_iso(ban.expires_at),
        unbanned_at=_iso(ban.unbanned_at),
        unbanned_by=ban.unbanned_by_user_id,
    )


def _report_response(report: Report) -> ReportResponse:
    return ReportResponse(
        id=report.id,
        reporter_user_id=report.reporter_user_id,
        post_id=report.reported_post_id,
        discussion_id=report.reported_discussion_id,
        user_id=report.reported_user_id,
        reason_id=report.reason_id,
        details=report.details,
        status=report.status,
        scope=report.scope_key,
        created_at=_iso(report.created_at),
        resolved_at=_iso(report.resolved_at),
        resolved_by=report.resolved_by_user_id,
        resolution_note=report.resolution_note,
    )


def _comment_response(comment: ReportComment) -> CommentResponse:
    return CommentResponse(
        id=comment.id,
        report_id=comment.report_id,
        author_user_id=comment.author_user_id,
        content=comment.content,
        created_at=_iso(comment.created_at),
    )


def _reason_response(reason: ReportReason) -> ReasonResponse:
    return ReasonResponse(
        id=reason.id,
        name=reason.name,
        description=reason.description,
        scope=reason.scope_key,
        display_order=reason.display_order,
    )


def _log_response(entry: ModerationLogEntry) -> LogEntryResponse:
    return LogEntryResponse(
        id=entry.id,
        action_type=entry.action_type,
        actor_user_id=entry.actor_user_id,
        scope=entry.scope_key,
        target_description=entry.target_description,
        reason=entry.reason,
        created_at=_iso(entry.created_at),
    )


@router.post(
    "/roles",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[RoleGrantResponse],
)
async def assign_role(
    request: Request,
    payload: AssignRoleRequest,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    grant = await roles_service.assign_role(
        db,
        content,
        target_user_id=payload.user_id,
        role_type=payload.role_type,
        scope=payload.to_scope(),
        assigner_user_id=caller_id,
    )
    return success_response(request=request, data=_grant_response(grant).model_dump())


@router.delete("/roles/{grant_id}", response_model=SuccessEnvelope[RoleGrantResponse])
async def revoke_role(
    grant_id: str,
    request: Request,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    grant = await roles_service.revoke_role(db, content, grant_id=grant_id, revoker_user_id=caller_id)
    return success_response(request=request, data=_grant_response(grant).model_dump())


@router.get("/users/{user_id}/roles", response_model=SuccessEnvelope[list[RoleGrantResponse]])
async def list_user_roles(
    user_id: str,
    request: Request,
    _caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    grants = await roles_service.get_active_roles(db, user_id=user_id)
    return success_response(request=request, data=[_grant_response(g).model_dump() for g in grants])


@router.post(
    "/bans",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[BanResponse],
)
async def ban_user(
    request: Request,
    payload: BanRequest,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    ban = await bans_service.ban_user(
        db,
        content,
        target_user_id=payload.user_id,
        ban_type=payload.ban_type,
        scope=payload.to_scope(),
        banner_user_id=caller_id,
        reason=payload.reason,
        expires_at=payload.expires_at,
    )
    return success_response(request=request, data=_ban_response(ban).model_dump())


@router.delete("/bans/{ban_id}", response_model=SuccessEnvelope[BanResponse])
async def unban_user(
    ban_id: str,
    request: Request,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    ban = await bans_service.unban_user(db, content, ban_id=ban_id, unbanner_user_id=caller_id)
    return success_response(request=request, data=_ban_response(ban).model_dump())


@router.get("/users/{user_id}/bans", response_model=SuccessEnvelope[list[BanResponse]])
async def list_user_bans(
    user_id: str,
    request: Request,
    _caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    bans = await bans_service.list_active_bans(db, user_id=user_id)
    return success_response(request=request, data=[_ban_response(b).model_dump() for b in bans])


@router.get("/users/{user_id}/banned", response_model=SuccessEnvelope[BanStatusResponse])
async def check_banned(
    user_id: str,
    request: Request,
    community_id: str | None = Query(default=None),
    hub_id: str | None = Query(default=None),
    space_id: str | None = Query(default=None),
    access: Literal["read", "write"] = Query(default="write"),
    _caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    scope = _scope(community_id, hub_id, space_id)
    ban = await bans_service.get_active_ban(db, content, user_id=user_id, scope=scope, access=access)
    data = BanStatusResponse(
        user_id=user_id,
        banned=ban is not None,
        access=access,
        ban=_ban_response(ban) if ban is not None else None,
    )
    return success_response(request=request, data=data.model_dump())


@router.post(
    "/reports",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[ReportResponse],
)
async def create_report(
    request: Request,
    payload: CreateReportRequest,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    report = await reports_service.create_report(
        db,
        content,
        reporter_user_id=caller_id,
        target=reports_service.ReportTarget(
            post_id=payload.post_id,
            discussion_id=payload.discussion_id,
            user_id=payload.user_id,
        ),
        reason_id=payload.reason_id,
        details=payload.details,
    )
    return success_response(request=request, data=_report_response(report).model_dump())


@router.get("/reports", response_model=SuccessEnvelope[PageData[ReportResponse]])
async def list_reports(
    request: Request,
    status_filter: ReportStatus | None = Query(default=None, alias="status"),
    offset: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, ge=1),
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    page = await reports_service.get_reports_for_moderator(
        db,
        content,
        moderator_user_id=caller_id,
        status=status_filter,
        offset=offset,
        page_size=page_size,
    )
    return page_response(request=request, page=page, serialize=_report_response)


@router.get("/reports/pending-count", response_model=SuccessEnvelope[PendingCountResponse])
async def count_pending_reports(
    request: Request,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    pending = await reports_service.count_pending_reports_for_moderator(
        db, content, moderator_user_id=caller_id
    )
    return success_response(request=request, data=PendingCountResponse(pending=pending).model_dump())


@router.get("/reports/reasons", response_model=SuccessEnvelope[list[ReasonResponse]])
async def list_reasons(
    request: Request,
    community_id: str | None = Query(default=None),
    hub_id: str | None = Query(default=None),
    space_id: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    scope = _scope(community_id, hub_id, space_id)
    reasons = await reports_service.get_reasons(db, content, scope=scope)
    return success_response(request=request, data=[_reason_response(r).model_dump() for r in reasons])


@router.post(
    "/reports/reasons",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[ReasonResponse],
)
async def create_reason(
    request: Request,
    payload: CreateReasonRequest,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    reason = await reports_service.create_reason(
        db,
        content,
        name=payload.name,
        description=payload.description,
        scope=payload.to_scope(),
        display_order=payload.display_order,
        actor_user_id=caller_id,
    )
    return success_response(request=request, data=_reason_response(reason).model_dump())


@router.delete("/reports/reasons/{reason_id}", response_model=SuccessEnvelope[ReasonResponse])
async def delete_reason(
    reason_id: str,
    request: Request,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    reason = await reports_service.delete_reason(db, content, reason_id=reason_id, actor_user_id=caller_id)
    return success_response(request=request, data=_reason_response(reason).model_dump())


@router.get("/reports/{report_id}", response_model=SuccessEnvelope[ReportDetailResponse])
async def get_report(
    report_id: str,
    request: Request,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    detail = await reports_service.get_report_detail(db, content, report_id=report_id, viewer_user_id=caller_id)
    data = ReportDetailResponse(
        report=_report_response(detail.report),
        comments=[_comment_response(comment) for comment in detail.comments],
    )
    return success_response(request=request, data=data.model_dump())


async def _resolve(
    *,
    request: Request,
    report_id: str,
    payload: ResolveReportRequest,
    dismiss: bool,
    caller_id: str,
    db: AsyncSession,
    content: ContentService,
) -> dict:
    report = await reports_service.resolve_report_as_moderator(
        db,
        content,
        report_id=report_id,
        resolver_user_id=caller_id,
        note=payload.note,
        dismiss=dismiss,
    )
    return success_response(request=request, data=_report_response(report).model_dump())


@router.post("/reports/{report_id}/resolve", response_model=SuccessEnvelope[ReportResponse])
async def resolve_report(
    report_id: str,
    request: Request,
    payload: ResolveReportRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    return await _resolve(
        request=request,
        report_id=report_id,
        payload=payload or ResolveReportRequest(),
        dismiss=False,
        caller_id=caller_id,
        db=db,
        content=content,
    )


@router.post("/reports/{report_id}/dismiss", response_model=SuccessEnvelope[ReportResponse])
async def dismiss_report(
    report_id: str,
    request: Request,
    payload: ResolveReportRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    return await _resolve(
        request=request,
        report_id=report_id,
        payload=payload or ResolveReportRequest(),
        dismiss=True,
        caller_id=caller_id,
        db=db,
        content=content,
    )


@router.post(
    "/reports/{report_id}/comments",
    status_code=status.HTTP_201_CREATED,
    response_model=SuccessEnvelope[CommentResponse],
)
async def add_comment(
    report_id: str,
    request: Request,
    payload: CommentRequest,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
) -> dict:
    comment = await reports_service.add_comment(
        db, report_id=report_id, author_user_id=caller_id, content=payload.content
    )
    return success_response(request=request, data=_comment_response(comment).model_dump())


@router.post("/posts/{post_id}/delete", response_model=SuccessEnvelope[TakedownResponse])
async def delete_post(
    post_id: str,
    request: Request,
    payload: TakedownRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    await moderation_service.delete_post(
        db,
        content,
        content,
        post_id=post_id,
        moderator_user_id=caller_id,
        reason=payload.reason if payload else None,
    )
    data = TakedownResponse(target=f"post:{post_id}", action="delete_post")
    return success_response(request=request, data=data.model_dump())


@router.post("/discussions/{discussion_id}/delete", response_model=SuccessEnvelope[TakedownResponse])
async def delete_discussion(
    discussion_id: str,
    request: Request,
    payload: TakedownRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    await moderation_service.delete_discussion(
        db,
        content,
        content,
        discussion_id=discussion_id,
        moderator_user_id=caller_id,
        reason=payload.reason if payload else None,
    )
    data = TakedownResponse(target=f"discussion:{discussion_id}", action="delete_discussion")
    return success_response(request=request, data=data.model_dump())


@router.post("/discussions/{discussion_id}/lock", response_model=SuccessEnvelope[TakedownResponse])
async def lock_discussion(
    discussion_id: str,
    request: Request,
    payload: TakedownRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    await moderation_service.lock_discussion(
        db,
        content,
        content,
        discussion_id=discussion_id,
        moderator_user_id=caller_id,
        reason=payload.reason if payload else None,
    )
    data = TakedownResponse(target=f"discussion:{discussion_id}", action="lock_discussion")
    return success_response(request=request, data=data.model_dump())


@router.post("/discussions/{discussion_id}/unlock", response_model=SuccessEnvelope[TakedownResponse])
async def unlock_discussion(
    discussion_id: str,
    request: Request,
    payload: TakedownRequest | None = None,
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    await moderation_service.unlock_discussion(
        db,
        content,
        content,
        discussion_id=discussion_id,
        moderator_user_id=caller_id,
        reason=payload.reason if payload else None,
    )
    data = TakedownResponse(target=f"discussion:{discussion_id}", action="unlock_discussion")
    return success_response(request=request, data=data.model_dump())


@router.get("/log", response_model=SuccessEnvelope[PageData[LogEntryResponse]])
async def query_log(
    request: Request,
    community_id: str | None = Query(default=None),
    hub_id: str | None = Query(default=None),
    space_id: str | None = Query(default=None),
    actor_user_id: str | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    page_size: int | None = Query(default=None, ge=1),
    caller_id: str = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    content: ContentService = Depends(get_content_service),
) -> dict:
    scope = _scope(community_id, hub_id, space_id)
    # Reading the log at a scope needs moderator authority there; actors may read their own history.
    if actor_user_id is not None:
        if actor_user_id != caller_id and not await roles_service.can_moderate(
            db, content, user_id=caller_id, scope=Scope.global_scope()
        ):
            raise PermissionDeniedError("You don't have permission to view this actor's history")
        page = await moderation_log.query_by_actor(
            db, actor_user_id=actor_user_id, offset=offset, page_size=page_size
        )
    else:
        if not await roles_service.can_moderate(db, content, user_id=caller_id, scope=scope):
            raise PermissionDeniedError("You don't have permission to view the log at this scope")
        page = await moderation_log.query(db, content, scope=scope, offset=offset, page_size=page_size)
    return page_response(request=request, page=page, serialize=_log_response)

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# SQLite only autoincrements INTEGER PRIMARY KEY; keep BIGINT on Postgres.
_BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class RoleGrant(Base):
    __tablename__ = "role_grants"
    __table_args__ = (
        # At most one active grant per (subject, role, scope); revoked rows are kept for audit.
        Index(
            "uq_role_grants_active",
            "subject_user_id",
            "role_type",
            "scope_key",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
        Index("ix_role_grants_subject_active", "subject_user_id", "revoked_at"),
        Index("ix_role_grants_scope_key", "scope_key"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    subject_user_id: Mapped[str] = mapped_column(String)
    role_type: Mapped[str] = mapped_column(String)
    # Scope columns obey the at-most-one-set invariant; all null means Global.
    community_id: Mapped[str | None] = mapped_column(String, nullable=True)
    hub_id: Mapped[str | None] = mapped_column(String, nullable=True)
    space_id: Mapped[str | None] = mapped_column(String, nullable=True)
    # Non-null scope key so the unique index also covers Global grants.
    scope_key: Mapped[str] = mapped_column(String)
    granted_by_user_id: Mapped[str] = mapped_column(String)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)


class BanRecord(Base):
    __tablename__ = "ban_records"
    __table_args__ = (
        Index("ix_ban_records_subject_open", "subject_user_id", "unbanned_at"),
        Index("ix_ban_records_expires_at", "expires_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    subject_user_id: Mapped[str] = mapped_column(String)
    ban_type: Mapped[str] = mapped_column(String)
    community_id: Mapped[str | None] = mapped_column(String, nullable=True)
    hub_id: Mapped[str | None] = mapped_column(String, nullable=True)
    space_id: Mapped[str | None] = mapped_column(String, nullable=True)
    scope_key: Mapped[str] = mapped_column(String)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    banned_by_user_id: Mapped[str] = mapped_column(String)
    banned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Null means permanent; expiry is evaluated lazily at read time.
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unbanned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # Null with unbanned_at set means the housekeeping sweep closed an expired ban.
    unbanned_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)


class ReportReason(Base):
    __tablename__ = "report_reasons"
    __table_args__ = (Index("ix_report_reasons_scope_key", "scope_key"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    community_id: Mapped[str | None] = mapped_column(String, nullable=True)
    hub_id: Mapped[str | None] = mapped_column(String, nullable=True)
    space_id: Mapped[str | None] = mapped_column(String, nullable=True)
    scope_key: Mapped[str] = mapped_column(String)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # Soft delete keeps historical reports pointing at a readable reason.
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (
        Index("ix_reports_status_created", "status", text("created_at DESC")),
        Index("ix_reports_scope_path", "scope_path"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True)
    reporter_user_id: Mapped[str] = mapped_column(String)
    # Exactly one reported target is set.
    reported_post_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reported_discussion_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reported_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    reason_id: Mapped[str] = mapped_column(String, ForeignKey("report_reasons.id"))
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String)
    # Scope inferred from the target at creation time.
    community_id: Mapped[str | None] = mapped_column(String, nullable=True)
    hub_id: Mapped[str | None] = mapped_column(String, nullable=True)
    space_id: Mapped[str | None] = mapped_column(String, nullable=True)
    scope_key: Mapped[str] = mapped_column(String)
    scope_path: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by_user_id: Mapped[str | None] = mapped_column(String, nullable=True)
    resolution_note: Mapped[str | None] = mapped_column(Text, nullable=True)


class ReportComment(Base):
    __tablename__ = "report_comments"
    __table_args__ = (Index("ix_report_comments_report_created", "report_id", "created_at"),)

    id: Mapped[str] = mapped_column(String, primary_key=True)
    report_id: Mapped[str] = mapped_column(String, ForeignKey("reports.id"))
    author_user_id: Mapped[str] = mapped_column(String)
    content: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ModerationLogEntry(Base):
    __tablename__ = "moderation_log"
    __table_args__ = (
        Index("ix_moderation_log_scope_path_created", "scope_path", text("created_at DESC")),
        Index("ix_moderation_log_actor_created", "actor_user_id", text("created_at DESC")),
    )

    # Append-only; rows are never updated or deleted.
    id: Mapped[int] = mapped_column(_BigIntId, primary_key=True, autoincrement=True)
    action_type: Mapped[str] = mapped_column(String)
    actor_user_id: Mapped[str] = mapped_column(String)
    community_id: Mapped[str | None] = mapped_column(String, nullable=True)
    hub_id: Mapped[str | None] = mapped_column(String, nullable=True)
    space_id: Mapped[str | None] = mapped_column(String, nullable=True)
    scope_key: Mapped[str] = mapped_column(String)
    scope_path: Mapped[str] = mapped_column(String)
    target_description: Mapped[str] = mapped_column(Text)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

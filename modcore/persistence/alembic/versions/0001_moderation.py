"""moderation tables

Revision ID: 0001_moderation
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "0001_moderation"
down_revision = None
branch_labels = None
depends_on = None


def _scope_columns() -> list[sa.Column]:
    # At most one of these is set per row; none set means Global.
    return [
        sa.Column("community_id", sa.String(), nullable=True),
        sa.Column("hub_id", sa.String(), nullable=True),
        sa.Column("space_id", sa.String(), nullable=True),
        sa.Column("scope_key", sa.String(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "role_grants",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("subject_user_id", sa.String(), nullable=False),
        sa.Column("role_type", sa.String(), nullable=False),
        *_scope_columns(),
        sa.Column("granted_by_user_id", sa.String(), nullable=False),
        sa.Column("granted_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_by_user_id", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    # Enforce one active grant per (subject, role, scope) transactionally.
    op.create_index(
        "uq_role_grants_active",
        "role_grants",
        ["subject_user_id", "role_type", "scope_key"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
    )
    op.create_index("ix_role_grants_subject_active", "role_grants", ["subject_user_id", "revoked_at"])
    op.create_index("ix_role_grants_scope_key", "role_grants", ["scope_key"])

    op.create_table(
        "ban_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("subject_user_id", sa.String(), nullable=False),
        sa.Column("ban_type", sa.String(), nullable=False),
        *_scope_columns(),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("banned_by_user_id", sa.String(), nullable=False),
        sa.Column("banned_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unbanned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unbanned_by_user_id", sa.String(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ban_records_subject_open", "ban_records", ["subject_user_id", "unbanned_at"])
    op.create_index("ix_ban_records_expires_at", "ban_records", ["expires_at"])

    op.create_table(
        "report_reasons",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        *_scope_columns(),
        sa.Column("display_order", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("created_by_user_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("is_deleted", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_report_reasons_scope_key", "report_reasons", ["scope_key"])

    op.create_table(
        "reports",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("reporter_user_id", sa.String(), nullable=False),
        sa.Column("reported_post_id", sa.String(), nullable=True),
        sa.Column("reported_discussion_id", sa.String(), nullable=True),
        sa.Column("reported_user_id", sa.String(), nullable=True),
        sa.Column("reason_id", sa.String(), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        *_scope_columns(),
        sa.Column("scope_path", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_user_id", sa.String(), nullable=True),
        sa.Column("resolution_note", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["reason_id"], ["report_reasons.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_reports_status_created", "reports", ["status", sa.text("created_at DESC")])
    # text_pattern_ops lets LIKE 'prefix%' descendant lookups use the index.
    op.create_index(
        "ix_reports_scope_path",
        "reports",
        ["scope_path"],
        postgresql_ops={"scope_path": "text_pattern_ops"},
    )

    op.create_table(
        "report_comments",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("report_id", sa.String(), nullable=False),
        sa.Column("author_user_id", sa.String(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_report_comments_report_created", "report_comments", ["report_id", "created_at"])

    op.create_table(
        "moderation_log",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("actor_user_id", sa.String(), nullable=False),
        *_scope_columns(),
        sa.Column("scope_path", sa.String(), nullable=False),
        sa.Column("target_description", sa.Text(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_moderation_log_scope_path_created",
        "moderation_log",
        ["scope_path", sa.text("created_at DESC")],
        postgresql_ops={"scope_path": "text_pattern_ops"},
    )
    op.create_index(
        "ix_moderation_log_actor_created",
        "moderation_log",
        ["actor_user_id", sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("ix_moderation_log_actor_created", table_name="moderation_log")
    op.drop_index("ix_moderation_log_scope_path_created", table_name="moderation_log")
    op.drop_table("moderation_log")
    op.drop_index("ix_report_comments_report_created", table_name="report_comments")
    op.drop_table("report_comments")
    op.drop_index("ix_reports_scope_path", table_name="reports")
    op.drop_index("ix_reports_status_created", table_name="reports")
    op.drop_table("reports")
    op.drop_index("ix_report_reasons_scope_key", table_name="report_reasons")
    op.drop_table("report_reasons")
    op.drop_index("ix_ban_records_expires_at", table_name="ban_records")
    op.drop_index("ix_ban_records_subject_open", table_name="ban_records")
    op.drop_table("ban_records")
    op.drop_index("ix_role_grants_scope_key", table_name="role_grants")
    op.drop_index("ix_role_grants_subject_active", table_name="role_grants")
    op.drop_index("uq_role_grants_active", table_name="role_grants")
    op.drop_table("role_grants")

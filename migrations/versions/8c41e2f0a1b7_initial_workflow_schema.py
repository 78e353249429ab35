"""initial_workflow_schema

Create departments, users, files, timers, work_sessions, notes and
audit_logs.  The single-active invariants are partial unique indexes:
one open timer per file, one open work session per user.

Revision ID: 8c41e2f0a1b7
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "8c41e2f0a1b7"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "departments" not in existing_tables:
        op.create_table(
            "departments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("code", sa.String(length=30), nullable=False),
            sa.Column("name", sa.String(length=100), nullable=False),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_virtual", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("username", sa.String(length=50), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=20), nullable=False),
            sa.Column("department_id", sa.String(length=36), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("username"),
        )
        op.create_index("ix_users_department_id", "users", ["department_id"])

    if "files" not in existing_tables:
        op.create_table(
            "files",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("file_no", sa.String(length=50), nullable=False),
            sa.Column("customer_name", sa.String(length=200), nullable=False),
            sa.Column("customer_no", sa.String(length=50), nullable=True),
            sa.Column("priority", sa.String(length=10), nullable=False, server_default="NORMAL"),
            sa.Column("location_code", sa.String(length=50), nullable=True),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="AWAITING_ASSIGNMENT"),
            sa.Column("stage", sa.String(length=20), nullable=False, server_default="PRE_REPRO"),
            sa.Column("current_department_id", sa.String(length=36), nullable=False),
            sa.Column("assigned_designer_id", sa.String(length=36), nullable=True),
            sa.Column("target_assignee_id", sa.String(length=36), nullable=True),
            sa.Column("pending_takeover", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("skip_quality_after_customer_ok", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("quality_nok_return", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("iteration_number", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("iteration_label", sa.String(length=10), nullable=False, server_default="MG1"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["current_department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["assigned_designer_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["target_assignee_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("file_no"),
        )
        op.create_index("idx_files_dept_pending", "files", ["current_department_id", "pending_takeover"])
        op.create_index("idx_files_stage", "files", ["stage"])
        op.create_index("idx_files_status", "files", ["status"])
        op.create_index("ix_files_assigned_designer_id", "files", ["assigned_designer_id"])

    if "timers" not in existing_tables:
        op.create_table(
            "timers",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("file_id", sa.String(length=36), nullable=False),
            sa.Column("department_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
            sa.Column("duration_seconds", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["file_id"], ["files.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_timers_file_id", "timers", ["file_id"])
        op.create_index("idx_timers_user_open", "timers", ["user_id", "end_time"])
        op.create_index(
            "uq_timers_file_open",
            "timers",
            ["file_id"],
            unique=True,
            postgresql_where=sa.text("end_time IS NULL"),
            sqlite_where=sa.text("end_time IS NULL"),
        )

    if "work_sessions" not in existing_tables:
        op.create_table(
            "work_sessions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=False),
            sa.Column("file_id", sa.String(length=36), nullable=False),
            sa.Column("department_id", sa.String(length=36), nullable=False),
            sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_time", sa.DateTime(timezone=True), nullable=True),
            sa.Column("duration_minutes", sa.Integer(), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["file_id"], ["files.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_work_sessions_file", "work_sessions", ["file_id"])
        op.create_index(
            "uq_work_sessions_user_open",
            "work_sessions",
            ["user_id"],
            unique=True,
            postgresql_where=sa.text("end_time IS NULL"),
            sqlite_where=sa.text("end_time IS NULL"),
        )

    if "notes" not in existing_tables:
        op.create_table(
            "notes",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("file_id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=36), nullable=True),
            sa.Column("department_id", sa.String(length=36), nullable=True),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["file_id"], ["files.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_notes_file_created", "notes", ["file_id", "created_at"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("file_id", sa.String(length=36), nullable=False),
            sa.Column("action_type", sa.String(length=40), nullable=False),
            sa.Column("by_user_id", sa.String(length=36), nullable=True),
            sa.Column("from_department_id", sa.String(length=36), nullable=True),
            sa.Column("to_department_id", sa.String(length=36), nullable=True),
            sa.Column("payload_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["file_id"], ["files.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["by_user_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["from_department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["to_department_id"], ["departments.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_file_ts", "audit_logs", ["file_id", "timestamp"])
        op.create_index("idx_audit_actor", "audit_logs", ["by_user_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action_type"])


def downgrade():
    existing_tables = set(sa_inspect(op.get_bind()).get_table_names())
    for table in ("audit_logs", "notes", "work_sessions", "timers", "files", "users", "departments"):
        if table in existing_tables:
            op.drop_table(table)

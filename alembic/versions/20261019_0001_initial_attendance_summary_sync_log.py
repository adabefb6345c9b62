"""initial: attendance, daily_attendance_summary, sync_log

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CLOCK_TYPES = (
    "morning_in",
    "morning_out",
    "afternoon_in",
    "afternoon_out",
    "evening_in",
    "evening_out",
    "overtime_in",
    "overtime_out",
)


def upgrade() -> None:
    # --- attendance ---
    op.create_table(
        "attendance",
        sa.Column("id", sa.BigInteger(), autoincrement=False, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("clock_type", sa.Enum(*CLOCK_TYPES, name="clock_type_enum"), nullable=False),
        sa.Column("clock_time", sa.DateTime(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("regular_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("is_overtime_session", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "sync_status",
            sa.Enum("pending", "synced", name="sync_status_enum"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column(
            "source",
            sa.Enum("local", "server", name="record_source_enum"),
            nullable=False,
            server_default="local",
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attendance_employee_date", "attendance", ["employee_id", "date"])
    op.create_index("ix_attendance_sync_status", "attendance", ["sync_status"])
    op.create_index("ix_attendance_date", "attendance", ["date"])

    # --- daily_attendance_summary ---
    op.create_table(
        "daily_attendance_summary",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("first_clock_in", sa.DateTime(), nullable=True),
        sa.Column("last_clock_out", sa.DateTime(), nullable=True),
        sa.Column("morning_in", sa.DateTime(), nullable=True),
        sa.Column("morning_out", sa.DateTime(), nullable=True),
        sa.Column("afternoon_in", sa.DateTime(), nullable=True),
        sa.Column("afternoon_out", sa.DateTime(), nullable=True),
        sa.Column("evening_in", sa.DateTime(), nullable=True),
        sa.Column("evening_out", sa.DateTime(), nullable=True),
        sa.Column("overtime_in", sa.DateTime(), nullable=True),
        sa.Column("overtime_out", sa.DateTime(), nullable=True),
        sa.Column("regular_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("has_late_entry", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_incomplete", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("pending_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "sync_status",
            sa.Enum("pending", "synced", name="sync_status_enum"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("last_updated", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "date", name="uq_daily_summary_employee_date"),
    )
    op.create_index("ix_daily_summary_sync_status", "daily_attendance_summary", ["sync_status"])

    # --- sync_log ---
    op.create_table(
        "sync_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("pipeline", sa.String(50), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("success", "failed", "rejected", name="sync_log_status_enum"),
            nullable=False,
        ),
        sa.Column("counts", sa.JSON(), nullable=True),
        sa.Column("errors", sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("sync_log")
    op.drop_index("ix_daily_summary_sync_status", table_name="daily_attendance_summary")
    op.drop_table("daily_attendance_summary")
    op.drop_index("ix_attendance_date", table_name="attendance")
    op.drop_index("ix_attendance_sync_status", table_name="attendance")
    op.drop_index("ix_attendance_employee_date", table_name="attendance")
    op.drop_table("attendance")

"""initial payroll schema - employees, attendance, rate periods, overtime, overrides, payrolls, edit requests

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

from payroll_core.models import POSTGRES_RATE_PERIOD_EXCLUSION, SQLITE_RATE_PERIOD_OVERLAP_TRIGGERS

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("company_id", sa.Integer(), nullable=True),
        sa.Column("manager_id", sa.Integer(), nullable=True),
        sa.Column("payment_type", sa.String(20), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("monthly_salary", sa.Numeric(12, 2), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["manager_id"], ["employees.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_employees_company_id", "employees", ["company_id"])

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("check_in_time", sa.DateTime(), nullable=True),
        sa.Column("check_out_time", sa.DateTime(), nullable=True),
        sa.Column("first_check_in_time", sa.DateTime(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date", name="uq_attendance_user_date"),
    )
    op.create_index("ix_attendance_records_user_id", "attendance_records", ["user_id"])
    op.create_index("ix_attendance_records_date", "attendance_records", ["date"])

    op.create_table(
        "attendance_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("attendance_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(10), nullable=False),
        sa.Column("occurred_at", sa.DateTime(), nullable=False),
        sa.Column("source", sa.String(10), nullable=False),
        sa.ForeignKeyConstraint(["attendance_id"], ["attendance_records.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_attendance_events_attendance_id", "attendance_events", ["attendance_id"])

    op.create_table(
        "hourly_rate_periods",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_hourly_rate_periods_user_id", "hourly_rate_periods", ["user_id"])

    # 時薪期間不可重疊：PostgreSQL 用排除限制，SQLite 用觸發器
    connection = op.get_bind()
    if connection.dialect.name == "postgresql":
        for stmt in POSTGRES_RATE_PERIOD_EXCLUSION:
            op.execute(stmt)
    elif connection.dialect.name == "sqlite":
        for stmt in SQLITE_RATE_PERIOD_OVERLAP_TRIGGERS:
            op.execute(stmt)

    op.create_table(
        "overtime_configs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("weekly_threshold_hours", sa.Numeric(6, 2), nullable=False),
        sa.Column("overtime_multiplier", sa.Numeric(4, 2), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_overtime_configs_user_id", "overtime_configs", ["user_id"], unique=True)

    op.create_table(
        "daily_payroll_overrides",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("regular_hours", sa.Numeric(10, 4), nullable=True),
        sa.Column("overtime_hours", sa.Numeric(10, 4), nullable=True),
        sa.Column("total_hours", sa.Numeric(10, 4), nullable=True),
        sa.Column("earnings", sa.Numeric(12, 2), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "date", name="uq_daily_override_user_date"),
    )
    op.create_index("ix_daily_payroll_overrides_user_id", "daily_payroll_overrides", ["user_id"])
    op.create_index("ix_daily_payroll_overrides_date", "daily_payroll_overrides", ["date"])

    op.create_table(
        "payrolls",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("payment_type", sa.String(20), nullable=False),
        sa.Column("hours_worked", sa.Numeric(10, 4), nullable=True),
        sa.Column("overtime_hours", sa.Numeric(10, 4), nullable=True),
        sa.Column("hourly_rate", sa.Numeric(12, 2), nullable=True),
        sa.Column("base_salary", sa.Numeric(12, 2), nullable=False),
        sa.Column("bonuses", sa.JSON(), nullable=True),
        sa.Column("deductions", sa.JSON(), nullable=True),
        sa.Column("total_bonuses", sa.Numeric(12, 2), nullable=False),
        sa.Column("total_deductions", sa.Numeric(12, 2), nullable=False),
        sa.Column("net_salary", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_recalculated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "month", "year", name="uq_payroll_user_period"),
    )
    op.create_index("ix_payrolls_user_id", "payrolls", ["user_id"])
    op.create_index("ix_payrolls_status", "payrolls", ["status"])

    op.create_table(
        "payroll_edit_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("payroll_id", sa.Integer(), nullable=False),
        sa.Column("requested_by", sa.Integer(), nullable=False),
        sa.Column("assigned_to", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("changes", sa.JSON(), nullable=False),
        sa.Column("original_data", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["payroll_id"], ["payrolls.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_payroll_edit_requests_payroll_id", "payroll_edit_requests", ["payroll_id"])
    op.create_index("ix_payroll_edit_requests_assigned_to", "payroll_edit_requests", ["assigned_to"])
    op.create_index("ix_payroll_edit_requests_status", "payroll_edit_requests", ["status"])

    op.create_table(
        "approval_tasks",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("task_type", sa.String(30), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("assignee_id", sa.Integer(), nullable=False),
        sa.Column("related_payroll_id", sa.Integer(), nullable=True),
        sa.Column("related_edit_request_id", sa.Integer(), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("approved_by", sa.Integer(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["related_payroll_id"], ["payrolls.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["related_edit_request_id"], ["payroll_edit_requests.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("related_edit_request_id"),
    )
    op.create_index("ix_approval_tasks_assignee_id", "approval_tasks", ["assignee_id"])


def downgrade() -> None:
    op.drop_table("approval_tasks")
    op.drop_table("payroll_edit_requests")
    op.drop_table("payrolls")
    op.drop_table("daily_payroll_overrides")
    op.drop_table("overtime_configs")
    connection = op.get_bind()
    if connection.dialect.name == "sqlite":
        op.execute("DROP TRIGGER IF EXISTS trg_hourly_rate_periods_no_overlap_insert")
        op.execute("DROP TRIGGER IF EXISTS trg_hourly_rate_periods_no_overlap_update")
    op.drop_table("hourly_rate_periods")
    op.drop_table("attendance_events")
    op.drop_table("attendance_records")
    op.drop_table("employees")

"""資料庫模型 - 計薪核心：出勤、時薪期間、加班規則、每日人工修正、月薪資單與修改申請。
user_id 一律指向 employees.id（員工計薪資料由身分系統同步，此處只讀取計薪相關欄位）。"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from sqlalchemy import (
    DDL, String, Date, Text, Numeric, ForeignKey, DateTime, Integer, UniqueConstraint, JSON, event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from payroll_core.database import Base


EMPLOYEE_ROLES = ("SUPER_ADMIN", "COMPANY_ADMIN", "MANAGER", "EMPLOYEE")
PAYMENT_TYPES = ("HOURLY", "SALARY")
PAYROLL_STATUSES = ("PENDING", "APPROVED", "REJECTED", "PAID")
EDIT_REQUEST_STATUSES = ("PENDING", "APPROVED", "REJECTED")
ATTENDANCE_EVENT_TYPES = ("in", "out")
ATTENDANCE_EVENT_SOURCES = ("manual", "auto")
TASK_STATUSES = ("PENDING", "APPROVED", "CANCELLED")


class Employee(Base):
    """員工計薪資料：預設計薪方式、時薪、月薪與主管鏈（送審指派用）"""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), comment="姓名")
    email: Mapped[Optional[str]] = mapped_column(String(200), comment="Email")
    role: Mapped[str] = mapped_column(String(20), default="EMPLOYEE", comment="SUPER_ADMIN/COMPANY_ADMIN/MANAGER/EMPLOYEE")
    company_id: Mapped[Optional[int]] = mapped_column(Integer, index=True, comment="所屬公司（由身分系統提供）")
    manager_id: Mapped[Optional[int]] = mapped_column(ForeignKey("employees.id", ondelete="SET NULL"), comment="直屬主管")
    payment_type: Mapped[Optional[str]] = mapped_column(String(20), comment="HOURLY/SALARY；空值視為 SALARY")
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), comment="預設時薪")
    monthly_salary: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), comment="月薪")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    manager: Mapped[Optional["Employee"]] = relationship("Employee", remote_side="Employee.id")


class AttendanceRecord(Base):
    """出勤紀錄：一人一天一筆。check_out_time 為空表示尚未簽退（open）。"""
    __tablename__ = "attendance_records"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_attendance_user_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), index=True)
    date: Mapped[date] = mapped_column(Date, index=True, comment="出勤日")
    check_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime, comment="最近一次簽到")
    check_out_time: Mapped[Optional[datetime]] = mapped_column(DateTime, comment="最近一次簽退；空表未簽退")
    first_check_in_time: Mapped[Optional[datetime]] = mapped_column(DateTime, comment="當日第一次簽到")
    status: Mapped[str] = mapped_column(String(20), default="PRESENT")
    notes: Mapped[Optional[str]] = mapped_column(Text, comment="員工備註（純文字，不存簽到紀錄）")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    events: Mapped[List["AttendanceEvent"]] = relationship(
        "AttendanceEvent", back_populates="attendance", cascade="all, delete-orphan",
        order_by="AttendanceEvent.occurred_at",
    )


class AttendanceEvent(Base):
    """簽到/簽退明細（取代舊版塞在 notes 的 JSON 歷程）"""
    __tablename__ = "attendance_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    attendance_id: Mapped[int] = mapped_column(ForeignKey("attendance_records.id", ondelete="CASCADE"), index=True)
    event_type: Mapped[str] = mapped_column(String(10), comment="in / out")
    occurred_at: Mapped[datetime] = mapped_column(DateTime)
    source: Mapped[str] = mapped_column(String(10), default="manual", comment="manual / auto（自動簽退）")

    attendance: Mapped["AttendanceRecord"] = relationship("AttendanceRecord", back_populates="events")


class HourlyRatePeriod(Base):
    """時薪期間：[start_date, end_date] 皆含；同一員工期間不可重疊（DB 層另有排除限制）"""
    __tablename__ = "hourly_rate_periods"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), index=True)
    start_date: Mapped[date] = mapped_column(Date, comment="生效起日（含）")
    end_date: Mapped[date] = mapped_column(Date, comment="生效訖日（含）")
    hourly_rate: Mapped[Decimal] = mapped_column(Numeric(12, 2), comment="時薪")
    created_by: Mapped[Optional[int]] = mapped_column(Integer, comment="建立者 user_id")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class OvertimeConfig(Base):
    """加班規則：一員工一筆。每週累計超過門檻的時數為加班。"""
    __tablename__ = "overtime_configs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), unique=True, index=True)
    weekly_threshold_hours: Mapped[Decimal] = mapped_column(Numeric(6, 2), default=Decimal("40"), comment="每週加班門檻時數")
    overtime_multiplier: Mapped[Decimal] = mapped_column(Numeric(4, 2), default=Decimal("1.5"), comment="加班倍率")
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DailyPayrollOverride(Base):
    """每日人工修正：一人一天一筆。欄位為空表示沿用計算值；有此列即以該日為準（逐欄覆寫）。"""
    __tablename__ = "daily_payroll_overrides"
    __table_args__ = (UniqueConstraint("user_id", "date", name="uq_daily_override_user_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), index=True)
    date: Mapped[date] = mapped_column(Date, index=True)
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    regular_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    overtime_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    total_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    earnings: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Payroll(Base):
    """月薪資單：一人一月一筆。bonuses/deductions 為 [{label, amount}] 清單，異動時整批取代。"""
    __tablename__ = "payrolls"
    __table_args__ = (UniqueConstraint("user_id", "month", "year", name="uq_payroll_user_period"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("employees.id", ondelete="CASCADE"), index=True)
    month: Mapped[int] = mapped_column(Integer, comment="1～12")
    year: Mapped[int] = mapped_column(Integer, comment="西元年")
    payment_type: Mapped[str] = mapped_column(String(20), comment="HOURLY/SALARY")
    hours_worked: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4))
    overtime_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 4), comment="當月加班時數（參考）")
    hourly_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))
    base_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    bonuses: Mapped[Optional[list]] = mapped_column(JSON, comment="[{label, amount}]")
    deductions: Mapped[Optional[list]] = mapped_column(JSON, comment="[{label, amount}]")
    total_bonuses: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    net_salary: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    last_recalculated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee: Mapped["Employee"] = relationship("Employee")
    edit_requests: Mapped[List["PayrollEditRequest"]] = relationship(
        "PayrollEditRequest", back_populates="payroll", cascade="all, delete-orphan",
    )


class PayrollEditRequest(Base):
    """薪資修改申請：PENDING → APPROVED / REJECTED，結案後不可再變更"""
    __tablename__ = "payroll_edit_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    payroll_id: Mapped[int] = mapped_column(ForeignKey("payrolls.id", ondelete="CASCADE"), index=True)
    requested_by: Mapped[int] = mapped_column(Integer, comment="申請人 user_id")
    assigned_to: Mapped[int] = mapped_column(Integer, index=True, comment="審核人 user_id")
    status: Mapped[str] = mapped_column(String(20), default="PENDING", index=True)
    changes: Mapped[dict] = mapped_column(JSON, comment="欲修改之欄位")
    original_data: Mapped[dict] = mapped_column(JSON, comment="申請當下薪資單快照")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payroll: Mapped["Payroll"] = relationship("Payroll", back_populates="edit_requests")
    task: Mapped[Optional["ApprovalTask"]] = relationship("ApprovalTask", back_populates="edit_request", uselist=False)


class ApprovalTask(Base):
    """審核待辦（僅記錄薪資修改申請的待辦狀態；任務管理本身不在此系統）"""
    __tablename__ = "approval_tasks"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200))
    task_type: Mapped[str] = mapped_column(String(30), default="PAYROLL_EDIT")
    status: Mapped[str] = mapped_column(String(20), default="PENDING")
    assignee_id: Mapped[int] = mapped_column(Integer, index=True)
    related_payroll_id: Mapped[Optional[int]] = mapped_column(ForeignKey("payrolls.id", ondelete="CASCADE"))
    related_edit_request_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("payroll_edit_requests.id", ondelete="CASCADE"), unique=True,
    )
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    approved_by: Mapped[Optional[int]] = mapped_column(Integer)
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    edit_request: Mapped[Optional["PayrollEditRequest"]] = relationship("PayrollEditRequest", back_populates="task")


# ---------- 時薪期間不可重疊：DB 層限制（create_all 與 Alembic 共用同一段 DDL） ----------
SQLITE_RATE_PERIOD_OVERLAP_TRIGGERS = (
    """
    CREATE TRIGGER IF NOT EXISTS trg_hourly_rate_periods_no_overlap_insert
    BEFORE INSERT ON hourly_rate_periods
    FOR EACH ROW
    WHEN EXISTS (
        SELECT 1 FROM hourly_rate_periods p
        WHERE p.user_id = NEW.user_id
          AND p.start_date <= NEW.end_date
          AND p.end_date >= NEW.start_date
    )
    BEGIN
        SELECT RAISE(ABORT, 'hourly_rate_period_overlap');
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_hourly_rate_periods_no_overlap_update
    BEFORE UPDATE ON hourly_rate_periods
    FOR EACH ROW
    WHEN EXISTS (
        SELECT 1 FROM hourly_rate_periods p
        WHERE p.user_id = NEW.user_id
          AND p.id != NEW.id
          AND p.start_date <= NEW.end_date
          AND p.end_date >= NEW.start_date
    )
    BEGIN
        SELECT RAISE(ABORT, 'hourly_rate_period_overlap');
    END
    """,
)

POSTGRES_RATE_PERIOD_EXCLUSION = (
    "CREATE EXTENSION IF NOT EXISTS btree_gist",
    "ALTER TABLE hourly_rate_periods ADD CONSTRAINT ex_hourly_rate_periods_no_overlap "
    "EXCLUDE USING gist (user_id WITH =, daterange(start_date, end_date, '[]') WITH &&)",
)

for _stmt in SQLITE_RATE_PERIOD_OVERLAP_TRIGGERS:
    event.listen(HourlyRatePeriod.__table__, "after_create", DDL(_stmt).execute_if(dialect="sqlite"))
for _stmt in POSTGRES_RATE_PERIOD_EXCLUSION:
    event.listen(HourlyRatePeriod.__table__, "after_create", DDL(_stmt).execute_if(dialect="postgresql"))

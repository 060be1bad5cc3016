"""CRUD 操作 - 員工計薪資料、出勤查詢、時薪期間、加班規則、每日修正、薪資單與修改申請之查詢"""
from datetime import date
from typing import Optional, List

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from payroll_core.errors import ConflictError, NotFoundError, ValidationError
from payroll_core.models import (
    Employee, AttendanceRecord, HourlyRatePeriod, OvertimeConfig, DailyPayrollOverride,
    Payroll, PayrollEditRequest,
)
from payroll_core.schemas import (
    HourlyRatePeriodCreate, HourlyRatePeriodUpdate, OvertimeConfigCreate, OvertimeConfigUpdate,
)
from payroll_core.services.billing_period import first_day_of_month, last_day_of_month


# ---------- 員工 ----------
async def get_employee(db: AsyncSession, user_id: int) -> Optional[Employee]:
    return await db.get(Employee, user_id)


async def require_employee(db: AsyncSession, user_id: int) -> Employee:
    emp = await get_employee(db, user_id)
    if not emp:
        raise NotFoundError("員工不存在")
    return emp


async def find_company_admin(db: AsyncSession, company_id: Optional[int]) -> Optional[Employee]:
    """同公司第一位 COMPANY_ADMIN（依 id），供送審指派"""
    if company_id is None:
        return None
    r = await db.execute(
        select(Employee)
        .where(Employee.company_id == company_id, Employee.role == "COMPANY_ADMIN")
        .order_by(Employee.id)
        .limit(1)
    )
    return r.scalars().first()


# ---------- 出勤 ----------
async def get_attendance(db: AsyncSession, user_id: int, on_date: date, load_events: bool = False) -> Optional[AttendanceRecord]:
    q = select(AttendanceRecord).where(AttendanceRecord.user_id == user_id, AttendanceRecord.date == on_date)
    if load_events:
        q = q.options(selectinload(AttendanceRecord.events))
    q = q.execution_options(populate_existing=True)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def list_attendance_for_month(db: AsyncSession, user_id: int, month: int, year: int) -> List[AttendanceRecord]:
    r = await db.execute(
        select(AttendanceRecord)
        .where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.date >= first_day_of_month(year, month),
            AttendanceRecord.date <= last_day_of_month(year, month),
        )
        .options(selectinload(AttendanceRecord.events))
        .order_by(AttendanceRecord.date)
    )
    return list(r.scalars().all())


# ---------- 時薪期間 ----------
async def get_rate_period(db: AsyncSession, period_id: int) -> Optional[HourlyRatePeriod]:
    return await db.get(HourlyRatePeriod, period_id)


async def list_rate_periods(
    db: AsyncSession,
    user_id: Optional[int] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> List[HourlyRatePeriod]:
    q = select(HourlyRatePeriod).order_by(HourlyRatePeriod.start_date.desc())
    if user_id is not None:
        q = q.where(HourlyRatePeriod.user_id == user_id)
    if start_date is not None:
        q = q.where(HourlyRatePeriod.end_date >= start_date)
    if end_date is not None:
        q = q.where(HourlyRatePeriod.start_date <= end_date)
    r = await db.execute(q)
    return list(r.scalars().all())


async def check_rate_period_overlap(
    db: AsyncSession,
    user_id: int,
    start_date: date,
    end_date: date,
    exclude_period_id: Optional[int] = None,
) -> bool:
    """同一員工是否已有與 [start_date, end_date] 重疊的期間"""
    q = select(HourlyRatePeriod.id).where(
        HourlyRatePeriod.user_id == user_id,
        HourlyRatePeriod.start_date <= end_date,
        HourlyRatePeriod.end_date >= start_date,
    )
    if exclude_period_id is not None:
        q = q.where(HourlyRatePeriod.id != exclude_period_id)
    r = await db.execute(q.limit(1))
    return r.scalar_one_or_none() is not None


async def _flush_rate_period(db: AsyncSession, p: HourlyRatePeriod) -> HourlyRatePeriod:
    # 應用層檢查之外，DB 排除限制/觸發器擋下同時寫入的競態
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("時薪期間與既有期間重疊") from e
    await db.refresh(p)
    return p


async def create_rate_period(
    db: AsyncSession, data: HourlyRatePeriodCreate, created_by: Optional[int] = None
) -> HourlyRatePeriod:
    await require_employee(db, data.user_id)
    if await check_rate_period_overlap(db, data.user_id, data.start_date, data.end_date):
        raise ConflictError("時薪期間與既有期間重疊")
    p = HourlyRatePeriod(
        user_id=data.user_id,
        start_date=data.start_date,
        end_date=data.end_date,
        hourly_rate=data.hourly_rate,
        created_by=created_by,
    )
    db.add(p)
    return await _flush_rate_period(db, p)


async def update_rate_period(db: AsyncSession, p: HourlyRatePeriod, data: HourlyRatePeriodUpdate) -> HourlyRatePeriod:
    update_data = data.model_dump(exclude_unset=True, exclude_none=True)
    new_start = update_data.get("start_date", p.start_date)
    new_end = update_data.get("end_date", p.end_date)
    if new_start > new_end:
        raise ValidationError("start_date 不可晚於 end_date")
    if await check_rate_period_overlap(db, p.user_id, new_start, new_end, exclude_period_id=p.id):
        raise ConflictError("時薪期間與既有期間重疊")
    for k, v in update_data.items():
        setattr(p, k, v)
    return await _flush_rate_period(db, p)


async def delete_rate_period(db: AsyncSession, p: HourlyRatePeriod) -> None:
    await db.delete(p)
    await db.flush()


# ---------- 加班規則 ----------
async def get_overtime_config(db: AsyncSession, user_id: int) -> Optional[OvertimeConfig]:
    r = await db.execute(select(OvertimeConfig).where(OvertimeConfig.user_id == user_id))
    return r.scalar_one_or_none()


async def get_overtime_config_by_id(db: AsyncSession, config_id: int) -> Optional[OvertimeConfig]:
    return await db.get(OvertimeConfig, config_id)


async def list_overtime_configs(db: AsyncSession, user_id: Optional[int] = None) -> List[OvertimeConfig]:
    q = select(OvertimeConfig).order_by(OvertimeConfig.user_id)
    if user_id is not None:
        q = q.where(OvertimeConfig.user_id == user_id)
    r = await db.execute(q)
    return list(r.scalars().all())


async def create_overtime_config(
    db: AsyncSession, data: OvertimeConfigCreate, created_by: Optional[int] = None
) -> OvertimeConfig:
    await require_employee(db, data.user_id)
    if await get_overtime_config(db, data.user_id):
        raise ConflictError("此員工已有加班規則，請改用更新")
    c = OvertimeConfig(
        user_id=data.user_id,
        weekly_threshold_hours=data.weekly_threshold_hours,
        overtime_multiplier=data.overtime_multiplier,
        created_by=created_by,
    )
    db.add(c)
    try:
        await db.flush()
    except IntegrityError as e:
        raise ConflictError("此員工已有加班規則，請改用更新") from e
    await db.refresh(c)
    return c


async def update_overtime_config(db: AsyncSession, c: OvertimeConfig, data: OvertimeConfigUpdate) -> OvertimeConfig:
    for k, v in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(c, k, v)
    await db.flush()
    await db.refresh(c)
    return c


async def delete_overtime_config(db: AsyncSession, c: OvertimeConfig) -> None:
    await db.delete(c)
    await db.flush()


# ---------- 每日人工修正 ----------
async def get_daily_override(db: AsyncSession, user_id: int, on_date: date) -> Optional[DailyPayrollOverride]:
    r = await db.execute(
        select(DailyPayrollOverride)
        .where(DailyPayrollOverride.user_id == user_id, DailyPayrollOverride.date == on_date)
        .execution_options(populate_existing=True)
    )
    return r.scalar_one_or_none()


async def list_daily_overrides(db: AsyncSession, user_id: int, month: int, year: int) -> List[DailyPayrollOverride]:
    r = await db.execute(
        select(DailyPayrollOverride)
        .where(
            DailyPayrollOverride.user_id == user_id,
            DailyPayrollOverride.date >= first_day_of_month(year, month),
            DailyPayrollOverride.date <= last_day_of_month(year, month),
        )
        .order_by(DailyPayrollOverride.date)
    )
    return list(r.scalars().all())


# ---------- 薪資單 ----------
async def get_payroll(db: AsyncSession, payroll_id: int) -> Optional[Payroll]:
    return await db.get(Payroll, payroll_id)


async def get_payroll_for_period(db: AsyncSession, user_id: int, month: int, year: int) -> Optional[Payroll]:
    r = await db.execute(
        select(Payroll).where(Payroll.user_id == user_id, Payroll.month == month, Payroll.year == year)
    )
    return r.scalar_one_or_none()


async def list_payrolls(
    db: AsyncSession,
    user_id: Optional[int] = None,
    month: Optional[int] = None,
    year: Optional[int] = None,
    status: Optional[str] = None,
) -> List[Payroll]:
    q = select(Payroll).order_by(Payroll.year.desc(), Payroll.month.desc(), Payroll.user_id)
    if user_id is not None:
        q = q.where(Payroll.user_id == user_id)
    if month is not None:
        q = q.where(Payroll.month == month)
    if year is not None:
        q = q.where(Payroll.year == year)
    if status:
        q = q.where(Payroll.status == status)
    r = await db.execute(q)
    return list(r.scalars().all())


# ---------- 薪資修改申請 ----------
async def get_edit_request(db: AsyncSession, request_id: int) -> Optional[PayrollEditRequest]:
    r = await db.execute(
        select(PayrollEditRequest)
        .where(PayrollEditRequest.id == request_id)
        .options(selectinload(PayrollEditRequest.payroll), selectinload(PayrollEditRequest.task))
        .execution_options(populate_existing=True)
    )
    return r.scalar_one_or_none()


async def list_edit_requests(
    db: AsyncSession,
    payroll_id: Optional[int] = None,
    assigned_to: Optional[int] = None,
    requested_by: Optional[int] = None,
    status: Optional[str] = None,
) -> List[PayrollEditRequest]:
    q = select(PayrollEditRequest).order_by(PayrollEditRequest.created_at.desc(), PayrollEditRequest.id.desc())
    if payroll_id is not None:
        q = q.where(PayrollEditRequest.payroll_id == payroll_id)
    if assigned_to is not None:
        q = q.where(PayrollEditRequest.assigned_to == assigned_to)
    if requested_by is not None:
        q = q.where(PayrollEditRequest.requested_by == requested_by)
    if status:
        q = q.where(PayrollEditRequest.status == status)
    r = await db.execute(q)
    return list(r.scalars().all())

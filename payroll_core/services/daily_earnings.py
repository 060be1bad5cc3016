"""
每日工時與薪資解析（日曆、月結、統計共用）。

一天的結果 = 出勤工時 + 適用時薪 + 週加班拆分；若當天有人工修正（DailyPayrollOverride），
則 is_override=True，修正列中有值的欄位直接採用，空值欄位沿用計算值（逐欄覆寫，不是整筆取代）。

計算只讀取事先載入的資料（PayrollInputs），同一份資料重算任意次結果都相同。
週加班需要同週前幾天的工時，所以載入區間一律從查詢起日所屬週的週一開始（可能跨到上個月）。
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.config import settings
from payroll_core.errors import DataAnomaly, NotFoundError
from payroll_core.models import AttendanceRecord, DailyPayrollOverride, Employee, HourlyRatePeriod, OvertimeConfig
from payroll_core.services.billing_period import first_day_of_month, last_day_of_month
from payroll_core.services.overtime import (
    ZERO,
    calculate_day_pay,
    iso_week_start,
    round_hours,
    round_money,
    split_weekly_hours,
)
from payroll_core.services.rate_resolver import list_rate_periods_between, pick_rate

logger = logging.getLogger(__name__)

SECONDS_PER_HOUR = Decimal("3600")


@dataclass(frozen=True)
class DailyEarnings:
    date: date
    hours: Decimal
    earnings: Decimal
    hourly_rate: Optional[Decimal]
    regular_hours: Decimal
    overtime_hours: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    is_override: bool = False
    anomalies: Tuple[DataAnomaly, ...] = ()

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "hours": self.hours,
            "earnings": self.earnings,
            "hourly_rate": self.hourly_rate,
            "regular_hours": self.regular_hours,
            "overtime_hours": self.overtime_hours,
            "regular_pay": self.regular_pay,
            "overtime_pay": self.overtime_pay,
            "is_override": self.is_override,
            "anomalies": [a.code for a in self.anomalies],
        }


@dataclass
class PayrollInputs:
    """某員工某段期間計薪所需的全部資料快照"""
    user_id: int
    default_hourly_rate: Optional[Decimal]
    weekly_threshold_hours: Decimal
    overtime_multiplier: Decimal
    attendance: Dict[date, AttendanceRecord] = field(default_factory=dict)
    overrides: Dict[date, DailyPayrollOverride] = field(default_factory=dict)
    rate_periods: List[HourlyRatePeriod] = field(default_factory=list)


async def load_payroll_inputs(db: AsyncSession, user_id: int, start: date, end: date) -> PayrollInputs:
    emp = await db.get(Employee, user_id)
    if not emp:
        raise NotFoundError("員工不存在")
    window_start = iso_week_start(start)

    r = await db.execute(select(OvertimeConfig).where(OvertimeConfig.user_id == user_id))
    ot = r.scalar_one_or_none()

    r = await db.execute(
        select(AttendanceRecord).where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.date >= window_start,
            AttendanceRecord.date <= end,
        ).execution_options(populate_existing=True)
    )
    attendance = {a.date: a for a in r.scalars().all()}

    r = await db.execute(
        select(DailyPayrollOverride).where(
            DailyPayrollOverride.user_id == user_id,
            DailyPayrollOverride.date >= window_start,
            DailyPayrollOverride.date <= end,
        ).execution_options(populate_existing=True)
    )
    overrides = {o.date: o for o in r.scalars().all()}

    periods = await list_rate_periods_between(db, user_id, window_start, end)
    return PayrollInputs(
        user_id=user_id,
        default_hourly_rate=emp.hourly_rate,
        weekly_threshold_hours=ot.weekly_threshold_hours if ot else settings.default_weekly_threshold_hours,
        overtime_multiplier=ot.overtime_multiplier if ot else settings.default_overtime_multiplier,
        attendance=attendance,
        overrides=overrides,
        rate_periods=periods,
    )


def _duration_seconds(check_in: datetime, check_out: datetime) -> Decimal:
    delta = abs(check_out - check_in)
    return Decimal(delta.days * 86400 + delta.seconds) + Decimal(delta.microseconds) / Decimal(1_000_000)


def attendance_hours(
    record: Optional[AttendanceRecord], user_id: int, on_date: date
) -> Tuple[Decimal, Tuple[DataAnomaly, ...]]:
    """出勤工時 = |簽退 - 簽到| / 3600；未簽退為 0（應先由自動簽退補齊）"""
    if record is None or record.check_in_time is None:
        return ZERO, ()
    if record.check_out_time is None:
        return ZERO, (DataAnomaly("open_check_in", f"{on_date} 尚未簽退，工時以 0 計"),)
    anomalies: Tuple[DataAnomaly, ...] = ()
    if record.check_out_time < record.check_in_time:
        logger.warning(
            "negative attendance duration: user_id=%s date=%s check_in=%s check_out=%s",
            user_id, on_date, record.check_in_time.isoformat(), record.check_out_time.isoformat(),
        )
        anomalies = (DataAnomaly("negative_duration", f"{on_date} 簽退早於簽到，工時取絕對值"),)
    hours = round_hours(_duration_seconds(record.check_in_time, record.check_out_time) / SECONDS_PER_HOUR)
    return hours, anomalies


def _computed_day(inputs: PayrollInputs, on_date: date, prior_week_hours: Decimal) -> DailyEarnings:
    hours, anomalies = attendance_hours(inputs.attendance.get(on_date), inputs.user_id, on_date)
    rate = pick_rate(inputs.rate_periods, on_date, inputs.default_hourly_rate)
    regular, overtime = split_weekly_hours(prior_week_hours, hours, inputs.weekly_threshold_hours)
    regular_pay, overtime_pay, earnings = calculate_day_pay(regular, overtime, rate, inputs.overtime_multiplier)
    return DailyEarnings(
        date=on_date,
        hours=hours,
        earnings=earnings,
        hourly_rate=rate,
        regular_hours=regular,
        overtime_hours=overtime,
        regular_pay=regular_pay,
        overtime_pay=overtime_pay,
        anomalies=anomalies,
    )


def _apply_override(
    ov: DailyPayrollOverride,
    computed: DailyEarnings,
    prior_week_hours: Decimal,
    inputs: PayrollInputs,
) -> DailyEarnings:
    rate = ov.hourly_rate if ov.hourly_rate is not None else computed.hourly_rate

    if ov.total_hours is not None:
        hours = Decimal(ov.total_hours)
    elif ov.regular_hours is not None and ov.overtime_hours is not None:
        hours = Decimal(ov.regular_hours) + Decimal(ov.overtime_hours)
    elif ov.regular_hours is not None:
        # 總工時至少涵蓋修正的那一段，確保正常 + 加班 = 總工時
        hours = max(computed.hours, Decimal(ov.regular_hours))
    elif ov.overtime_hours is not None:
        hours = max(computed.hours, Decimal(ov.overtime_hours))
    else:
        hours = computed.hours

    split_regular, split_overtime = split_weekly_hours(prior_week_hours, hours, inputs.weekly_threshold_hours)
    # 只給其中一種時數時，另一種取剩餘
    if ov.regular_hours is not None:
        regular = Decimal(ov.regular_hours)
    elif ov.overtime_hours is not None:
        regular = max(hours - Decimal(ov.overtime_hours), ZERO)
    else:
        regular = split_regular
    if ov.overtime_hours is not None:
        overtime = Decimal(ov.overtime_hours)
    elif ov.regular_hours is not None:
        overtime = max(hours - Decimal(ov.regular_hours), ZERO)
    else:
        overtime = split_overtime

    regular_pay, overtime_pay, pay = calculate_day_pay(regular, overtime, rate, inputs.overtime_multiplier)
    earnings = round_money(ov.earnings) if ov.earnings is not None else pay
    return DailyEarnings(
        date=computed.date,
        hours=round_hours(hours),
        earnings=earnings,
        hourly_rate=rate,
        regular_hours=round_hours(regular),
        overtime_hours=round_hours(overtime),
        regular_pay=regular_pay,
        overtime_pay=overtime_pay,
        is_override=True,
        anomalies=computed.anomalies,
    )


def resolve_day(inputs: PayrollInputs, on_date: date, prior_week_hours: Decimal) -> DailyEarnings:
    """單日解析；prior_week_hours 為同週、當日之前各日（已套用人工修正後）的工時合計"""
    computed = _computed_day(inputs, on_date, prior_week_hours)
    ov = inputs.overrides.get(on_date)
    if ov is None:
        return computed
    return _apply_override(ov, computed, prior_week_hours, inputs)


def resolve_range(inputs: PayrollInputs, start: date, end: date) -> Dict[date, DailyEarnings]:
    """逐日解析 [start, end]；從 start 所屬週的週一開始累計週工時"""
    out: Dict[date, DailyEarnings] = {}
    running = ZERO
    d = iso_week_start(start)
    while d <= end:
        if d.weekday() == 0:
            running = ZERO
        day = resolve_day(inputs, d, running)
        running += day.hours
        if d >= start:
            out[d] = day
        d += timedelta(days=1)
    return out


async def compute_daily_earnings(db: AsyncSession, user_id: int, on_date: date) -> DailyEarnings:
    inputs = await load_payroll_inputs(db, user_id, on_date, on_date)
    return resolve_range(inputs, on_date, on_date)[on_date]


async def compute_daily_earnings_between(
    db: AsyncSession, user_id: int, start: date, end: date
) -> Dict[date, DailyEarnings]:
    inputs = await load_payroll_inputs(db, user_id, start, end)
    return resolve_range(inputs, start, end)


async def compute_daily_earnings_for_month(
    db: AsyncSession, user_id: int, month: int, year: int
) -> Dict[date, DailyEarnings]:
    """日曆用：當月每一天的工時與薪資"""
    return await compute_daily_earnings_between(
        db, user_id, first_day_of_month(year, month), last_day_of_month(year, month)
    )

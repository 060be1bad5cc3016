"""
每日工時/薪資解析（連資料庫）。
測試：整週加班情境、只修正 earnings、重複計算結果相同、簽退早於簽到、未簽退、員工不存在。
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.database import Base
from payroll_core.errors import NotFoundError
from payroll_core.models import AttendanceRecord, DailyPayrollOverride, Employee, OvertimeConfig
from payroll_core.services.daily_earnings import (
    compute_daily_earnings,
    compute_daily_earnings_between,
    compute_daily_earnings_for_month,
)


@pytest.fixture
async def async_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        yield session_factory
    finally:
        await engine.dispose()


def _attendance(user_id: int, d: date, start_hour: int, end_hour: int) -> AttendanceRecord:
    return AttendanceRecord(
        user_id=user_id,
        date=d,
        check_in_time=datetime(d.year, d.month, d.day, start_hour, 0),
        check_out_time=datetime(d.year, d.month, d.day, end_hour, 0),
        first_check_in_time=datetime(d.year, d.month, d.day, start_hour, 0),
    )


async def _hourly_employee(db: AsyncSession, rate: str = "20") -> Employee:
    emp = Employee(name="陳小華", payment_type="HOURLY", hourly_rate=Decimal(rate))
    db.add(emp)
    await db.flush()
    return emp


@pytest.mark.asyncio
async def test_week_scenario_friday_overtime(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db)
        for day in range(3, 7):
            db.add(_attendance(emp.id, date(2025, 3, day), 8, 18))
        db.add(_attendance(emp.id, date(2025, 3, 7), 9, 13))
        await db.commit()

    async with async_session() as db:
        friday = await compute_daily_earnings(db, emp.id, date(2025, 3, 7))
        assert friday.hours == Decimal("4")
        assert friday.overtime_hours == Decimal("4")
        assert friday.earnings == Decimal("120.00")

        week = await compute_daily_earnings_between(db, emp.id, date(2025, 3, 3), date(2025, 3, 9))
        assert sum(d.earnings for d in week.values()) == Decimal("920.00")


@pytest.mark.asyncio
async def test_overtime_config_threshold_and_multiplier(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db)
        db.add(OvertimeConfig(user_id=emp.id, weekly_threshold_hours=Decimal("8"), overtime_multiplier=Decimal("2")))
        db.add(_attendance(emp.id, date(2025, 3, 3), 8, 18))
        await db.commit()

    async with async_session() as db:
        day = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert day.regular_hours == Decimal("8")
        assert day.overtime_hours == Decimal("2")
        # 8 × 20 + 2 × 20 × 2
        assert day.earnings == Decimal("240.00")


@pytest.mark.asyncio
async def test_earnings_only_override(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db, rate="25")
        db.add(_attendance(emp.id, date(2025, 3, 3), 9, 17))
        await db.commit()

    async with async_session() as db:
        before = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert before.hours == Decimal("8")
        assert before.earnings == Decimal("200.00")
        assert before.is_override is False

        db.add(DailyPayrollOverride(user_id=emp.id, date=date(2025, 3, 3), earnings=Decimal("500")))
        await db.commit()

    async with async_session() as db:
        after = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert after.is_override is True
        assert after.hours == Decimal("8")
        assert after.hourly_rate == Decimal("25")
        assert after.earnings == Decimal("500.00")


@pytest.mark.asyncio
async def test_recomputation_is_idempotent(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db)
        for day in range(3, 8):
            db.add(_attendance(emp.id, date(2025, 3, day), 8, 17))
        await db.commit()

    async with async_session() as db:
        first = await compute_daily_earnings_for_month(db, emp.id, 3, 2025)
        second = await compute_daily_earnings_for_month(db, emp.id, 3, 2025)
        assert first == second
        assert len(first) == 31
        assert sum(d.hours for d in first.values()) == Decimal("45")


@pytest.mark.asyncio
async def test_negative_duration_is_flagged_not_rejected(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db)
        db.add(_attendance(emp.id, date(2025, 3, 3), 17, 9))
        await db.commit()

    async with async_session() as db:
        day = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert day.hours == Decimal("8")
        assert [a.code for a in day.anomalies] == ["negative_duration"]
        assert day.to_dict()["anomalies"] == ["negative_duration"]


@pytest.mark.asyncio
async def test_open_check_in_counts_zero(async_session):
    async with async_session() as db:
        emp = await _hourly_employee(db)
        db.add(AttendanceRecord(user_id=emp.id, date=date(2025, 3, 3), check_in_time=datetime(2025, 3, 3, 9, 0)))
        await db.commit()

    async with async_session() as db:
        day = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert day.hours == Decimal("0")
        assert day.earnings == Decimal("0")
        assert day.anomalies[0].code == "open_check_in"


@pytest.mark.asyncio
async def test_salaried_employee_has_zero_daily_earnings(async_session):
    async with async_session() as db:
        emp = Employee(name="林月薪", payment_type="SALARY", monthly_salary=Decimal("50000"))
        db.add(emp)
        await db.flush()
        db.add(_attendance(emp.id, date(2025, 3, 3), 9, 18))
        await db.commit()

    async with async_session() as db:
        day = await compute_daily_earnings(db, emp.id, date(2025, 3, 3))
        assert day.hours == Decimal("9")
        assert day.hourly_rate is None
        assert day.earnings == Decimal("0")


@pytest.mark.asyncio
async def test_unknown_employee(async_session):
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await compute_daily_earnings(db, 999, date(2025, 3, 3))

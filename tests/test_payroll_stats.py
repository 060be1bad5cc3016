"""員工薪資統計：本月/今年累計取每日解析，歷年合計/平均取薪資單實發"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.database import Base
from payroll_core.errors import NotFoundError
from payroll_core.models import AttendanceRecord, Employee
from payroll_core.schemas import PayItem, PayrollCreate, PayrollStats
from payroll_core.services.monthly_payroll import create_monthly_payroll
from payroll_core.services.payroll_stats import compute_payroll_stats


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


@pytest.mark.asyncio
async def test_stats_current_month_year_to_date_and_history(async_session):
    async with async_session() as db:
        emp = Employee(name="陳小華", payment_type="HOURLY", hourly_rate=Decimal("20"))
        db.add(emp)
        await db.flush()
        for d in (date(2025, 2, 3), date(2025, 3, 3)):
            db.add(AttendanceRecord(
                user_id=emp.id,
                date=d,
                check_in_time=datetime(d.year, d.month, d.day, 9, 0),
                check_out_time=datetime(d.year, d.month, d.day, 17, 0),
            ))
        await db.commit()

    async with async_session() as db:
        await create_monthly_payroll(db, PayrollCreate(
            user_id=emp.id, month=2, year=2025, bonuses=[PayItem(label="獎金", amount=Decimal("40"))],
        ))
        await db.commit()

    async with async_session() as db:
        stats = await compute_payroll_stats(db, emp.id, date(2025, 3, 31))

    assert stats["current_month_earnings"] == Decimal("160.00")
    assert stats["current_month_hours"] == Decimal("8")
    assert stats["year_to_date_total"] == Decimal("320.00")
    assert stats["year_to_date_hours"] == Decimal("16")
    assert stats["all_time_total"] == Decimal("200.00")
    assert stats["average_monthly_earnings"] == Decimal("200.00")
    assert stats["pending_count"] == 1
    assert stats["payroll_count"] == 1
    february, march = stats["monthly_breakdown"][1], stats["monthly_breakdown"][2]
    assert february["earnings"] == Decimal("200.00")
    assert february["status"] == "PENDING"
    assert march["earnings"] == Decimal("0")
    assert march["status"] is None
    assert PayrollStats(**stats).payroll_count == 1


@pytest.mark.asyncio
async def test_stats_unknown_employee(async_session):
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await compute_payroll_stats(db, 404, date(2025, 3, 31))

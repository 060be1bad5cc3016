"""
時薪期間與加班規則：重疊拒絕（應用層與 DB 觸發器）、相鄰可建立、更新成重疊拒絕、加班規則一人一筆。
"""
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core import crud
from payroll_core.database import Base
from payroll_core.errors import ConflictError, NotFoundError, ValidationError
from payroll_core.models import Employee, HourlyRatePeriod
from payroll_core.schemas import (
    HourlyRatePeriodCreate,
    HourlyRatePeriodUpdate,
    OvertimeConfigCreate,
    OvertimeConfigUpdate,
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


async def _employee(async_session) -> Employee:
    async with async_session() as db:
        emp = Employee(name="陳小華", payment_type="HOURLY", hourly_rate=Decimal("20"))
        db.add(emp)
        await db.commit()
    return emp


def _march(user_id: int, rate: str = "22") -> HourlyRatePeriodCreate:
    return HourlyRatePeriodCreate(
        user_id=user_id, start_date=date(2025, 3, 1), end_date=date(2025, 3, 31), hourly_rate=Decimal(rate),
    )


def test_period_range_must_be_ordered():
    with pytest.raises(ValueError):
        HourlyRatePeriodCreate(user_id=1, start_date=date(2025, 3, 31), end_date=date(2025, 3, 1), hourly_rate=Decimal("20"))


@pytest.mark.asyncio
async def test_overlapping_period_rejected(async_session):
    emp = await _employee(async_session)

    async with async_session() as db:
        p = await crud.create_rate_period(db, _march(emp.id), created_by=7)
        await db.commit()
        assert p.created_by == 7

    async with async_session() as db:
        with pytest.raises(ConflictError):
            await crud.create_rate_period(db, HourlyRatePeriodCreate(
                user_id=emp.id, start_date=date(2025, 3, 31), end_date=date(2025, 4, 30), hourly_rate=Decimal("25"),
            ))


@pytest.mark.asyncio
async def test_adjacent_periods_allowed(async_session):
    emp = await _employee(async_session)

    async with async_session() as db:
        await crud.create_rate_period(db, _march(emp.id))
        await crud.create_rate_period(db, HourlyRatePeriodCreate(
            user_id=emp.id, start_date=date(2025, 4, 1), end_date=date(2025, 4, 30), hourly_rate=Decimal("25"),
        ))
        await db.commit()
        periods = await crud.list_rate_periods(db, user_id=emp.id)
        assert [p.start_date for p in periods] == [date(2025, 4, 1), date(2025, 3, 1)]
        assert len(await crud.list_rate_periods(db, user_id=emp.id, start_date=date(2025, 4, 15))) == 1


@pytest.mark.asyncio
async def test_update_into_overlap_rejected(async_session):
    emp = await _employee(async_session)

    async with async_session() as db:
        await crud.create_rate_period(db, _march(emp.id))
        april = await crud.create_rate_period(db, HourlyRatePeriodCreate(
            user_id=emp.id, start_date=date(2025, 4, 1), end_date=date(2025, 4, 30), hourly_rate=Decimal("25"),
        ))
        await db.commit()

    async with async_session() as db:
        april = await crud.get_rate_period(db, april.id)
        with pytest.raises(ConflictError):
            await crud.update_rate_period(db, april, HourlyRatePeriodUpdate(start_date=date(2025, 3, 15)))
        with pytest.raises(ValidationError):
            await crud.update_rate_period(db, april, HourlyRatePeriodUpdate(end_date=date(2025, 3, 1)))
        updated = await crud.update_rate_period(db, april, HourlyRatePeriodUpdate(hourly_rate=Decimal("26")))
        assert updated.hourly_rate == Decimal("26")


@pytest.mark.asyncio
async def test_storage_rejects_overlap_written_directly(async_session):
    emp = await _employee(async_session)

    async with async_session() as db:
        await crud.create_rate_period(db, _march(emp.id))
        await db.commit()

    async with async_session() as db:
        db.add(HourlyRatePeriod(
            user_id=emp.id, start_date=date(2025, 3, 10), end_date=date(2025, 3, 20), hourly_rate=Decimal("30"),
        ))
        with pytest.raises(IntegrityError):
            await db.flush()


@pytest.mark.asyncio
async def test_rate_period_for_unknown_employee(async_session):
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await crud.create_rate_period(db, _march(404))


@pytest.mark.asyncio
async def test_overtime_config_one_per_employee(async_session):
    emp = await _employee(async_session)

    async with async_session() as db:
        c = await crud.create_overtime_config(db, OvertimeConfigCreate(user_id=emp.id))
        await db.commit()
        assert c.weekly_threshold_hours == Decimal("40")
        assert c.overtime_multiplier == Decimal("1.5")

    async with async_session() as db:
        with pytest.raises(ConflictError):
            await crud.create_overtime_config(db, OvertimeConfigCreate(user_id=emp.id, weekly_threshold_hours=Decimal("44")))

    async with async_session() as db:
        c = await crud.get_overtime_config(db, emp.id)
        c = await crud.update_overtime_config(db, c, OvertimeConfigUpdate(overtime_multiplier=Decimal("2")))
        assert c.overtime_multiplier == Decimal("2")
        assert c.weekly_threshold_hours == Decimal("40")

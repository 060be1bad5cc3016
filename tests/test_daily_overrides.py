"""
每日人工修正：寫入後觸發當月重算、同日再寫入為更新、輸入驗證、重算失敗不影響修正、刪除後回到計算值。
"""
from datetime import date, datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.database import Base
from payroll_core.errors import NotFoundError, RecalculationWarning, ValidationError
from payroll_core.models import AttendanceRecord, DailyPayrollOverride, Employee, Payroll
from payroll_core.schemas import DailyOverrideUpsert, PayrollCreate
from payroll_core.services import monthly_payroll
from payroll_core.services.daily_overrides import delete_daily_override, upsert_daily_override, validate_override

TODAY = date(2025, 3, 31)


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


async def _seed(async_session, with_payroll: bool = True):
    """時薪 20 員工，3/3 出勤 8 小時；可選建立 3 月薪資單（底薪 160）"""
    async with async_session() as db:
        emp = Employee(name="陳小華", payment_type="HOURLY", hourly_rate=Decimal("20"))
        db.add(emp)
        await db.flush()
        db.add(AttendanceRecord(
            user_id=emp.id,
            date=date(2025, 3, 3),
            check_in_time=datetime(2025, 3, 3, 9, 0),
            check_out_time=datetime(2025, 3, 3, 17, 0),
        ))
        await db.commit()
    payroll = None
    if with_payroll:
        async with async_session() as db:
            payroll = await monthly_payroll.create_monthly_payroll(
                db, PayrollCreate(user_id=emp.id, month=3, year=2025)
            )
            await db.commit()
        assert payroll.base_salary == Decimal("160.00")
    return emp, payroll


# ---------- 驗證 ----------


def test_validate_rejects_more_than_24_hours():
    with pytest.raises(ValidationError):
        validate_override(DailyOverrideUpsert(user_id=1, date=date(2025, 3, 3), total_hours=Decimal("25")), TODAY)
    with pytest.raises(ValidationError):
        validate_override(
            DailyOverrideUpsert(
                user_id=1, date=date(2025, 3, 3), regular_hours=Decimal("16"), overtime_hours=Decimal("9"),
            ),
            TODAY,
        )


def test_validate_rejects_future_date():
    with pytest.raises(ValidationError):
        validate_override(DailyOverrideUpsert(user_id=1, date=date(2025, 4, 1), earnings=Decimal("100")), TODAY)


def test_validate_parts_must_match_total():
    with pytest.raises(ValidationError):
        validate_override(
            DailyOverrideUpsert(
                user_id=1, date=date(2025, 3, 3),
                regular_hours=Decimal("8"), overtime_hours=Decimal("1"), total_hours=Decimal("10"),
            ),
            TODAY,
        )
    with pytest.raises(ValidationError):
        validate_override(
            DailyOverrideUpsert(user_id=1, date=date(2025, 3, 3), regular_hours=Decimal("9"), total_hours=Decimal("8")),
            TODAY,
        )
    validate_override(
        DailyOverrideUpsert(
            user_id=1, date=date(2025, 3, 3),
            regular_hours=Decimal("8"), overtime_hours=Decimal("2"), total_hours=Decimal("10"),
        ),
        TODAY,
    )


# ---------- 寫入與重算 ----------


@pytest.mark.asyncio
async def test_upsert_triggers_recalculation(async_session):
    emp, payroll = await _seed(async_session)

    async with async_session() as db:
        outcome = await upsert_daily_override(
            db, DailyOverrideUpsert(user_id=emp.id, date=date(2025, 3, 3), total_hours=Decimal("10")),
            created_by=99, today=TODAY,
        )
        await db.commit()
        assert outcome.override.total_hours == Decimal("10")
        assert outcome.override.created_by == 99
        assert outcome.daily.is_override is True
        assert outcome.daily.hours == Decimal("10")
        assert outcome.daily.earnings == Decimal("200.00")
        assert outcome.recalculation.recalculated is True
        assert outcome.recalculation.payroll_id == payroll.id
        assert outcome.recalculation.warning is None

    async with async_session() as db:
        stored = await db.get(Payroll, payroll.id)
        assert stored.hours_worked == Decimal("10")
        assert stored.base_salary == Decimal("200.00")
        assert stored.net_salary == Decimal("200.00")


@pytest.mark.asyncio
async def test_second_upsert_replaces_same_row(async_session):
    emp, _ = await _seed(async_session, with_payroll=False)

    async with async_session() as db:
        first = await upsert_daily_override(
            db, DailyOverrideUpsert(user_id=emp.id, date=date(2025, 3, 3), total_hours=Decimal("10")), today=TODAY,
        )
        await db.commit()
        assert first.recalculation.recalculated is False

    async with async_session() as db:
        second = await upsert_daily_override(
            db, DailyOverrideUpsert(user_id=emp.id, date=date(2025, 3, 3), earnings=Decimal("500")), today=TODAY,
        )
        await db.commit()
        assert second.override.id == first.override.id
        assert second.override.total_hours is None
        assert second.daily.hours == Decimal("8")
        assert second.daily.earnings == Decimal("500.00")

    async with async_session() as db:
        count = (await db.execute(select(func.count()).select_from(DailyPayrollOverride))).scalar_one()
        assert count == 1


@pytest.mark.asyncio
async def test_upsert_for_unknown_employee(async_session):
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await upsert_daily_override(
                db, DailyOverrideUpsert(user_id=404, date=date(2025, 3, 3), earnings=Decimal("1")), today=TODAY,
            )


@pytest.mark.asyncio
async def test_recalculation_failure_keeps_override(async_session, monkeypatch):
    emp, payroll = await _seed(async_session)

    async def boom(db, payroll_id):
        raise RuntimeError("db exploded")

    monkeypatch.setattr(monthly_payroll, "recalculate_monthly_payroll", boom)

    async with async_session() as db:
        outcome = await upsert_daily_override(
            db, DailyOverrideUpsert(user_id=emp.id, date=date(2025, 3, 3), total_hours=Decimal("10")), today=TODAY,
        )
        await db.commit()
        assert outcome.recalculation.recalculated is False
        assert outcome.recalculation.payroll_id == payroll.id
        assert isinstance(outcome.recalculation.warning, RecalculationWarning)
        assert outcome.daily.hours == Decimal("10")

    async with async_session() as db:
        r = await db.execute(select(DailyPayrollOverride).where(DailyPayrollOverride.user_id == emp.id))
        assert r.scalar_one().total_hours == Decimal("10")
        stored = await db.get(Payroll, payroll.id)
        assert stored.base_salary == Decimal("160.00")


# ---------- 刪除 ----------


@pytest.mark.asyncio
async def test_delete_reverts_to_computed_values(async_session):
    emp, payroll = await _seed(async_session)

    async with async_session() as db:
        await upsert_daily_override(
            db, DailyOverrideUpsert(user_id=emp.id, date=date(2025, 3, 3), total_hours=Decimal("10")), today=TODAY,
        )
        await db.commit()

    async with async_session() as db:
        outcome = await delete_daily_override(db, emp.id, date(2025, 3, 3))
        await db.commit()
        assert outcome.override is None
        assert outcome.daily.is_override is False
        assert outcome.daily.hours == Decimal("8")
        assert outcome.recalculation.recalculated is True

    async with async_session() as db:
        stored = await db.get(Payroll, payroll.id)
        assert stored.base_salary == Decimal("160.00")


@pytest.mark.asyncio
async def test_delete_missing_override(async_session):
    emp, _ = await _seed(async_session, with_payroll=False)
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await delete_daily_override(db, emp.id, date(2025, 3, 4))

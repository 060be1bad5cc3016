"""
薪資修改申請：指派（主管 > 公司管理員）、審核待辦、核准套用、駁回不動、結案後不可再審。
"""
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_core.database import Base
from payroll_core.errors import ConflictError, NotFoundError, ValidationError
from payroll_core.identity import IdentityContext
from payroll_core.models import ApprovalTask, Employee, Payroll
from payroll_core.schemas import PayItem, PayrollChanges, PayrollCreate
from payroll_core.services.edit_requests import apply_changes, create_edit_request, resolve_edit_request
from payroll_core.services.monthly_payroll import create_monthly_payroll


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


async def _seed(async_session, with_manager: bool = True, with_admin: bool = False):
    """公司 1：主管、（可選）公司管理員、時薪員工；3 月薪資單 44 小時 × 20，全勤獎金 100"""
    async with async_session() as db:
        mgr = Employee(name="王主管", role="MANAGER", company_id=1)
        db.add(mgr)
        if with_admin:
            db.add(Employee(name="李管理", role="COMPANY_ADMIN", company_id=1))
        await db.flush()
        emp = Employee(
            name="陳小華", role="EMPLOYEE", company_id=1, payment_type="HOURLY", hourly_rate=Decimal("20"),
            manager_id=mgr.id if with_manager else None,
        )
        db.add(emp)
        await db.flush()
        payroll = await create_monthly_payroll(db, PayrollCreate(
            user_id=emp.id, month=3, year=2025, hours_worked=Decimal("44"),
            bonuses=[PayItem(label="全勤", amount=Decimal("100"))],
        ))
        await db.commit()
    return mgr, emp, payroll


def _employee_identity(emp: Employee) -> IdentityContext:
    return IdentityContext(user_id=emp.id, role="EMPLOYEE", company_id=emp.company_id)


def test_apply_changes_recomputes_hourly_base():
    payroll = Payroll(
        payment_type="HOURLY", hours_worked=Decimal("40"), hourly_rate=Decimal("20"), base_salary=Decimal("800"),
        bonuses=[{"label": "全勤", "amount": "100"}], deductions=[],
    )
    apply_changes(payroll, PayrollChanges(hourly_rate=Decimal("25")))
    assert payroll.base_salary == Decimal("1000.00")
    assert payroll.total_bonuses == Decimal("100.00")
    assert payroll.net_salary == Decimal("1100.00")


def test_apply_changes_explicit_base_wins():
    payroll = Payroll(
        payment_type="HOURLY", hours_worked=Decimal("40"), hourly_rate=Decimal("20"), base_salary=Decimal("800"),
        bonuses=[], deductions=[],
    )
    apply_changes(payroll, PayrollChanges(hours_worked=Decimal("45"), base_salary=Decimal("850")))
    assert payroll.hours_worked == Decimal("45")
    assert payroll.base_salary == Decimal("850")
    assert payroll.net_salary == Decimal("850.00")


def test_apply_changes_null_pay_items_keep_existing():
    payroll = Payroll(
        payment_type="HOURLY", hours_worked=Decimal("40"), hourly_rate=Decimal("20"), base_salary=Decimal("800"),
        bonuses=[{"label": "全勤", "amount": "100.00"}], deductions=[{"label": "遲到", "amount": "20.00"}],
    )
    changes = PayrollChanges.model_validate({"bonuses": None, "deductions": None, "notes": "補註"})
    apply_changes(payroll, changes)
    assert payroll.bonuses == [{"label": "全勤", "amount": "100.00"}]
    assert payroll.deductions == [{"label": "遲到", "amount": "20.00"}]
    assert payroll.notes == "補註"
    assert payroll.net_salary == Decimal("880.00")


def test_changes_must_not_be_empty():
    with pytest.raises(ValueError):
        PayrollChanges()


@pytest.mark.asyncio
async def test_employee_request_assigned_to_manager_with_task(async_session):
    mgr, emp, payroll = await _seed(async_session)

    async with async_session() as db:
        req = await create_edit_request(
            db, payroll.id, _employee_identity(emp), PayrollChanges(hours_worked=Decimal("50")), notes="漏登加班",
        )
        await db.commit()
        assert req.status == "PENDING"
        assert req.requested_by == emp.id
        assert req.assigned_to == mgr.id
        assert req.changes == {"hours_worked": "50"}
        assert req.original_data["hours_worked"] == "44.0000"
        assert req.task is not None
        assert req.task.assignee_id == mgr.id
        assert req.task.status == "PENDING"
        assert req.task.title == "薪資修改申請 - 陳小華（2025/03）"
        assert req.task.due_date is not None


@pytest.mark.asyncio
async def test_employee_without_manager_falls_back_to_company_admin(async_session):
    _, emp, payroll = await _seed(async_session, with_manager=False, with_admin=True)

    async with async_session() as db:
        admin = (await db.execute(select(Employee).where(Employee.role == "COMPANY_ADMIN"))).scalar_one()
        req = await create_edit_request(db, payroll.id, _employee_identity(emp), PayrollChanges(notes="更正"))
        assert req.assigned_to == admin.id


@pytest.mark.asyncio
async def test_employee_without_any_assignee_rejected(async_session):
    _, emp, payroll = await _seed(async_session, with_manager=False)

    async with async_session() as db:
        with pytest.raises(ValidationError):
            await create_edit_request(db, payroll.id, _employee_identity(emp), PayrollChanges(notes="更正"))


@pytest.mark.asyncio
async def test_manager_request_self_assigned_without_task(async_session):
    mgr, _, payroll = await _seed(async_session)

    async with async_session() as db:
        req = await create_edit_request(
            db, payroll.id, IdentityContext(user_id=mgr.id, role="MANAGER", company_id=1),
            PayrollChanges(base_salary=Decimal("900")),
        )
        await db.commit()
        assert req.assigned_to == mgr.id
        assert req.task is None
        tasks = (await db.execute(select(ApprovalTask))).scalars().all()
        assert tasks == []


@pytest.mark.asyncio
async def test_request_for_missing_payroll(async_session):
    _, emp, _ = await _seed(async_session)
    async with async_session() as db:
        with pytest.raises(NotFoundError):
            await create_edit_request(db, 999, _employee_identity(emp), PayrollChanges(notes="x"))


@pytest.mark.asyncio
async def test_approve_applies_changes(async_session):
    mgr, emp, payroll = await _seed(async_session)

    async with async_session() as db:
        req = await create_edit_request(
            db, payroll.id, _employee_identity(emp),
            PayrollChanges(hours_worked=Decimal("50"), bonuses=[PayItem(label="績效", amount=Decimal("300"))]),
        )
        await db.commit()

    async with async_session() as db:
        resolved = await resolve_edit_request(db, req.id, "approved", approver_id=mgr.id, notes="同意")
        await db.commit()
        assert resolved.status == "APPROVED"
        assert resolved.approved_by == mgr.id
        assert resolved.approved_at is not None
        assert resolved.notes == "同意"

    async with async_session() as db:
        stored = await db.get(Payroll, payroll.id)
        assert stored.hours_worked == Decimal("50")
        assert stored.base_salary == Decimal("1000.00")
        assert stored.bonuses == [{"label": "績效", "amount": "300.00"}]
        assert stored.total_bonuses == Decimal("300.00")
        assert stored.net_salary == Decimal("1300.00")
        task = (await db.execute(select(ApprovalTask))).scalar_one()
        assert task.status == "APPROVED"
        assert task.approved_by == mgr.id


@pytest.mark.asyncio
async def test_reject_leaves_payroll_untouched(async_session):
    mgr, emp, payroll = await _seed(async_session)

    async with async_session() as db:
        req = await create_edit_request(db, payroll.id, _employee_identity(emp), PayrollChanges(hours_worked=Decimal("60")))
        await db.commit()

    async with async_session() as db:
        resolved = await resolve_edit_request(db, req.id, "REJECTED", approver_id=mgr.id)
        await db.commit()
        assert resolved.status == "REJECTED"

    async with async_session() as db:
        stored = await db.get(Payroll, payroll.id)
        assert stored.hours_worked == Decimal("44")
        assert stored.net_salary == Decimal("980.00")
        task = (await db.execute(select(ApprovalTask))).scalar_one()
        assert task.status == "CANCELLED"


@pytest.mark.asyncio
async def test_resolved_request_cannot_be_resolved_again(async_session):
    mgr, emp, payroll = await _seed(async_session)

    async with async_session() as db:
        req = await create_edit_request(db, payroll.id, _employee_identity(emp), PayrollChanges(notes="更正"))
        await resolve_edit_request(db, req.id, "APPROVED", approver_id=mgr.id)
        await db.commit()

    async with async_session() as db:
        with pytest.raises(ConflictError):
            await resolve_edit_request(db, req.id, "REJECTED", approver_id=mgr.id)


@pytest.mark.asyncio
async def test_resolve_validation_and_missing(async_session):
    async with async_session() as db:
        with pytest.raises(ValidationError):
            await resolve_edit_request(db, 1, "MAYBE", approver_id=1)
        with pytest.raises(NotFoundError):
            await resolve_edit_request(db, 999, "APPROVED", approver_id=1)

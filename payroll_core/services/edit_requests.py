"""
薪資修改申請：PENDING → APPROVED / REJECTED，結案後不可再變更。

- 員工提出：指派給直屬主管，沒有主管則指派同公司第一位 COMPANY_ADMIN，並建立審核待辦。
- 管理員/主管提出：指派給自己。
- 核准：只套用申請中有填的欄位，獎金/扣款整批取代，合計與實發重算；
  時薪制若改了工時或時薪且未指定底薪，底薪 = 工時 × 時薪。
- 駁回：薪資單不動，待辦取消。
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud
from payroll_core.config import settings
from payroll_core.errors import ConflictError, NotFoundError, ValidationError
from payroll_core.identity import IdentityContext
from payroll_core.models import ApprovalTask, Payroll, PayrollEditRequest
from payroll_core.schemas import PayrollChanges
from payroll_core.services.monthly_payroll import (
    calculate_net_salary,
    calculate_total,
    pay_items_to_json,
)
from payroll_core.services.overtime import round_money

logger = logging.getLogger(__name__)

NUMERIC_CHANGE_FIELDS = ("hours_worked", "hourly_rate", "base_salary", "overtime_hours")


def _str_or_none(v) -> Optional[str]:
    return None if v is None else str(v)


def payroll_snapshot(payroll: Payroll) -> dict:
    """申請當下的薪資單內容（JSON 可序列化）"""
    return {
        "hours_worked": _str_or_none(payroll.hours_worked),
        "hourly_rate": _str_or_none(payroll.hourly_rate),
        "base_salary": _str_or_none(payroll.base_salary),
        "overtime_hours": _str_or_none(payroll.overtime_hours),
        "bonuses": list(payroll.bonuses or []),
        "deductions": list(payroll.deductions or []),
        "notes": payroll.notes,
    }


def apply_changes(payroll: Payroll, changes: PayrollChanges) -> Payroll:
    fields = changes.model_fields_set
    for name in NUMERIC_CHANGE_FIELDS:
        if name in fields and getattr(changes, name) is not None:
            setattr(payroll, name, getattr(changes, name))
    if "bonuses" in fields and changes.bonuses is not None:
        payroll.bonuses = pay_items_to_json(changes.bonuses)
    if "deductions" in fields and changes.deductions is not None:
        payroll.deductions = pay_items_to_json(changes.deductions)
    if "notes" in fields:
        payroll.notes = changes.notes

    rate_or_hours_changed = bool(fields & {"hours_worked", "hourly_rate"})
    if (
        payroll.payment_type == "HOURLY"
        and rate_or_hours_changed
        and changes.base_salary is None
        and payroll.hours_worked is not None
        and payroll.hourly_rate is not None
    ):
        payroll.base_salary = round_money(payroll.hours_worked * payroll.hourly_rate)

    payroll.total_bonuses = calculate_total(payroll.bonuses)
    payroll.total_deductions = calculate_total(payroll.deductions)
    payroll.net_salary = calculate_net_salary(payroll.base_salary, payroll.total_bonuses, payroll.total_deductions)
    return payroll


async def _resolve_assignee(db: AsyncSession, requester: IdentityContext, payroll: Payroll) -> int:
    if not requester.is_employee:
        return requester.user_id
    owner = await crud.require_employee(db, payroll.user_id)
    if owner.manager_id is not None:
        return owner.manager_id
    admin = await crud.find_company_admin(db, owner.company_id)
    if not admin:
        raise ValidationError("找不到可指派的主管或公司管理員")
    return admin.id


async def create_edit_request(
    db: AsyncSession,
    payroll_id: int,
    requester: IdentityContext,
    changes: PayrollChanges,
    notes: Optional[str] = None,
) -> PayrollEditRequest:
    payroll = await crud.get_payroll(db, payroll_id)
    if not payroll:
        raise NotFoundError("薪資單不存在")
    assigned_to = await _resolve_assignee(db, requester, payroll)

    req = PayrollEditRequest(
        payroll_id=payroll.id,
        requested_by=requester.user_id,
        assigned_to=assigned_to,
        status="PENDING",
        changes=changes.model_dump(mode="json", exclude_unset=True),
        original_data=payroll_snapshot(payroll),
        notes=notes,
    )
    db.add(req)
    await db.flush()

    if requester.is_employee:
        owner = await crud.require_employee(db, payroll.user_id)
        db.add(ApprovalTask(
            title=f"薪資修改申請 - {owner.name}（{payroll.year}/{payroll.month:02d}）",
            task_type="PAYROLL_EDIT",
            status="PENDING",
            assignee_id=assigned_to,
            related_payroll_id=payroll.id,
            related_edit_request_id=req.id,
            due_date=datetime.utcnow() + timedelta(days=settings.edit_request_due_days),
        ))
        await db.flush()
    logger.info(
        "payroll edit request created: id=%s payroll_id=%s requested_by=%s assigned_to=%s",
        req.id, payroll.id, requester.user_id, assigned_to,
    )
    return await crud.get_edit_request(db, req.id)


async def resolve_edit_request(
    db: AsyncSession,
    request_id: int,
    decision: str,
    approver_id: int,
    notes: Optional[str] = None,
) -> PayrollEditRequest:
    decision = (decision or "").strip().upper()
    if decision not in ("APPROVED", "REJECTED"):
        raise ValidationError("status 須為 APPROVED 或 REJECTED")
    req = await crud.get_edit_request(db, request_id)
    if not req:
        raise NotFoundError("薪資修改申請不存在")
    if req.status != "PENDING":
        raise ConflictError(f"申請已為 {req.status}，只有 PENDING 可核准或駁回")

    now = datetime.utcnow()
    # 以條件式更新結案，兩個同時的審核只有一個成功
    r = await db.execute(
        update(PayrollEditRequest)
        .where(PayrollEditRequest.id == req.id, PayrollEditRequest.status == "PENDING")
        .values(status=decision, approved_by=approver_id, approved_at=now, notes=notes or req.notes, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if r.rowcount == 0:
        raise ConflictError("申請已被其他人處理")

    if decision == "APPROVED":
        apply_changes(req.payroll, PayrollChanges.model_validate(req.changes))
    if req.task is not None:
        if decision == "APPROVED":
            req.task.status = "APPROVED"
            req.task.approved_by = approver_id
            req.task.approved_at = now
        else:
            req.task.status = "CANCELLED"
    await db.flush()
    await db.refresh(req, attribute_names=["status", "approved_by", "approved_at", "notes", "updated_at"])
    logger.info("payroll edit request %s %s by %s", req.id, decision, approver_id)
    return req

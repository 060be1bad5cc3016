"""
月薪資彙總與重算。

- 計薪方式：明確指定 > 員工預設 > SALARY。
- HOURLY：工時 = 明確指定，否則為當月每日解析工時加總；時薪 = 明確指定或員工預設，須 > 0；
  底薪 = 工時 × 時薪。
- SALARY：底薪 = 明確指定或員工月薪，須 > 0。
- 實發 = 底薪 + 獎金合計 - 扣款合計。
- 同一員工同一年月只能有一張薪資單。

重算只重跑 HOURLY 部分（工時、底薪、實發），獎金/扣款/狀態不動。
由人工修正或出勤異動觸發時，重算失敗只記錄警告，不影響觸發來源的寫入。
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud
from payroll_core.config import settings
from payroll_core.errors import ConflictError, NotFoundError, RecalculationWarning, ValidationError
from payroll_core.models import Payroll
from payroll_core.schemas import PayItem, PayrollCreate, PayrollUpdate
from payroll_core.services.billing_period import days_in_month, period_of
from payroll_core.services.daily_earnings import compute_daily_earnings_for_month
from payroll_core.services.overtime import ZERO, round_hours, round_money

logger = logging.getLogger(__name__)

PayItemLike = Union[PayItem, dict]

# 薪資單狀態可轉換的下一步
PAYROLL_STATUS_TRANSITIONS = {
    "PENDING": ("APPROVED", "REJECTED"),
    "APPROVED": ("PAID",),
    "REJECTED": ("PENDING",),
    "PAID": (),
}


# ---------- 獎金/扣款與實發之純函式 ----------
def _item_amount(item: PayItemLike) -> Decimal:
    if isinstance(item, PayItem):
        return Decimal(item.amount)
    return Decimal(str(item.get("amount") or 0))


def pay_items_to_json(items: Optional[Iterable[PayItemLike]]) -> List[dict]:
    """轉成可存入 JSON 欄位的清單；金額存字串避免浮點誤差"""
    out = []
    for item in items or []:
        label = item.label if isinstance(item, PayItem) else str(item.get("label") or "")
        out.append({"label": label, "amount": str(round_money(_item_amount(item)))})
    return out


def calculate_total(items: Optional[Iterable[PayItemLike]]) -> Decimal:
    return round_money(sum((_item_amount(i) for i in items or []), ZERO))


def calculate_net_salary(base_salary: Decimal, total_bonuses: Decimal, total_deductions: Decimal) -> Decimal:
    return round_money(Decimal(base_salary) + Decimal(total_bonuses) - Decimal(total_deductions))


# ---------- 工時彙總 ----------
async def compute_month_hours(db: AsyncSession, user_id: int, month: int, year: int) -> Tuple[Decimal, Decimal]:
    """回傳當月 (總工時, 加班時數)，為每日解析結果之加總"""
    days = await compute_daily_earnings_for_month(db, user_id, month, year)
    hours = sum((d.hours for d in days.values()), ZERO)
    overtime = sum((d.overtime_hours for d in days.values()), ZERO)
    return round_hours(hours), round_hours(overtime)


async def compute_hours_worked(db: AsyncSession, user_id: int, month: int, year: int) -> Decimal:
    hours, _ = await compute_month_hours(db, user_id, month, year)
    return hours


# ---------- 建立薪資單 ----------
async def create_monthly_payroll(db: AsyncSession, data: PayrollCreate) -> Payroll:
    emp = await crud.require_employee(db, data.user_id)
    if await crud.get_payroll_for_period(db, data.user_id, data.month, data.year):
        raise ConflictError("此期間薪資單已存在")

    payment_type = data.payment_type or emp.payment_type or "SALARY"
    hours_worked: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None

    if payment_type == "HOURLY":
        if data.hours_worked is not None:
            limit = settings.max_daily_hours * days_in_month(data.year, data.month)
            if data.hours_worked > limit:
                raise ValidationError(f"當月工時不可超過 {limit} 小時（每日上限 {settings.max_daily_hours} 小時）")
            hours_worked = round_hours(data.hours_worked)
        else:
            hours_worked, overtime_hours = await compute_month_hours(db, data.user_id, data.month, data.year)
        hourly_rate = data.hourly_rate if data.hourly_rate is not None else emp.hourly_rate
        if not hourly_rate or hourly_rate <= 0:
            raise ValidationError("時薪制員工須有大於 0 的時薪")
        base_salary = round_money(hours_worked * hourly_rate)
    else:
        base_salary = data.base_salary if data.base_salary is not None else emp.monthly_salary
        if not base_salary or base_salary <= 0:
            raise ValidationError("月薪制員工須有大於 0 的底薪或月薪")
        base_salary = round_money(base_salary)

    total_bonuses = calculate_total(data.bonuses)
    total_deductions = calculate_total(data.deductions)
    payroll = Payroll(
        user_id=data.user_id,
        month=data.month,
        year=data.year,
        payment_type=payment_type,
        hours_worked=hours_worked,
        overtime_hours=overtime_hours,
        hourly_rate=hourly_rate,
        base_salary=base_salary,
        bonuses=pay_items_to_json(data.bonuses),
        deductions=pay_items_to_json(data.deductions),
        total_bonuses=total_bonuses,
        total_deductions=total_deductions,
        net_salary=calculate_net_salary(base_salary, total_bonuses, total_deductions),
        status="PENDING",
        notes=data.notes,
    )
    db.add(payroll)
    try:
        await db.flush()
    except IntegrityError as e:
        # 併發建立時由唯一鍵擋下；整個請求交由 get_db 回滾
        raise ConflictError("此期間薪資單已存在") from e
    await db.refresh(payroll)
    logger.info(
        "payroll created: id=%s user_id=%s period=%s/%s type=%s net=%s",
        payroll.id, payroll.user_id, payroll.month, payroll.year, payment_type, payroll.net_salary,
    )
    return payroll


async def get_or_create_monthly_payroll(db: AsyncSession, data: PayrollCreate) -> Tuple[Payroll, bool]:
    """已存在則原樣回傳 (payroll, False)；否則建立並回傳 (payroll, True)"""
    existing = await crud.get_payroll_for_period(db, data.user_id, data.month, data.year)
    if existing:
        return existing, False
    return await create_monthly_payroll(db, data), True


async def update_payroll(db: AsyncSession, payroll: Payroll, data: PayrollUpdate) -> Payroll:
    update_data = data.model_dump(exclude_unset=True)
    status = update_data.pop("status", None)
    if status is not None:
        status = status.strip().upper()
        if status != payroll.status:
            allowed = PAYROLL_STATUS_TRANSITIONS.get(payroll.status, ())
            if status not in allowed:
                raise ConflictError(f"薪資單狀態不可由 {payroll.status} 改為 {status}")
            payroll.status = status
    if "notes" in update_data:
        payroll.notes = update_data["notes"]
    await db.flush()
    await db.refresh(payroll)
    return payroll


async def delete_payroll(db: AsyncSession, payroll: Payroll) -> None:
    await db.delete(payroll)
    await db.flush()


# ---------- 重算 ----------
async def recalculate_monthly_payroll(db: AsyncSession, payroll_id: int) -> Payroll:
    payroll = await crud.get_payroll(db, payroll_id)
    if not payroll:
        raise NotFoundError("薪資單不存在")
    if payroll.payment_type != "HOURLY":
        logger.info("payroll %s is %s, skip hourly recalculation", payroll.id, payroll.payment_type)
        return payroll
    rate = payroll.hourly_rate
    if not rate or rate <= 0:
        raise ValidationError("薪資單缺少時薪，無法重算")

    hours, overtime = await compute_month_hours(db, payroll.user_id, payroll.month, payroll.year)
    base_salary = round_money(hours * rate)
    payroll.hours_worked = hours
    payroll.overtime_hours = overtime
    payroll.base_salary = base_salary
    payroll.net_salary = calculate_net_salary(base_salary, payroll.total_bonuses, payroll.total_deductions)
    payroll.last_recalculated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(payroll)
    logger.info(
        "payroll recalculated: id=%s hours=%s base=%s net=%s",
        payroll.id, payroll.hours_worked, payroll.base_salary, payroll.net_salary,
    )
    return payroll


@dataclass
class RecalculationOutcome:
    payroll_id: Optional[int] = None
    recalculated: bool = False
    warning: Optional[RecalculationWarning] = None


async def trigger_recalculation_for_date(db: AsyncSession, user_id: int, on_date: date) -> RecalculationOutcome:
    """
    若該員工該月已有薪資單則重算；在 SAVEPOINT 內執行，失敗只回滾重算本身。
    呼叫端的寫入（人工修正、簽退）不受影響，之後可再手動重算。
    """
    month, year = period_of(on_date)
    payroll_id: Optional[int] = None
    try:
        async with db.begin_nested():
            payroll = await crud.get_payroll_for_period(db, user_id, month, year)
            if not payroll:
                return RecalculationOutcome()
            payroll_id = payroll.id
            await recalculate_monthly_payroll(db, payroll_id)
    except Exception as e:
        logger.warning(
            "payroll recalculation failed: user_id=%s period=%s/%s payroll_id=%s",
            user_id, month, year, payroll_id, exc_info=True,
        )
        return RecalculationOutcome(
            payroll_id=payroll_id,
            warning=RecalculationWarning(f"薪資單重算失敗（{year}/{month}）：{e}"),
        )
    return RecalculationOutcome(payroll_id=payroll_id, recalculated=True)

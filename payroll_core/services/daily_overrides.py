"""
每日人工修正（主管用）。

修正列本身是當日的依據，一定先寫入；之後才觸發當月薪資單重算，重算失敗不回滾修正。
欄位為 null 表示沿用計算值，0 為明確覆寫，寫入時不把推導值回填到修正列。
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud
from payroll_core.config import settings
from payroll_core.database import dialect_insert
from payroll_core.errors import ConflictError, NotFoundError, ValidationError
from payroll_core.models import DailyPayrollOverride
from payroll_core.schemas import DailyOverrideUpsert
from payroll_core.services.daily_earnings import DailyEarnings, compute_daily_earnings
from payroll_core.services.monthly_payroll import RecalculationOutcome, trigger_recalculation_for_date

logger = logging.getLogger(__name__)

OVERRIDE_FIELDS = ("hourly_rate", "regular_hours", "overtime_hours", "total_hours", "earnings", "notes")


@dataclass
class OverrideOutcome:
    override: Optional[DailyPayrollOverride]
    daily: DailyEarnings
    recalculation: RecalculationOutcome


def validate_override(data: DailyOverrideUpsert, today: date) -> None:
    if data.date > today:
        raise ValidationError("不可為未來日期建立人工修正")
    max_hours = settings.max_daily_hours
    regular, overtime, total = data.regular_hours, data.overtime_hours, data.total_hours
    if total is not None and total > max_hours:
        raise ValidationError(f"單日總工時不可超過 {max_hours} 小時")
    if regular is not None or overtime is not None:
        parts = (regular or 0) + (overtime or 0)
        if parts > max_hours:
            raise ValidationError(f"單日總工時不可超過 {max_hours} 小時")
        if total is not None:
            if regular is not None and overtime is not None and parts != total:
                raise ValidationError("正常工時加加班工時須等於總工時")
            if parts > total:
                raise ValidationError("正常工時或加班工時不可超過總工時")


async def upsert_daily_override(
    db: AsyncSession,
    data: DailyOverrideUpsert,
    created_by: Optional[int] = None,
    today: Optional[date] = None,
) -> OverrideOutcome:
    """同一人同一天只有一筆；已存在則以本次內容整筆更新"""
    validate_override(data, today or date.today())
    await crud.require_employee(db, data.user_id)

    values = {k: getattr(data, k) for k in OVERRIDE_FIELDS}
    now = datetime.utcnow()
    stmt = (await dialect_insert(db, DailyPayrollOverride)).values(
        user_id=data.user_id,
        date=data.date,
        created_by=created_by,
        created_at=now,
        updated_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "date"],
        set_={**values, "updated_at": now},
    )
    try:
        await db.execute(stmt)
    except IntegrityError as e:
        raise ConflictError("此日期已有人工修正") from e

    override = await crud.get_daily_override(db, data.user_id, data.date)
    logger.info("daily override saved: user_id=%s date=%s by=%s", data.user_id, data.date, created_by)
    recalculation = await trigger_recalculation_for_date(db, data.user_id, data.date)
    daily = await compute_daily_earnings(db, data.user_id, data.date)
    return OverrideOutcome(override=override, daily=daily, recalculation=recalculation)


async def delete_daily_override(db: AsyncSession, user_id: int, on_date: date) -> OverrideOutcome:
    override = await crud.get_daily_override(db, user_id, on_date)
    if not override:
        raise NotFoundError("人工修正不存在")
    await db.delete(override)
    await db.flush()
    logger.info("daily override deleted: user_id=%s date=%s", user_id, on_date)
    recalculation = await trigger_recalculation_for_date(db, user_id, on_date)
    daily = await compute_daily_earnings(db, user_id, on_date)
    return OverrideOutcome(override=None, daily=daily, recalculation=recalculation)

"""時薪解析：某員工某日適用的時薪（時薪期間 > 員工預設時薪 > None 表示月薪制）。"""
import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core.models import Employee, HourlyRatePeriod

logger = logging.getLogger(__name__)


def pick_rate(
    periods: Sequence[HourlyRatePeriod],
    on_date: date,
    default_rate: Optional[Decimal],
) -> Optional[Decimal]:
    """
    從時薪期間挑出涵蓋 on_date 者。
    理論上期間不會重疊；若仍有多筆命中，取最早建立者並記錄資料異常警告。
    """
    matches = [p for p in periods if p.start_date <= on_date <= p.end_date]
    if not matches:
        return default_rate
    if len(matches) > 1:
        matches = sorted(matches, key=lambda p: (p.created_at, p.id))
        logger.warning(
            "hourly rate periods overlap: user_id=%s date=%s period_ids=%s, using period %s",
            matches[0].user_id, on_date, [p.id for p in matches], matches[0].id,
        )
    return matches[0].hourly_rate


async def list_rate_periods_between(
    db: AsyncSession, user_id: int, start: date, end: date
) -> list[HourlyRatePeriod]:
    """與 [start, end] 有交集的時薪期間，依建立順序排序"""
    r = await db.execute(
        select(HourlyRatePeriod)
        .where(
            HourlyRatePeriod.user_id == user_id,
            HourlyRatePeriod.start_date <= end,
            HourlyRatePeriod.end_date >= start,
        )
        .order_by(HourlyRatePeriod.created_at, HourlyRatePeriod.id)
    )
    return list(r.scalars().all())


async def get_hourly_rate_for_date(db: AsyncSession, user_id: int, on_date: date) -> Optional[Decimal]:
    periods = await list_rate_periods_between(db, user_id, on_date, on_date)
    emp = await db.get(Employee, user_id)
    default_rate = emp.hourly_rate if emp else None
    return pick_rate(periods, on_date, default_rate)

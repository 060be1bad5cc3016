"""
員工薪資統計。
本月與今年累計以每日解析結果計算（薪資單尚未建立也有數字）；歷年合計與平均以薪資單實發計算。
"""
from datetime import date
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud
from payroll_core.services.billing_period import last_day_of_month
from payroll_core.services.daily_earnings import compute_daily_earnings_between
from payroll_core.services.overtime import ZERO, round_hours, round_money


async def compute_payroll_stats(db: AsyncSession, user_id: int, today: date) -> dict:
    await crud.require_employee(db, user_id)
    days = await compute_daily_earnings_between(
        db, user_id, date(today.year, 1, 1), last_day_of_month(today.year, today.month)
    )
    current = [d for d in days.values() if d.date.month == today.month]

    payrolls = await crud.list_payrolls(db, user_id=user_id)
    all_time_total = sum((Decimal(p.net_salary) for p in payrolls), ZERO)
    average = all_time_total / len(payrolls) if payrolls else ZERO

    by_month = {p.month: p for p in payrolls if p.year == today.year}
    breakdown = []
    for month in range(1, 13):
        p = by_month.get(month)
        breakdown.append({
            "month": month,
            "earnings": p.net_salary if p else ZERO,
            "status": p.status if p else None,
        })

    return {
        "user_id": user_id,
        "current_month_earnings": round_money(sum((d.earnings for d in current), ZERO)),
        "current_month_hours": round_hours(sum((d.hours for d in current), ZERO)),
        "year_to_date_total": round_money(sum((d.earnings for d in days.values()), ZERO)),
        "year_to_date_hours": round_hours(sum((d.hours for d in days.values()), ZERO)),
        "all_time_total": round_money(all_time_total),
        "average_monthly_earnings": round_money(average),
        "pending_count": sum(1 for p in payrolls if p.status == "PENDING"),
        "payroll_count": len(payrolls),
        "monthly_breakdown": breakdown,
    }

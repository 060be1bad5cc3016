"""
加班計算之純函式（以週為單位）。

規則：
- 週以 ISO 週計（週一為第一天）。
- 某日的正常/加班時數只看「週一到當日（含）」的累計：
  累計超過 weekly_threshold_hours 的部分為加班，其餘為正常工時。
  之後同週新增的天數不會改變既有日期的分類。
- 正常薪資 = 正常時數 × 時薪；加班薪資 = 加班時數 × 時薪 × 加班倍率（預設 1.5）。
"""
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Tuple

HOURS_QUANT = Decimal("0.0001")
MONEY_QUANT = Decimal("0.01")
DEFAULT_OVERTIME_MULTIPLIER = Decimal("1.5")
ZERO = Decimal("0")


def round_hours(v: Decimal) -> Decimal:
    return Decimal(v).quantize(HOURS_QUANT, rounding=ROUND_HALF_UP)


def round_money(v: Decimal) -> Decimal:
    return Decimal(v).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def iso_week_start(d: date) -> date:
    """該日所屬 ISO 週的週一"""
    return d - timedelta(days=d.weekday())


def split_weekly_hours(
    prior_week_hours: Decimal,
    hours: Decimal,
    weekly_threshold_hours: Decimal,
) -> Tuple[Decimal, Decimal]:
    """
    依當週先前累計時數，把當日時數拆成 (正常, 加班)。
    prior_week_hours：同週、當日之前的累計時數。
    """
    hours = max(Decimal(hours), ZERO)
    remaining = Decimal(weekly_threshold_hours) - Decimal(prior_week_hours)
    regular = min(hours, max(remaining, ZERO))
    return regular, hours - regular


def calculate_regular_pay(regular_hours: Decimal, hourly_rate: Decimal) -> Decimal:
    return Decimal(regular_hours) * Decimal(hourly_rate)


def calculate_overtime_pay(
    overtime_hours: Decimal,
    hourly_rate: Decimal,
    multiplier: Decimal = DEFAULT_OVERTIME_MULTIPLIER,
) -> Decimal:
    return Decimal(overtime_hours) * Decimal(hourly_rate) * Decimal(multiplier)


def calculate_day_pay(
    regular_hours: Decimal,
    overtime_hours: Decimal,
    hourly_rate: Optional[Decimal],
    multiplier: Decimal = DEFAULT_OVERTIME_MULTIPLIER,
) -> Tuple[Decimal, Decimal, Decimal]:
    """回傳 (正常薪資, 加班薪資, 合計)，皆四捨五入到分；時薪未知時全為 0"""
    if hourly_rate is None:
        return ZERO, ZERO, ZERO
    regular_pay = round_money(calculate_regular_pay(regular_hours, hourly_rate))
    overtime_pay = round_money(calculate_overtime_pay(overtime_hours, hourly_rate, multiplier))
    return regular_pay, overtime_pay, regular_pay + overtime_pay

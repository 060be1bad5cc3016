"""
計薪月份之純函式：月初、月底、當月天數。
月薪資以「西元年 + 月份」為一期，期間為該月 1 日至月底（皆含）。
"""
from calendar import monthrange
from datetime import date
from typing import Tuple


def first_day_of_month(year: int, month: int) -> date:
    """指定年月的第一天"""
    return date(year, month, 1)


def last_day_of_month(year: int, month: int) -> date:
    """指定年月的最後一天"""
    _, last = monthrange(year, month)
    return date(year, month, last)


def days_in_month(year: int, month: int) -> int:
    return monthrange(year, month)[1]


def period_of(d: date) -> Tuple[int, int]:
    """回傳 (month, year)，與 Payroll 唯一鍵順序一致"""
    return d.month, d.year

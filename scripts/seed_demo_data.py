"""Seed 展示資料：一位主管、一位時薪員工（含時薪期間、加班規則與一週出勤）、一位月薪員工（需先執行 alembic upgrade）"""
import asyncio
import sys
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path

# 專案根目錄
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sqlalchemy import select
from payroll_core.database import AsyncSessionLocal
from payroll_core.models import AttendanceRecord, Employee, HourlyRatePeriod, OvertimeConfig


async def run(week_start: date):
    async with AsyncSessionLocal() as db:
        r = await db.execute(select(Employee).where(Employee.email == "manager@example.com"))
        if r.scalar_one_or_none():
            print("展示資料已存在，略過。")
            return

        mgr = Employee(name="王主管", email="manager@example.com", role="MANAGER", company_id=1)
        db.add(mgr)
        await db.flush()

        hourly = Employee(
            name="陳小華", email="hourly@example.com", role="EMPLOYEE", company_id=1,
            manager_id=mgr.id, payment_type="HOURLY", hourly_rate=Decimal("20"),
        )
        salaried = Employee(
            name="林月薪", email="salary@example.com", role="EMPLOYEE", company_id=1,
            manager_id=mgr.id, payment_type="SALARY", monthly_salary=Decimal("50000"),
        )
        db.add_all([hourly, salaried])
        await db.flush()

        db.add(OvertimeConfig(
            user_id=hourly.id, weekly_threshold_hours=Decimal("40"), overtime_multiplier=Decimal("1.5"),
            created_by=mgr.id,
        ))
        db.add(HourlyRatePeriod(
            user_id=hourly.id, start_date=week_start, end_date=week_start + timedelta(days=6),
            hourly_rate=Decimal("22"), created_by=mgr.id,
        ))

        # 週一至週四各 10 小時、週五 4 小時：週五全為加班
        for offset, hours in enumerate((10, 10, 10, 10, 4)):
            d = week_start + timedelta(days=offset)
            start = datetime.combine(d, datetime.min.time()).replace(hour=8)
            db.add(AttendanceRecord(
                user_id=hourly.id, date=d, check_in_time=start, first_check_in_time=start,
                check_out_time=start + timedelta(hours=hours),
            ))
        await db.commit()
        print(f"已建立展示員工：{mgr.name}、{hourly.name}、{salaried.name}（出勤週 {week_start}）")
    print("Seed 完成。")


if __name__ == "__main__":
    today = date.today()
    last_monday = today - timedelta(days=today.weekday() + 7)
    asyncio.run(run(last_monday))

"""
出勤簽到/簽退與自動簽退。

- 一人一天一筆出勤紀錄；簽到以 INSERT ... ON CONFLICT DO NOTHING 建立列，
  再以條件式 UPDATE 寫入簽到時間，兩個同時簽到的請求只會有一個成功。
- 已簽退後可再簽到（覆寫最近一次簽到時間，保留當日第一次簽到）。
- 每次簽到/簽退另寫一筆 AttendanceEvent，notes 僅存員工備註。
- 簽退與自動簽退後觸發當月薪資單重算（失敗只記錄警告）。
"""
import logging
from datetime import date, datetime, time, timedelta
from typing import Optional, Set, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud
from payroll_core.config import settings
from payroll_core.database import dialect_insert
from payroll_core.errors import ConflictError, ValidationError
from payroll_core.models import AttendanceEvent, AttendanceRecord
from payroll_core.services.monthly_payroll import RecalculationOutcome, trigger_recalculation_for_date

logger = logging.getLogger(__name__)

# 自動簽退補在出勤日當天最後一秒
AUTO_CHECKOUT_TIME = time(23, 59, 59)


async def check_in(
    db: AsyncSession,
    user_id: int,
    on_date: Optional[date] = None,
    at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> AttendanceRecord:
    at = at or datetime.utcnow()
    on_date = on_date or at.date()
    await crud.require_employee(db, user_id)

    ins = (await dialect_insert(db, AttendanceRecord)).values(
        user_id=user_id, date=on_date, status="PRESENT", created_at=at, updated_at=at,
    )
    await db.execute(ins.on_conflict_do_nothing(index_elements=["user_id", "date"]))

    values = {
        "check_in_time": at,
        "check_out_time": None,
        "first_check_in_time": func.coalesce(AttendanceRecord.first_check_in_time, at),
        "status": "PRESENT",
        "updated_at": at,
    }
    if notes is not None:
        values["notes"] = notes
    r = await db.execute(
        update(AttendanceRecord)
        .where(
            AttendanceRecord.user_id == user_id,
            AttendanceRecord.date == on_date,
            or_(AttendanceRecord.check_in_time.is_(None), AttendanceRecord.check_out_time.is_not(None)),
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if r.rowcount == 0:
        raise ConflictError("已簽到，請先簽退")

    record = await crud.get_attendance(db, user_id, on_date)
    db.add(AttendanceEvent(attendance_id=record.id, event_type="in", occurred_at=at, source="manual"))
    await db.flush()
    return await crud.get_attendance(db, user_id, on_date, load_events=True)


async def check_out(
    db: AsyncSession,
    user_id: int,
    on_date: Optional[date] = None,
    at: Optional[datetime] = None,
    notes: Optional[str] = None,
) -> Tuple[AttendanceRecord, RecalculationOutcome]:
    """已簽退者可再簽退（更新簽退時間）"""
    at = at or datetime.utcnow()
    on_date = on_date or at.date()
    record = await crud.get_attendance(db, user_id, on_date)
    if not record or record.check_in_time is None:
        raise ValidationError("此日期尚未簽到，請先簽到")
    if abs(at - record.check_in_time) > timedelta(hours=float(settings.max_daily_hours)):
        raise ValidationError(f"單日工時不可超過 {settings.max_daily_hours} 小時")

    values = {"check_out_time": at, "updated_at": at}
    if notes is not None:
        values["notes"] = notes
    r = await db.execute(
        update(AttendanceRecord)
        .where(AttendanceRecord.id == record.id, AttendanceRecord.check_in_time.is_not(None))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if r.rowcount == 0:
        raise ConflictError("出勤紀錄已變更，請重新操作")
    db.add(AttendanceEvent(attendance_id=record.id, event_type="out", occurred_at=at, source="manual"))
    await db.flush()

    recalculation = await trigger_recalculation_for_date(db, user_id, on_date)
    record = await crud.get_attendance(db, user_id, on_date, load_events=True)
    return record, recalculation


async def auto_checkout_previous_days(db: AsyncSession, today: date, user_id: Optional[int] = None) -> int:
    """today 以前仍未簽退的紀錄，補簽退於出勤日 23:59:59；回傳補簽退筆數"""
    q = select(AttendanceRecord).where(
        AttendanceRecord.date < today,
        AttendanceRecord.check_in_time.is_not(None),
        AttendanceRecord.check_out_time.is_(None),
    )
    if user_id is not None:
        q = q.where(AttendanceRecord.user_id == user_id)
    r = await db.execute(q.order_by(AttendanceRecord.date, AttendanceRecord.id))
    records = list(r.scalars().all())

    closed = 0
    touched: Set[Tuple[int, date]] = set()
    for rec in records:
        closing = datetime.combine(rec.date, AUTO_CHECKOUT_TIME)
        res = await db.execute(
            update(AttendanceRecord)
            .where(AttendanceRecord.id == rec.id, AttendanceRecord.check_out_time.is_(None))
            .values(check_out_time=closing, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            continue
        db.add(AttendanceEvent(attendance_id=rec.id, event_type="out", occurred_at=closing, source="auto"))
        closed += 1
        touched.add((rec.user_id, rec.date.replace(day=1)))
    await db.flush()

    # 同一人同一月只重算一次
    for uid, month_start in sorted(touched):
        await trigger_recalculation_for_date(db, uid, month_start)
    if closed:
        logger.info("auto checkout closed %s attendance records before %s", closed, today)
    return closed


async def run_scheduled_auto_checkout() -> int:
    """排程用：自建 Session 執行一次自動簽退並提交"""
    from payroll_core.database import AsyncSessionLocal
    async with AsyncSessionLocal() as db:
        closed = await auto_checkout_previous_days(db, datetime.utcnow().date())
        await db.commit()
    return closed

"""出勤簽到/簽退 API；簽退後自動重算當月薪資單"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager
from payroll_core.services import attendance as attendance_service

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post("/check-in", response_model=schemas.AttendanceRead, status_code=201)
async def check_in(
    data: schemas.CheckInRequest,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        record = await attendance_service.check_in(db, identity.user_id, on_date=data.date, notes=data.notes)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.AttendanceRead.model_validate(record)


@router.post("/check-out", response_model=schemas.CheckOutResult)
async def check_out(
    data: schemas.CheckOutRequest,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        record, recalculation = await attendance_service.check_out(
            db, identity.user_id, on_date=data.date, notes=data.notes
        )
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.CheckOutResult(
        attendance=schemas.AttendanceRead.model_validate(record),
        recalculated_payroll_id=recalculation.payroll_id if recalculation.recalculated else None,
        recalculation_warning=str(recalculation.warning) if recalculation.warning else None,
    )


@router.get("", response_model=List[schemas.AttendanceRead])
async def list_attendance(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    user_id: Optional[int] = Query(None, description="未填為本人；員工只能查本人"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    if user_id is None or identity.is_employee:
        user_id = identity.user_id
    records = await crud.list_attendance_for_month(db, user_id, month, year)
    return [schemas.AttendanceRead.model_validate(r) for r in records]


@router.post("/auto-checkout", response_model=schemas.AutoCheckoutResult)
async def auto_checkout(
    today: Optional[date] = Query(None, description="此日以前未簽退者補簽退；未填為今日"),
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """手動觸發自動簽退（排程每日亦會執行）"""
    require_manager(identity)
    closed = await attendance_service.auto_checkout_previous_days(db, today or date.today(), user_id=user_id)
    return schemas.AutoCheckoutResult(checked_out=closed)

"""時薪期間 CRUD；同一員工期間不可重疊（409）"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager

router = APIRouter(prefix="/api/payroll/hourly-rates", tags=["hourly-rates"])

RESPONSE_404 = {404: {"description": "時薪期間不存在"}}


@router.get("", response_model=List[schemas.HourlyRatePeriodRead])
async def list_hourly_rates(
    user_id: Optional[int] = Query(None),
    start_date: Optional[date] = Query(None, description="與此日之後有交集"),
    end_date: Optional[date] = Query(None, description="與此日之前有交集"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    if identity.is_employee:
        user_id = identity.user_id
    return await crud.list_rate_periods(db, user_id=user_id, start_date=start_date, end_date=end_date)


@router.post("", response_model=schemas.HourlyRatePeriodRead, status_code=201)
async def create_hourly_rate(
    data: schemas.HourlyRatePeriodCreate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    try:
        return await crud.create_rate_period(db, data, created_by=identity.user_id)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{period_id}", response_model=schemas.HourlyRatePeriodRead, responses=RESPONSE_404)
async def get_hourly_rate(period_id: int, db: AsyncSession = Depends(get_db)):
    p = await crud.get_rate_period(db, period_id)
    if not p:
        raise HTTPException(status_code=404, detail="時薪期間不存在")
    return p


@router.patch("/{period_id}", response_model=schemas.HourlyRatePeriodRead, responses=RESPONSE_404)
async def update_hourly_rate(
    period_id: int,
    data: schemas.HourlyRatePeriodUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    p = await crud.get_rate_period(db, period_id)
    if not p:
        raise HTTPException(status_code=404, detail="時薪期間不存在")
    try:
        return await crud.update_rate_period(db, p, data)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{period_id}", status_code=204, responses=RESPONSE_404)
async def delete_hourly_rate(
    period_id: int,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    p = await crud.get_rate_period(db, period_id)
    if not p:
        raise HTTPException(status_code=404, detail="時薪期間不存在")
    await crud.delete_rate_period(db, p)

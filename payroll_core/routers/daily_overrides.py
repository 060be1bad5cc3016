"""每日人工修正 API（主管用）：寫入後重算當月薪資單，重算失敗以 recalculation_warning 回傳"""
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager
from payroll_core.services import daily_overrides as override_service

router = APIRouter(prefix="/api/payroll/daily-override", tags=["daily-override"])


def _to_result(outcome: override_service.OverrideOutcome) -> schemas.DailyOverrideResult:
    recalculation = outcome.recalculation
    return schemas.DailyOverrideResult(
        override=schemas.DailyOverrideRead.model_validate(outcome.override) if outcome.override else None,
        daily=schemas.DailyEarningsRead(**outcome.daily.to_dict()),
        recalculated_payroll_id=recalculation.payroll_id if recalculation.recalculated else None,
        recalculation_warning=str(recalculation.warning) if recalculation.warning else None,
    )


@router.get("", response_model=List[schemas.DailyOverrideRead])
async def list_daily_overrides(
    user_id: int = Query(...),
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    if identity.is_employee:
        user_id = identity.user_id
    return await crud.list_daily_overrides(db, user_id, month, year)


@router.post("", response_model=schemas.DailyOverrideResult, status_code=201)
async def upsert_daily_override(
    data: schemas.DailyOverrideUpsert,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """新增或更新某員工某日的人工修正；欄位留空表示沿用計算值"""
    require_manager(identity)
    try:
        outcome = await override_service.upsert_daily_override(db, data, created_by=identity.user_id)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return _to_result(outcome)


@router.delete("", response_model=schemas.DailyOverrideResult)
async def delete_daily_override(
    user_id: int = Query(...),
    on_date: date = Query(..., alias="date", description="YYYY-MM-DD"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    try:
        outcome = await override_service.delete_daily_override(db, user_id, on_date)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return _to_result(outcome)

"""月薪資單 API：建立、列表、狀態、重算、每日工時/薪資、統計、匯出 Excel、提出修改申請"""
import io
from datetime import date
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager
from payroll_core.services import edit_requests as edit_request_service
from payroll_core.services import monthly_payroll
from payroll_core.services.daily_earnings import compute_daily_earnings, compute_daily_earnings_for_month
from payroll_core.services.payroll_export import build_payroll_excel, payroll_export_row
from payroll_core.services.payroll_stats import compute_payroll_stats
from payroll_core.utils.http_headers import build_content_disposition

router = APIRouter(prefix="/api/payroll", tags=["payroll"])

RESPONSE_404 = {404: {"description": "薪資單不存在"}}


def _own_or_requested(identity: IdentityContext, user_id: Optional[int]) -> int:
    """員工只能查本人；管理員未指定時亦為本人"""
    if user_id is None or identity.is_employee:
        return identity.user_id
    return user_id


@router.get("", response_model=List[schemas.PayrollRead])
async def list_payrolls(
    user_id: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=2000),
    status: Optional[str] = Query(None, description="PENDING / APPROVED / REJECTED / PAID"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    if identity.is_employee:
        user_id = identity.user_id
    return await crud.list_payrolls(
        db, user_id=user_id, month=month, year=year, status=status.strip().upper() if status else None
    )


@router.post("", response_model=schemas.PayrollRead, status_code=201)
async def create_payroll(
    data: schemas.PayrollCreate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """同一員工同一年月已有薪資單時回 409"""
    require_manager(identity)
    try:
        return await monthly_payroll.create_monthly_payroll(db, data)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/daily-earnings", response_model=schemas.DailyEarningsRead)
async def get_daily_earnings(
    on_date: date = Query(..., alias="date", description="YYYY-MM-DD"),
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        day = await compute_daily_earnings(db, _own_or_requested(identity, user_id), on_date)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.DailyEarningsRead(**day.to_dict())


@router.get("/calendar", response_model=schemas.MonthlyDailyEarnings)
async def get_monthly_calendar(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """當月每一天的工時與薪資（日曆用）"""
    uid = _own_or_requested(identity, user_id)
    try:
        days = await compute_daily_earnings_for_month(db, uid, month, year)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.MonthlyDailyEarnings(
        user_id=uid,
        month=month,
        year=year,
        days={d.day: schemas.DailyEarningsRead(**v.to_dict()) for d, v in days.items()},
        total_hours=sum((v.hours for v in days.values()), Decimal("0")),
        total_earnings=sum((v.earnings for v in days.values()), Decimal("0")),
    )


@router.get("/hours-worked", response_model=schemas.HoursWorkedRead)
async def get_hours_worked(
    month: int = Query(..., ge=1, le=12),
    year: int = Query(..., ge=2000),
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    uid = _own_or_requested(identity, user_id)
    try:
        hours, overtime = await monthly_payroll.compute_month_hours(db, uid, month, year)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.HoursWorkedRead(user_id=uid, month=month, year=year, hours_worked=hours, overtime_hours=overtime)


@router.get("/stats", response_model=schemas.PayrollStats)
async def get_payroll_stats(
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    try:
        stats = await compute_payroll_stats(db, _own_or_requested(identity, user_id), date.today())
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return schemas.PayrollStats(**stats)


@router.get("/export")
async def export_payrolls(
    year: int = Query(..., ge=2000, description="西元年"),
    month: int = Query(..., ge=1, le=12, description="月份"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """匯出某月全部薪資單為 Excel"""
    require_manager(identity)
    payrolls = await crud.list_payrolls(db, month=month, year=year)
    rows = []
    for p in sorted(payrolls, key=lambda x: x.user_id):
        rows.append(payroll_export_row(p, await crud.get_employee(db, p.user_id)))
    content = build_payroll_excel(rows, sheet_name=f"{year}-{month:02d}")
    ascii_name = f"payroll_{year}_{month:02d}.xlsx"
    unicode_name = f"月薪資_{year}_{month:02d}.xlsx"
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": build_content_disposition(ascii_name, unicode_name)},
    )


@router.get("/{payroll_id}", response_model=schemas.PayrollRead, responses=RESPONSE_404)
async def get_payroll(
    payroll_id: int,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    p = await crud.get_payroll(db, payroll_id)
    if not p or (identity.is_employee and p.user_id != identity.user_id):
        raise HTTPException(status_code=404, detail="薪資單不存在")
    return p


@router.patch("/{payroll_id}", response_model=schemas.PayrollRead, responses=RESPONSE_404)
async def update_payroll(
    payroll_id: int,
    data: schemas.PayrollUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """只可改狀態與備註；金額請走修改申請"""
    require_manager(identity)
    p = await crud.get_payroll(db, payroll_id)
    if not p:
        raise HTTPException(status_code=404, detail="薪資單不存在")
    try:
        return await monthly_payroll.update_payroll(db, p, data)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/{payroll_id}", status_code=204, responses=RESPONSE_404)
async def delete_payroll(
    payroll_id: int,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    p = await crud.get_payroll(db, payroll_id)
    if not p:
        raise HTTPException(status_code=404, detail="薪資單不存在")
    await monthly_payroll.delete_payroll(db, p)


@router.post("/{payroll_id}/recalculate", response_model=schemas.PayrollRead, responses=RESPONSE_404)
async def recalculate_payroll(
    payroll_id: int,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """依目前出勤與人工修正重算時薪制薪資單；月薪制原樣回傳"""
    require_manager(identity)
    try:
        return await monthly_payroll.recalculate_monthly_payroll(db, payroll_id)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{payroll_id}/edit-request", response_model=schemas.EditRequestRead, status_code=201, responses=RESPONSE_404)
async def create_edit_request(
    payroll_id: int,
    data: schemas.EditRequestCreate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    p = await crud.get_payroll(db, payroll_id)
    if not p or (identity.is_employee and p.user_id != identity.user_id):
        raise HTTPException(status_code=404, detail="薪資單不存在")
    try:
        return await edit_request_service.create_edit_request(db, payroll_id, identity, data.changes, data.notes)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

"""加班規則 CRUD：一員工一筆，未設定者套用預設（每週 40 小時、1.5 倍）"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager

router = APIRouter(prefix="/api/payroll/overtime-config", tags=["overtime-config"])

RESPONSE_404 = {404: {"description": "加班規則不存在"}}


@router.get("", response_model=List[schemas.OvertimeConfigRead])
async def list_overtime_configs(
    user_id: Optional[int] = Query(None),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    if identity.is_employee:
        user_id = identity.user_id
    return await crud.list_overtime_configs(db, user_id=user_id)


@router.post("", response_model=schemas.OvertimeConfigRead, status_code=201)
async def create_overtime_config(
    data: schemas.OvertimeConfigCreate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    try:
        return await crud.create_overtime_config(db, data, created_by=identity.user_id)
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{config_id}", response_model=schemas.OvertimeConfigRead, responses=RESPONSE_404)
async def get_overtime_config(config_id: int, db: AsyncSession = Depends(get_db)):
    c = await crud.get_overtime_config_by_id(db, config_id)
    if not c:
        raise HTTPException(status_code=404, detail="加班規則不存在")
    return c


@router.patch("/{config_id}", response_model=schemas.OvertimeConfigRead, responses=RESPONSE_404)
async def update_overtime_config(
    config_id: int,
    data: schemas.OvertimeConfigUpdate,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    c = await crud.get_overtime_config_by_id(db, config_id)
    if not c:
        raise HTTPException(status_code=404, detail="加班規則不存在")
    return await crud.update_overtime_config(db, c, data)


@router.delete("/{config_id}", status_code=204, responses=RESPONSE_404)
async def delete_overtime_config(
    config_id: int,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    require_manager(identity)
    c = await crud.get_overtime_config_by_id(db, config_id)
    if not c:
        raise HTTPException(status_code=404, detail="加班規則不存在")
    await crud.delete_overtime_config(db, c)

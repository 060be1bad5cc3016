"""薪資修改申請：列表、查詢、核准/駁回"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_core import crud, schemas
from payroll_core.database import get_db
from payroll_core.errors import PayrollError
from payroll_core.identity import IdentityContext, get_identity, require_manager
from payroll_core.services import edit_requests as edit_request_service

router = APIRouter(prefix="/api/payroll/edit-requests", tags=["edit-requests"])

RESPONSE_404 = {404: {"description": "薪資修改申請不存在"}}


@router.get("", response_model=List[schemas.EditRequestRead])
async def list_edit_requests(
    status: Optional[str] = Query(None, description="PENDING / APPROVED / REJECTED"),
    payroll_id: Optional[int] = Query(None),
    assigned_to_me: bool = Query(False, description="只列出指派給我的申請"),
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """員工只看得到自己提出的申請"""
    return await crud.list_edit_requests(
        db,
        payroll_id=payroll_id,
        assigned_to=identity.user_id if assigned_to_me else None,
        requested_by=identity.user_id if identity.is_employee else None,
        status=status.strip().upper() if status else None,
    )


@router.get("/{request_id}", response_model=schemas.EditRequestRead, responses=RESPONSE_404)
async def get_edit_request(request_id: int, db: AsyncSession = Depends(get_db)):
    req = await crud.get_edit_request(db, request_id)
    if not req:
        raise HTTPException(status_code=404, detail="薪資修改申請不存在")
    return req


@router.patch("/{request_id}", response_model=schemas.EditRequestRead, responses=RESPONSE_404)
async def resolve_edit_request(
    request_id: int,
    data: schemas.EditRequestDecision,
    identity: IdentityContext = Depends(get_identity),
    db: AsyncSession = Depends(get_db),
):
    """核准（套用變更並重算實發）或駁回；已結案的申請回 409"""
    require_manager(identity)
    try:
        return await edit_request_service.resolve_edit_request(
            db, request_id, data.status, approver_id=identity.user_id, notes=data.notes
        )
    except PayrollError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

"""
呼叫者身分：由前端閘道（身分系統）驗證後以 Header 帶入，本服務只讀取不驗證。
X-User-Id / X-User-Role / X-Company-Id
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from payroll_core.models import EMPLOYEE_ROLES

MANAGER_ROLES = ("SUPER_ADMIN", "COMPANY_ADMIN", "MANAGER")


@dataclass(frozen=True)
class IdentityContext:
    user_id: int
    role: str
    company_id: Optional[int] = None

    @property
    def is_employee(self) -> bool:
        return self.role == "EMPLOYEE"


def get_identity(
    x_user_id: Optional[int] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_company_id: Optional[int] = Header(None),
) -> IdentityContext:
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="缺少 X-User-Id")
    role = (x_user_role or "EMPLOYEE").strip().upper()
    if role not in EMPLOYEE_ROLES:
        raise HTTPException(status_code=400, detail=f"不支援的角色：{role}")
    return IdentityContext(user_id=x_user_id, role=role, company_id=x_company_id)


def require_manager(identity: IdentityContext) -> IdentityContext:
    """人工修正、時薪期間、加班規則限主管以上操作"""
    if identity.role not in MANAGER_ROLES:
        raise HTTPException(status_code=403, detail="僅管理員或主管可執行此操作")
    return identity

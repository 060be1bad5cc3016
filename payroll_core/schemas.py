"""API 請求/回應結構 - Pydantic（出勤、時薪期間、加班規則、每日修正、月薪資、修改申請）"""
from datetime import date, datetime
from decimal import Decimal

# 別名：欄位名 date 與型別 date 會觸發 Pydantic 的 field name clashing，改用 DateType 註解
DateType = date
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator


# ---------- 出勤 ----------
class CheckInRequest(BaseModel):
    date: Optional[DateType] = Field(None, description="出勤日；未填為今日")
    notes: Optional[str] = None


class CheckOutRequest(BaseModel):
    date: Optional[DateType] = Field(None, description="出勤日；未填為今日")
    notes: Optional[str] = None


class AttendanceEventRead(BaseModel):
    id: int
    event_type: str
    occurred_at: datetime
    source: str
    model_config = ConfigDict(from_attributes=True)


class AttendanceRead(BaseModel):
    id: int
    user_id: int
    date: DateType
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    first_check_in_time: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    events: List[AttendanceEventRead] = []
    model_config = ConfigDict(from_attributes=True)


class AutoCheckoutResult(BaseModel):
    checked_out: int = Field(..., description="本次補簽退筆數")


class CheckOutResult(BaseModel):
    attendance: AttendanceRead
    recalculated_payroll_id: Optional[int] = None
    recalculation_warning: Optional[str] = None


# ---------- 時薪期間 ----------
class HourlyRatePeriodCreate(BaseModel):
    user_id: int
    start_date: DateType
    end_date: DateType
    hourly_rate: Decimal = Field(..., gt=0)

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date 不可晚於 end_date")
        return self


class HourlyRatePeriodUpdate(BaseModel):
    start_date: Optional[DateType] = None
    end_date: Optional[DateType] = None
    hourly_rate: Optional[Decimal] = Field(None, gt=0)


class HourlyRatePeriodRead(BaseModel):
    id: int
    user_id: int
    start_date: DateType
    end_date: DateType
    hourly_rate: Decimal
    created_by: Optional[int] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 加班規則 ----------
class OvertimeConfigCreate(BaseModel):
    user_id: int
    weekly_threshold_hours: Decimal = Field(Decimal("40"), gt=0, le=168)
    overtime_multiplier: Decimal = Field(Decimal("1.5"), ge=1)


class OvertimeConfigUpdate(BaseModel):
    weekly_threshold_hours: Optional[Decimal] = Field(None, gt=0, le=168)
    overtime_multiplier: Optional[Decimal] = Field(None, ge=1)


class OvertimeConfigRead(BaseModel):
    id: int
    user_id: int
    weekly_threshold_hours: Decimal
    overtime_multiplier: Decimal
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)


# ---------- 每日人工修正 ----------
class DailyOverrideUpsert(BaseModel):
    """欄位未填（null）= 沿用計算值；填 0 亦視為明確覆寫"""
    user_id: int
    date: DateType
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    regular_hours: Optional[Decimal] = Field(None, ge=0)
    overtime_hours: Optional[Decimal] = Field(None, ge=0)
    total_hours: Optional[Decimal] = Field(None, ge=0)
    earnings: Optional[Decimal] = Field(None, ge=0)
    notes: Optional[str] = None


class DailyOverrideRead(BaseModel):
    id: int
    user_id: int
    date: DateType
    hourly_rate: Optional[Decimal] = None
    regular_hours: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    total_hours: Optional[Decimal] = None
    earnings: Optional[Decimal] = None
    notes: Optional[str] = None
    created_by: Optional[int] = None
    model_config = ConfigDict(from_attributes=True)


class DailyEarningsRead(BaseModel):
    date: DateType
    hours: Decimal
    earnings: Decimal
    hourly_rate: Optional[Decimal] = None
    regular_hours: Decimal
    overtime_hours: Decimal
    regular_pay: Decimal
    overtime_pay: Decimal
    is_override: bool = False
    anomalies: List[str] = []


class DailyOverrideResult(BaseModel):
    override: Optional[DailyOverrideRead] = None
    daily: DailyEarningsRead
    recalculated_payroll_id: Optional[int] = None
    recalculation_warning: Optional[str] = None


class MonthlyDailyEarnings(BaseModel):
    user_id: int
    month: int
    year: int
    days: Dict[int, DailyEarningsRead]
    total_hours: Decimal
    total_earnings: Decimal


class HoursWorkedRead(BaseModel):
    user_id: int
    month: int
    year: int
    hours_worked: Decimal
    overtime_hours: Decimal


# ---------- 月薪資 ----------
class PayItem(BaseModel):
    """獎金/扣款項目"""
    label: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)


class PayrollCreate(BaseModel):
    user_id: int
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=2000)
    payment_type: Optional[str] = Field(None, description="HOURLY/SALARY；未填取員工預設")
    base_salary: Optional[Decimal] = Field(None, ge=0)
    hours_worked: Optional[Decimal] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    bonuses: List[PayItem] = []
    deductions: List[PayItem] = []
    notes: Optional[str] = None

    @field_validator("payment_type")
    @classmethod
    def check_payment_type(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip().upper()
        if v not in ("HOURLY", "SALARY"):
            raise ValueError("payment_type 須為 HOURLY 或 SALARY")
        return v


class PayrollUpdate(BaseModel):
    status: Optional[str] = None
    notes: Optional[str] = None


class PayrollRead(BaseModel):
    id: int
    user_id: int
    month: int
    year: int
    payment_type: str
    hours_worked: Optional[Decimal] = None
    overtime_hours: Optional[Decimal] = None
    hourly_rate: Optional[Decimal] = None
    base_salary: Decimal
    bonuses: List[PayItem] = []
    deductions: List[PayItem] = []
    total_bonuses: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    status: str
    notes: Optional[str] = None
    last_recalculated_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(from_attributes=True)

    @field_validator("bonuses", "deductions", mode="before")
    @classmethod
    def none_as_empty(cls, v):
        return v or []


class MonthlyBreakdownItem(BaseModel):
    month: int
    earnings: Decimal
    status: Optional[str] = None


class PayrollStats(BaseModel):
    user_id: int
    current_month_earnings: Decimal
    current_month_hours: Decimal
    year_to_date_total: Decimal
    year_to_date_hours: Decimal
    all_time_total: Decimal
    average_monthly_earnings: Decimal
    pending_count: int
    payroll_count: int
    monthly_breakdown: List[MonthlyBreakdownItem] = []


# ---------- 薪資修改申請 ----------
class PayrollChanges(BaseModel):
    """欲修改的欄位；只套用有填的欄位，bonuses/deductions 整批取代"""
    hours_worked: Optional[Decimal] = Field(None, ge=0)
    hourly_rate: Optional[Decimal] = Field(None, ge=0)
    base_salary: Optional[Decimal] = Field(None, ge=0)
    overtime_hours: Optional[Decimal] = Field(None, ge=0)
    bonuses: Optional[List[PayItem]] = None
    deductions: Optional[List[PayItem]] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_not_empty(self):
        if not self.model_fields_set:
            raise ValueError("changes 至少需包含一個欄位")
        return self


class EditRequestCreate(BaseModel):
    changes: PayrollChanges
    notes: Optional[str] = None


class EditRequestDecision(BaseModel):
    status: str = Field(..., description="APPROVED / REJECTED")
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in ("APPROVED", "REJECTED"):
            raise ValueError("status 須為 APPROVED 或 REJECTED")
        return v


class EditRequestRead(BaseModel):
    id: int
    payroll_id: int
    requested_by: int
    assigned_to: int
    status: str
    changes: dict
    original_data: dict
    notes: Optional[str] = None
    approved_by: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)

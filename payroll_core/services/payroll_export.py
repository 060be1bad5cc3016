"""月薪資單匯出 Excel（與薪資單列表欄位一致）。"""
import io
from typing import Any, Dict, List

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, Side

from payroll_core.models import Employee, Payroll


EXCEL_HEADERS = [
    "員工編號", "員工", "年", "月", "計薪方式", "總工時", "加班時數", "時薪", "底薪",
    "獎金合計", "扣款合計", "實發", "狀態", "最近重算",
]

PAYMENT_TYPE_LABELS = {"HOURLY": "時薪", "SALARY": "月薪"}
STATUS_LABELS = {"PENDING": "待審核", "APPROVED": "已核准", "REJECTED": "已駁回", "PAID": "已發放"}


def payroll_export_row(payroll: Payroll, employee: Employee = None) -> Dict[str, Any]:
    return {
        "user_id": payroll.user_id,
        "employee": employee.name if employee else "",
        "year": payroll.year,
        "month": payroll.month,
        "payment_type": payroll.payment_type,
        "hours_worked": payroll.hours_worked,
        "overtime_hours": payroll.overtime_hours,
        "hourly_rate": payroll.hourly_rate,
        "base_salary": payroll.base_salary,
        "total_bonuses": payroll.total_bonuses,
        "total_deductions": payroll.total_deductions,
        "net_salary": payroll.net_salary,
        "status": payroll.status,
        "last_recalculated_at": payroll.last_recalculated_at,
    }


def _num(v):
    return float(v) if v is not None else None


def _write_headers(ws, row_idx: int) -> None:
    thin = Side(style="thin")
    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for col, h in enumerate(EXCEL_HEADERS, start=1):
        cell = ws.cell(row=row_idx, column=col, value=h)
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)


def _write_data_row(ws, row_idx: int, row: Dict[str, Any]) -> None:
    recalculated = row.get("last_recalculated_at")
    values = [
        row.get("user_id"),
        row.get("employee") or "",
        row.get("year"),
        row.get("month"),
        PAYMENT_TYPE_LABELS.get(row.get("payment_type"), row.get("payment_type") or ""),
        _num(row.get("hours_worked")),
        _num(row.get("overtime_hours")),
        _num(row.get("hourly_rate")),
        _num(row.get("base_salary")),
        _num(row.get("total_bonuses")),
        _num(row.get("total_deductions")),
        _num(row.get("net_salary")),
        STATUS_LABELS.get(row.get("status"), row.get("status") or ""),
        recalculated.strftime("%Y-%m-%d %H:%M") if recalculated else "",
    ]
    for col, v in enumerate(values, start=1):
        ws.cell(row=row_idx, column=col, value=v)


def _apply_default_width(ws) -> None:
    for col in range(1, len(EXCEL_HEADERS) + 1):
        ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 14


def build_payroll_excel(rows: List[Dict[str, Any]], sheet_name: str = "月薪資") -> bytes:
    """依 payroll_export_row 的結構產生 Excel 二進位內容；最後一列為實發合計"""
    wb = Workbook()
    ws = wb.active
    ws.title = sheet_name[:31]  # Excel 表單名稱長度限制

    _write_headers(ws, 1)
    row_idx = 1
    for row_idx, row in enumerate(rows, start=2):
        _write_data_row(ws, row_idx, row)
    if rows:
        total_row = row_idx + 1
        ws.cell(row=total_row, column=1, value="合計").font = Font(bold=True)
        ws.cell(row=total_row, column=12, value=sum(_num(r.get("net_salary")) or 0 for r in rows))
    _apply_default_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()

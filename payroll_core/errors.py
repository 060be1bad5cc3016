"""計薪錯誤分類：驗證錯誤、衝突、找不到資料；重算失敗只記錄不拋出；資料異常修正後記錄。"""
from dataclasses import dataclass


class PayrollError(ValueError):
    """計薪核心錯誤基底；status_code 供 API 對應 HTTP 狀態碼"""
    status_code = 400


class ValidationError(PayrollError):
    """輸入不合法（日期格式、單日工時超過 24 小時、金額為負等），寫入前即拒絕"""
    status_code = 400


class ConflictError(PayrollError):
    """唯一性衝突：同月份薪資重複、時薪期間重疊、加班規則重複、已簽到未簽退等"""
    status_code = 409


class NotFoundError(PayrollError):
    """參照的薪資單、人工修正、修改申請或員工不存在"""
    status_code = 404


class RecalculationWarning(UserWarning):
    """觸發來源已寫入成功，但後續月薪資重算失敗；僅記錄，不作為主要操作的失敗"""


@dataclass(frozen=True)
class DataAnomaly:
    """資料異常（如簽退早於簽到）：以絕對值修正後照常計算，並附在結果上"""
    code: str
    message: str

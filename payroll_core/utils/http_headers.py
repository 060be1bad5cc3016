"""
下載檔名 header：Starlette 的 header 只能是 latin-1，中文檔名須以 RFC 5987 的 filename* 帶入。
"""
import re
from urllib.parse import quote

_UNSAFE_ASCII = re.compile(r'[^A-Za-z0-9._-]+')


def build_content_disposition(ascii_filename: str, unicode_filename: str) -> str:
    """
    filename 為 ASCII 備援（非英數字元以底線取代），filename* 為 UTF-8 編碼檔名，瀏覽器優先採用後者。

    範例：
        build_content_disposition("payroll_2026_01.xlsx", "月薪資_2026_01.xlsx")
    """
    fallback = _UNSAFE_ASCII.sub("_", ascii_filename).strip("_") or "download"
    encoded = quote(unicode_filename, safe="")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{encoded}"

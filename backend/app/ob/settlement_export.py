"""月結明細匯出 Excel（客製提案 / 續約），欄位順序固定，與畫面明細一致。"""
import io
from decimal import Decimal
from typing import Any, Dict, List, Sequence, Tuple
from urllib.parse import quote

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, Border, Side

# (欄位 key, 表頭)
CUSTOM_COLUMNS: List[Tuple[str, str]] = [
    ("source_sheet", "工作表"),
    ("row_number", "列號"),
    ("proposer_id", "推廣人ID"),
    ("proposer_name", "推廣人"),
    ("sales_amount", "當月客製提案營收"),
    ("theme_flag", "主題加購"),
    ("approval_flag", "客製提案認定"),
]

RECONTRACT_COLUMNS: List[Tuple[str, str]] = [
    ("source_sheet", "工作表"),
    ("row_number", "列號"),
    ("registration_date", "登錄日"),
    ("outlet", "出庫處"),
    ("customer_name", "客戶姓名"),
    ("internet_unique_number", "網路固有編號"),
    ("status", "狀態"),
    ("settlement_amount", "結算金額"),
    ("remark_plate", "銅板備註"),
    ("remark_recontract", "續約備註"),
    ("offer_gift_card", "禮券支付額"),
    ("offer_deposit", "匯款支付額"),
    ("promoter_name", "推廣人"),
]

EXPORT_COLUMNS = {
    "custom": CUSTOM_COLUMNS,
    "recontract": RECONTRACT_COLUMNS,
}

EXPORT_TITLES = {
    "custom": "客製提案",
    "recontract": "續約",
}


class EmptyExportError(ValueError):
    """沒有可匯出的明細"""
    pass


def build_content_disposition(ascii_filename: str, unicode_filename: str) -> str:
    """RFC 5987：filename 為 ASCII fallback，filename* 為 UTF-8 檔名（header 僅支援 latin-1）"""
    encoded = quote(unicode_filename, safe="")
    return f"attachment; filename=\"{ascii_filename}\"; filename*=UTF-8''{encoded}"


def export_filenames(kind: str, month: str) -> Tuple[str, str]:
    return f"ob_{kind}_{month}.xlsx", f"OB_{EXPORT_TITLES[kind]}_{month}.xlsx"


def rows_to_table(rows: Sequence[Any], columns: List[Tuple[str, str]]) -> List[List[Any]]:
    """明細列（dict 或 pydantic model）→ 依欄位順序的值；Decimal 轉 int/float 供 Excel 數值欄"""
    table: List[List[Any]] = []
    for row in rows:
        data: Dict[str, Any] = row if isinstance(row, dict) else row.model_dump()
        values = []
        for key, _ in columns:
            v = data.get(key)
            if v is None:
                v = ""
            elif isinstance(v, Decimal):
                v = int(v) if v == v.to_integral_value() else float(v)
            values.append(v)
        table.append(values)
    return table


def build_rows_excel(kind: str, rows: Sequence[Any], month: str = "") -> bytes:
    if kind not in EXPORT_COLUMNS:
        raise ValueError(f"不支援的匯出類型：{kind}")
    if not rows:
        raise EmptyExportError(f"{EXPORT_TITLES[kind]}沒有可匯出的資料")
    columns = EXPORT_COLUMNS[kind]

    wb = Workbook()
    ws = wb.active
    ws.title = f"{EXPORT_TITLES[kind]}_{month}" if month else EXPORT_TITLES[kind]

    thin = Side(style="thin")
    header_font = Font(bold=True)
    header_alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)
    for col, (_, label) in enumerate(columns, start=1):
        cell = ws.cell(row=1, column=col, value=label)
        cell.font = header_font
        cell.alignment = header_alignment
        cell.border = Border(top=thin, bottom=thin, left=thin, right=thin)

    for row_idx, values in enumerate(rows_to_table(rows, columns), start=2):
        for col, v in enumerate(values, start=1):
            ws.cell(row=row_idx, column=col, value=v)

    for col in range(1, len(columns) + 1):
        ws.column_dimensions[ws.cell(row=1, column=col).column_letter].width = 16

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()

"""
月結原始列正規化：外部來源（xlsx / JSON）的鬆散列 → CustomProposalRow / RecontractRow / PostSettlementEntry。
缺識別或必要金額非數字者隔離（QuarantinedRow，附原因），不讓缺值以 0 混入加總；選填數值缺漏則補 0 / ''。
"""
import logging
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from app.schemas import CustomProposalRow, PostSettlementEntry, QuarantinedRow, RecontractRow

logger = logging.getLogger(__name__)

# 表頭別名（比對時忽略大小寫與空白）；來源表單多為韓文表頭
CUSTOM_ALIASES = {
    "source_sheet": ["source_sheet", "sourceSheet", "sheet", "工作表", "시트"],
    "row_number": ["row_number", "rowNumber", "列號", "행번호"],
    "proposer_id": ["proposer_id", "proposerId", "推廣人ID", "유치자ID"],
    "proposer_name": ["proposer_name", "proposerName", "推廣人", "推廣人姓名", "유치자명"],
    "sales_amount": ["sales_amount", "salesAmount", "當月客製提案營收", "당월 맞춤제안 매출", "매출"],
    "theme_flag": ["theme_flag", "themeFlag", "主題加購", "테마 업셀"],
    "approval_flag": ["approval_flag", "approvalFlag", "客製提案認定", "맞춤제안 인정"],
}

RECONTRACT_ALIASES = {
    "source_sheet": ["source_sheet", "sourceSheet", "sheet", "工作表", "시트"],
    "row_number": ["row_number", "rowNumber", "列號", "행번호"],
    "registration_date": ["registration_date", "registrationDate", "登錄日", "등록일"],
    "outlet": ["outlet", "出庫處", "출고처"],
    "customer_name": ["customer_name", "customerName", "客戶姓名", "고객명"],
    "internet_unique_number": ["internet_unique_number", "internetUniqueNumber", "網路固有編號", "인터넷-고유번호"],
    "status": ["status", "狀態", "상태"],
    "settlement_amount": ["settlement_amount", "settlementAmount", "結算金額", "정산금액"],
    "remark_plate": ["remark_plate", "remarkPlate", "銅板備註", "동판-비고"],
    "remark_recontract": ["remark_recontract", "remarkRecontract", "續約備註", "재약정-비고"],
    "offer_gift_card": ["offer_gift_card", "offerGiftCard", "禮券支付額", "상품권 지급액"],
    "offer_deposit": ["offer_deposit", "offerDeposit", "匯款支付額", "입금 지급액"],
    "promoter_name": ["promoter_name", "promoterName", "推廣人", "推廣人姓名", "유치자명"],
}

COST_ALIASES = {
    "source_sheet": ["source_sheet", "sourceSheet", "sheet", "工作表", "시트"],
    "row_number": ["row_number", "rowNumber", "列號", "행번호"],
    "label": ["label", "item", "項目", "內容", "항목", "내역"],
    "amount": ["amount", "金額", "금액"],
}

STREAM_ALIASES = {
    "custom": CUSTOM_ALIASES,
    "recontract": RECONTRACT_ALIASES,
    "labor": COST_ALIASES,
    "cost": COST_ALIASES,
}

_EMPTY_MARKS = ("", "-", "—", "nan", "none", "null")


class _NotNumeric(Exception):
    pass


def _key(s: Any) -> str:
    return "".join(str(s).split()).lower()


def remap_row(raw: Dict[str, Any], aliases: Dict[str, List[str]]) -> Dict[str, Any]:
    """將原始列的表頭對應到標準欄位名；找不到的欄位不放入結果"""
    lowered = {_key(k): v for k, v in (raw or {}).items()}
    out: Dict[str, Any] = {}
    for canon, names in aliases.items():
        for name in names:
            if _key(name) in lowered:
                out[canon] = lowered[_key(name)]
                break
    return out


def _is_blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return isinstance(v, str) and v.strip().lower() in _EMPTY_MARKS


def cell_str(v: Any) -> str:
    if _is_blank(v):
        return ""
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    return str(v).strip()


def parse_number(v: Any) -> Optional[Decimal]:
    """數字或含千分位字串 → Decimal；空值回傳 None；非數字丟 _NotNumeric"""
    if _is_blank(v):
        return None
    if isinstance(v, bool):
        raise _NotNumeric(v)
    if isinstance(v, (int, Decimal)):
        return Decimal(v)
    if isinstance(v, float):
        return Decimal(str(v))
    s = str(v).strip().replace(",", "").replace(" ", "")
    for unit in ("원", "元"):
        s = s.replace(unit, "")
    try:
        d = Decimal(s)
    except InvalidOperation:
        raise _NotNumeric(v)
    if not d.is_finite():
        raise _NotNumeric(v)
    return d


def _row_meta(mapped: Dict[str, Any], index: int, default_sheet: str) -> Tuple[str, int]:
    sheet = cell_str(mapped.get("source_sheet")) or default_sheet
    try:
        row_number = int(parse_number(mapped.get("row_number")) or 0)
    except _NotNumeric:
        row_number = 0
    # 第 1 列為表頭
    return sheet, row_number or index + 2


def _quarantine(stream: str, sheet: str, row_number: int, reason: str, raw: Dict[str, Any]) -> QuarantinedRow:
    logger.warning("隔離 %s 列（%s 第 %s 列）：%s", stream, sheet, row_number, reason)
    safe_raw = {str(k): (None if _is_blank(v) else v if isinstance(v, (int, float, str, bool)) else str(v))
                for k, v in (raw or {}).items()}
    return QuarantinedRow(stream=stream, source_sheet=sheet, row_number=row_number, reason=reason, raw=safe_raw)


def _optional_amount(mapped: Dict[str, Any], key: str, label: str) -> Decimal:
    try:
        v = parse_number(mapped.get(key))
    except _NotNumeric:
        raise ValueError(f"{label}非數字")
    return v if v is not None else Decimal("0")


def _required_amount(mapped: Dict[str, Any], key: str, label: str) -> Decimal:
    try:
        v = parse_number(mapped.get(key))
    except _NotNumeric:
        raise ValueError(f"{label}非數字")
    if v is None:
        raise ValueError(f"缺少{label}")
    return v


def normalize_custom_rows(
    raw_rows: List[Dict[str, Any]],
    default_sheet: str = "",
) -> Tuple[List[CustomProposalRow], List[QuarantinedRow]]:
    rows: List[CustomProposalRow] = []
    quarantined: List[QuarantinedRow] = []
    for i, raw in enumerate(raw_rows or []):
        mapped = remap_row(raw, CUSTOM_ALIASES)
        sheet, row_number = _row_meta(mapped, i, default_sheet)
        proposer_id = cell_str(mapped.get("proposer_id"))
        proposer_name = cell_str(mapped.get("proposer_name"))
        if not proposer_id and not proposer_name:
            quarantined.append(_quarantine("custom", sheet, row_number, "缺少推廣人 ID 與姓名", raw))
            continue
        try:
            sales = _required_amount(mapped, "sales_amount", "營收金額")
        except ValueError as e:
            quarantined.append(_quarantine("custom", sheet, row_number, str(e), raw))
            continue
        rows.append(CustomProposalRow(
            source_sheet=sheet,
            row_number=row_number,
            proposer_id=proposer_id,
            proposer_name=proposer_name,
            sales_amount=sales,
            theme_flag=cell_str(mapped.get("theme_flag")),
            approval_flag=cell_str(mapped.get("approval_flag")),
        ))
    return rows, quarantined


def normalize_recontract_rows(
    raw_rows: List[Dict[str, Any]],
    default_sheet: str = "",
) -> Tuple[List[RecontractRow], List[QuarantinedRow]]:
    rows: List[RecontractRow] = []
    quarantined: List[QuarantinedRow] = []
    for i, raw in enumerate(raw_rows or []):
        mapped = remap_row(raw, RECONTRACT_ALIASES)
        sheet, row_number = _row_meta(mapped, i, default_sheet)
        promoter = cell_str(mapped.get("promoter_name"))
        customer = cell_str(mapped.get("customer_name"))
        if not promoter and not customer:
            quarantined.append(_quarantine("recontract", sheet, row_number, "缺少推廣人與客戶姓名", raw))
            continue
        try:
            settlement = _required_amount(mapped, "settlement_amount", "結算金額")
            gift_card = _optional_amount(mapped, "offer_gift_card", "禮券支付額")
            deposit = _optional_amount(mapped, "offer_deposit", "匯款支付額")
        except ValueError as e:
            quarantined.append(_quarantine("recontract", sheet, row_number, str(e), raw))
            continue
        rows.append(RecontractRow(
            source_sheet=sheet,
            row_number=row_number,
            registration_date=cell_str(mapped.get("registration_date")),
            outlet=cell_str(mapped.get("outlet")),
            customer_name=customer,
            internet_unique_number=cell_str(mapped.get("internet_unique_number")),
            status=cell_str(mapped.get("status")),
            settlement_amount=settlement,
            remark_plate=cell_str(mapped.get("remark_plate")),
            remark_recontract=cell_str(mapped.get("remark_recontract")),
            offer_gift_card=gift_card,
            offer_deposit=deposit,
            promoter_name=promoter,
        ))
    return rows, quarantined


def normalize_cost_rows(
    raw_rows: List[Dict[str, Any]],
    stream: str = "cost",
    default_sheet: str = "",
) -> Tuple[List[PostSettlementEntry], List[QuarantinedRow]]:
    """後結算人事費/費用列（stream = labor / cost），金額維持來源正負號"""
    rows: List[PostSettlementEntry] = []
    quarantined: List[QuarantinedRow] = []
    for i, raw in enumerate(raw_rows or []):
        mapped = remap_row(raw, COST_ALIASES)
        sheet, row_number = _row_meta(mapped, i, default_sheet)
        label = cell_str(mapped.get("label"))
        if not label:
            quarantined.append(_quarantine(stream, sheet, row_number, "缺少項目名稱", raw))
            continue
        try:
            amount = _required_amount(mapped, "amount", "金額")
        except ValueError as e:
            quarantined.append(_quarantine(stream, sheet, row_number, str(e), raw))
            continue
        rows.append(PostSettlementEntry(source_sheet=sheet, row_number=row_number, label=label, amount=amount))
    return rows, quarantined

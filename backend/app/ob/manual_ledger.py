"""手動調整（人事費/費用）：金額正規化為負數、項目名稱必填；寫入前驗證，不做部分寫入"""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable

from app.ob.line_calculator import to_won

MANUAL_TYPES = ("labor", "cost")


class ManualAdjustmentValidationError(ValueError):
    """手動調整金額或項目名稱不合法"""
    pass


def normalize_manual_amount(raw: Any) -> Decimal:
    """
    數字或含千分位字串 → 負數金額（元）。50000 與 -50000 皆為 -50000。
    空白、無法解析、0 一律拒絕。
    """
    if raw is None or isinstance(raw, bool):
        raise ManualAdjustmentValidationError("請輸入金額")
    if isinstance(raw, str):
        s = raw.strip().replace(",", "")
        if not s:
            raise ManualAdjustmentValidationError("請輸入金額")
    else:
        s = str(raw)
    try:
        value = Decimal(s)
    except InvalidOperation:
        raise ManualAdjustmentValidationError("金額格式錯誤")
    if not value.is_finite():
        raise ManualAdjustmentValidationError("金額格式錯誤")
    try:
        value = to_won(value)
    except InvalidOperation:
        raise ManualAdjustmentValidationError("金額格式錯誤")
    if value == 0:
        raise ManualAdjustmentValidationError("金額不可為 0")
    return -abs(value)


def normalize_label(label: Any) -> str:
    s = str(label or "").strip()
    if not s:
        raise ManualAdjustmentValidationError("請輸入項目名稱")
    return s


def totals_by_type(entries: Iterable[Any]) -> Dict[str, Decimal]:
    totals = {t: Decimal("0") for t in MANUAL_TYPES}
    for e in entries or []:
        if e.type in totals:
            totals[e.type] += Decimal(str(e.amount or 0))
    return totals

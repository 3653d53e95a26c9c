"""月結總額與兩公司分配（VIP 30% / YA 70%）"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from app.schemas import SettlementSplit, SettlementTotals

ZERO = Decimal("0")


def _d(v: Any) -> Decimal:
    return Decimal(str(v if v is not None else 0))


def _round(v: Decimal) -> Decimal:
    return v.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def split_total(grand_total: Decimal, split_config: Optional[Dict[str, Any]] = None) -> SettlementSplit:
    """
    預設兩邊各自四捨五入，不保證 vip + yai == grand_total，差額記在 drift。
    split.reconcile = true 時 yai = grand_total - vip，drift 恆為 0。
    """
    cfg = split_config or {}
    vip_ratio = _d(cfg.get("vip_ratio", "0.30"))
    yai_ratio = _d(cfg.get("yai_ratio", "0.70"))
    reconcile = bool(cfg.get("reconcile", False))

    vip = _round(grand_total * vip_ratio)
    if reconcile:
        yai = grand_total - vip
    else:
        yai = _round(grand_total * yai_ratio)
    return SettlementSplit(
        vip=vip,
        yai=yai,
        vip_ratio=vip_ratio,
        yai_ratio=yai_ratio,
        drift=vip + yai - grand_total,
        reconciled=reconcile,
    )


def compose_totals(
    custom_total: Any,
    recontract_total: Any,
    labor_sheet: Any,
    labor_manual: Any,
    cost_sheet: Any,
    cost_manual: Any,
    split_config: Optional[Dict[str, Any]] = None,
) -> SettlementTotals:
    """手動調整已為負數，直接相加"""
    labor_total = _d(labor_sheet) + _d(labor_manual)
    cost_total = _d(cost_sheet) + _d(cost_manual)
    grand_total = _d(custom_total) + _d(recontract_total) + labor_total + cost_total
    return SettlementTotals(
        custom_total=_d(custom_total),
        recontract_total=_d(recontract_total),
        labor_sheet=_d(labor_sheet),
        labor_manual=_d(labor_manual),
        labor_total=labor_total,
        cost_sheet=_d(cost_sheet),
        cost_manual=_d(cost_manual),
        cost_total=cost_total,
        grand_total=grand_total,
        split=split_total(grand_total, split_config),
    )

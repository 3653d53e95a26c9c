"""
月結彙總（純函式）：客製提案（政策①②③＋件數獎金）與續約（結算金＋禮券/匯款）。
排除人員只做成員判斷，被排除列計入 excluded_count 並另列回傳，不會從畫面消失。
"""
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from app.ob.line_calculator import to_won
from app.schemas import (
    AggregateResult,
    CustomDrilldown,
    CustomProposalRow,
    CustomProposalSummary,
    PerCaseResult,
    Policy1Result,
    Policy2Result,
    Policy3Result,
    RecontractDrilldown,
    RecontractOffer,
    RecontractRow,
    RecontractSummary,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def normalize_identity(s: Any) -> str:
    """比對用：去除所有空白、不分大小寫"""
    return "".join(str(s or "").split()).lower()


@dataclass(frozen=True)
class ExclusionIndex:
    month: str
    type: str
    ids: FrozenSet[str] = field(default_factory=frozenset)
    names: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_entries(cls, entries: Iterable[Any], month: str, type: str) -> "ExclusionIndex":
        """只收同月份、同類型的排除登錄"""
        ids: Set[str] = set()
        names: Set[str] = set()
        for e in entries or []:
            if getattr(e, "month", None) != month or getattr(e, "type", None) != type:
                continue
            tid = normalize_identity(getattr(e, "target_id", ""))
            tname = normalize_identity(getattr(e, "target_name", ""))
            if tid:
                ids.add(tid)
            if tname:
                names.add(tname)
        return cls(month=month, type=type, ids=frozenset(ids), names=frozenset(names))

    def contains(self, target_id: Any = "", target_name: Any = "") -> bool:
        tid = normalize_identity(target_id)
        tname = normalize_identity(target_name)
        return bool((tid and tid in self.ids) or (tname and tname in self.names))

    def __len__(self) -> int:
        return len(self.ids) + len(self.names)


def outlet_targets(entries: Iterable[Any], month: str, type: str = "recontract") -> List[str]:
    seen: "OrderedDict[str, None]" = OrderedDict()
    for e in entries or []:
        if getattr(e, "month", None) != month or getattr(e, "type", None) != type:
            continue
        name = str(getattr(e, "outlet_name", "") or "").strip()
        if name:
            seen[name] = None
    return list(seen)


def outlet_matches(outlet: str, targets: List[str], ignore_case: bool = True) -> bool:
    """出庫處字串包含任一對象出庫處即符合（多筆符合仍只算一次）"""
    text = outlet or ""
    if ignore_case:
        text = text.lower()
    for t in targets:
        if (t.lower() if ignore_case else t) in text:
            return True
    return False


def _policy3(sales_total: Decimal, tiers: List[dict]) -> Policy3Result:
    best: Optional[dict] = None
    for tier in sorted(tiers or [], key=lambda t: Decimal(str(t.get("sales", 0)))):
        if sales_total >= Decimal(str(tier.get("sales", 0))):
            best = tier
    if best is None:
        return Policy3Result(sales_total=sales_total, tier_sales=None, payout=ZERO)
    return Policy3Result(
        sales_total=sales_total,
        tier_sales=to_won(best.get("sales")),
        payout=to_won(best.get("payout")),
    )


def _per_case(count: int, tiers: List[dict]) -> PerCaseResult:
    best: Optional[dict] = None
    for tier in sorted(tiers or [], key=lambda t: int(t.get("threshold", 0))):
        if count > int(tier.get("threshold", 0)):
            best = tier
    if best is None:
        return PerCaseResult(count=count, threshold=None, unit_amount=ZERO, payout=ZERO)
    unit = to_won(best.get("unit_amount"))
    return PerCaseResult(count=count, threshold=int(best["threshold"]), unit_amount=unit, payout=unit * count)


def aggregate_custom(
    rows: List[CustomProposalRow],
    exclusions: ExclusionIndex,
    policy: Dict[str, Any],
) -> CustomProposalSummary:
    policy = policy or {}
    included: List[CustomProposalRow] = []
    excluded: List[CustomProposalRow] = []
    for r in rows or []:
        if exclusions.contains(r.proposer_id, r.proposer_name):
            excluded.append(r)
        else:
            included.append(r)

    sales_total = sum((r.sales_amount for r in included), ZERO)
    multiplier = Decimal(str(policy.get("policy1_multiplier", 2)))
    theme_value = str(policy.get("theme_flag_value", "1"))
    theme_rows = [r for r in included if r.theme_flag == theme_value]

    policy1 = Policy1Result(multiplier=multiplier, sales_total=sales_total, payout=to_won(sales_total * multiplier))
    policy2 = Policy2Result(
        qualifying_count=len(theme_rows),
        qualifying_sales=sum((r.sales_amount for r in theme_rows), ZERO),
    )
    policy3 = _policy3(sales_total, policy.get("policy3_tiers") or [])
    per_case = _per_case(len(included), policy.get("per_case_tiers") or [])

    groups: "OrderedDict[str, List[CustomProposalRow]]" = OrderedDict()
    for r in included:
        groups.setdefault(r.proposer_name or r.proposer_id, []).append(r)
    drilldown = [
        CustomDrilldown(
            proposer_name=name,
            count=len(items),
            sales_total=sum((r.sales_amount for r in items), ZERO),
            theme_sales=sum((r.sales_amount for r in items if r.theme_flag == theme_value), ZERO),
        )
        for name, items in groups.items()
    ]

    return CustomProposalSummary(
        rows=included,
        excluded_rows=excluded,
        included_count=len(included),
        excluded_count=len(excluded),
        sales_total=sales_total,
        policy1=policy1,
        policy2=policy2,
        policy3=policy3,
        per_case=per_case,
        total_payout=policy1.payout + policy2.qualifying_sales + policy3.payout + per_case.payout,
        drilldown=drilldown,
    )


def aggregate_recontract(
    rows: List[RecontractRow],
    exclusions: ExclusionIndex,
    targets: List[str],
    policy: Dict[str, Any],
) -> RecontractSummary:
    ignore_case = bool((policy or {}).get("outlet_match_ignore_case", True))
    if not targets:
        logger.info("%s 未設定續約對象出庫處，續約結算為 0", exclusions.month)

    included: List[RecontractRow] = []
    excluded: List[RecontractRow] = []
    unmatched = 0
    for r in rows or []:
        if not outlet_matches(r.outlet, targets, ignore_case):
            unmatched += 1
            continue
        if exclusions.contains("", r.promoter_name):
            excluded.append(r)
        else:
            included.append(r)

    fee_total = sum((r.settlement_amount for r in included), ZERO)
    gift_card = sum((r.offer_gift_card for r in included), ZERO)
    deposit = sum((r.offer_deposit for r in included), ZERO)
    offer = RecontractOffer(gift_card=gift_card, deposit=deposit, total=gift_card + deposit)

    groups: "OrderedDict[Tuple[str, str], List[RecontractRow]]" = OrderedDict()
    for r in included:
        groups.setdefault((r.promoter_name, r.outlet), []).append(r)
    drilldown = [
        RecontractDrilldown(
            promoter_name=promoter,
            outlet=outlet,
            count=len(items),
            fee_total=sum((r.settlement_amount for r in items), ZERO),
            offer_total=sum((r.offer_gift_card + r.offer_deposit for r in items), ZERO),
        )
        for (promoter, outlet), items in groups.items()
    ]

    return RecontractSummary(
        rows=included,
        excluded_rows=excluded,
        included_count=len(included),
        excluded_count=len(excluded),
        unmatched_count=unmatched,
        target_outlets=list(targets),
        fee_total=fee_total,
        offer=offer,
        total_payout=fee_total + offer.total,
        drilldown=drilldown,
    )


def aggregate(
    month: str,
    custom_rows: List[CustomProposalRow],
    recontract_rows: List[RecontractRow],
    exclusions: Iterable[Any],
    target_outlets: Iterable[Any],
    policies: Dict[str, Any],
) -> AggregateResult:
    exclusions = list(exclusions or [])
    policies = policies or {}
    custom = aggregate_custom(
        custom_rows,
        ExclusionIndex.from_entries(exclusions, month, "custom"),
        policies.get("custom_proposal") or {},
    )
    recontract = aggregate_recontract(
        recontract_rows,
        ExclusionIndex.from_entries(exclusions, month, "recontract"),
        outlet_targets(target_outlets, month, "recontract"),
        policies.get("recontract") or {},
    )
    return AggregateResult(month=month, custom_proposal=custom, recontract=recontract)

"""
結合試算：每回線「基本月租 + 疊加折扣」→ 回線合計，單一情境（existing / together）。
折扣順序固定：① 結合 ② 約定（選擇約定 = 月租 × rate）③ Premier（需勾選）④ 網路（共用 has_internet，依速度）。
所有折扣 ≤ 0；情境金額 = 各回線合計之和；查無要金制的回線以 0 元計，不中斷整體試算。
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.schemas import LineResult, ScenarioResult, SharedOptions, SubscriptionLine

logger = logging.getLogger(__name__)

INTERNET_SPEEDS = ("100M", "500M", "1G")
ZERO = Decimal("0")


def to_won(v: Any) -> Decimal:
    """金額取整（元），四捨五入"""
    if v is None or v == "":
        return ZERO
    return Decimal(str(v)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _discount(v: Any) -> Decimal:
    # 折扣一律為負（或 0）
    d = abs(to_won(v))
    return -d if d else ZERO


def index_plans(plans: Iterable[Any]) -> Dict[str, Any]:
    return {str(p.plan_name).strip(): p for p in plans or [] if getattr(p, "plan_name", None)}


def index_rules(rules: Iterable[Any]) -> Dict[Tuple[str, str], Any]:
    """(plan_group, rule_kind) → 規則；重複時後者覆蓋前者"""
    out: Dict[Tuple[str, str], Any] = {}
    for r in rules or []:
        out[(str(r.plan_group or "").strip(), str(r.rule_kind))] = r
    return out


def _tier_matches(tier: dict, members: int, fee_sum: Decimal, internet_included: bool) -> bool:
    if "members" in tier and int(tier["members"]) != members:
        return False
    if "min_fee_sum" in tier and fee_sum < Decimal(str(tier["min_fee_sum"])):
        return False
    if "internet_included" in tier and bool(tier["internet_included"]) != internet_included:
        return False
    return True


def lookup_bundle_tier(tiers: List[dict], members: int, fee_sum: Decimal, internet_included: bool) -> Decimal:
    """由上而下比對，第一筆符合者生效；人數不在表上（例如超過最大人數）時不給結合折扣"""
    if not tiers or members <= 0:
        return ZERO
    for tier in tiers:
        if _tier_matches(tier, members, fee_sum, internet_included):
            return _discount(tier.get("per_line", 0))
    return ZERO


def bundle_per_line(
    scenario_type: str,
    member_count: int,
    fee_sum: Decimal,
    shared_options: SharedOptions,
    config: Dict[str, Any],
) -> Decimal:
    bundle_cfg = (config or {}).get("bundle") or {}
    if scenario_type == "together":
        table = bundle_cfg.get("together") or {}
    else:
        table = (bundle_cfg.get("existing") or {}).get(shared_options.existing_bundle_type)
        if table is None:
            logger.warning("未知的既有結合類型：%s，結合折扣以 0 計", shared_options.existing_bundle_type)
            return ZERO
    return lookup_bundle_tier(table.get("tiers") or [], member_count, fee_sum, bool(shared_options.has_internet))


def _selection_discount(base_fee: Decimal, rule: Optional[Any], config: Dict[str, Any]) -> Decimal:
    rate = None
    if rule is not None and rule.rate is not None:
        rate = Decimal(str(rule.rate))
    if rate is None:
        rate = Decimal(str(((config or {}).get("selection") or {}).get("rate", "0.25")))
    return _discount(base_fee * rate)


def _premier_discount(base_fee: Decimal, rule: Optional[Any], config: Dict[str, Any]) -> Decimal:
    if rule is not None and rule.amount is not None:
        return _discount(rule.amount)
    cfg = (config or {}).get("premier") or {}
    min_fee = Decimal(str(cfg.get("min_base_fee", 0)))
    if base_fee < min_fee:
        return ZERO
    return _discount(cfg.get("amount", 0))


def _internet_discount(
    scenario_type: str,
    speed: Optional[str],
    rule: Optional[Any],
    config: Dict[str, Any],
) -> Decimal:
    if rule is not None and rule.conditions and speed in rule.conditions:
        return _discount(rule.conditions[speed])
    tiers = ((config or {}).get("internet") or {}).get(scenario_type) or {}
    return _discount(tiers.get(speed, 0))


def compute_scenario(
    lines: List[SubscriptionLine],
    shared_options: SharedOptions,
    scenario_type: str,
    plans: Iterable[Any],
    discount_rules: Iterable[Any],
    config: Dict[str, Any],
) -> ScenarioResult:
    """
    單一情境試算（純函式）。
    plans / discount_rules 只需具備 plan_name/plan_group/base_fee 與 plan_group/rule_kind/amount/rate/conditions 屬性。
    """
    plan_index = index_plans(plans)
    rule_index = index_rules(discount_rules)
    shared_options = shared_options or SharedOptions()

    resolved: List[Tuple[SubscriptionLine, Optional[Any]]] = []
    unresolved: List[str] = []
    for line in lines:
        plan = plan_index.get((line.plan_name or "").strip())
        if plan is None:
            logger.warning("查無要金制：%s（回線 %s），以 0 元計", line.plan_name, line.line_key)
            unresolved.append(line.plan_name or "")
        resolved.append((line, plan))

    fee_sum = sum((to_won(p.base_fee) for _, p in resolved if p is not None), ZERO)
    per_line = bundle_per_line(scenario_type, len(lines), fee_sum, shared_options, config)

    speed = shared_options.internet_speed if shared_options.has_internet else None
    if speed is not None and speed not in INTERNET_SPEEDS:
        logger.warning("未知的網路速度：%s，網路折扣以 0 計", speed)
        speed = None

    rows: List[LineResult] = []
    for line, plan in resolved:
        row = LineResult(
            line_key=line.line_key,
            line_id=line.line_id,
            customer_name=line.customer_name,
            phone=line.phone,
            plan_name=line.plan_name,
            contract_type=line.contract_type,
            device_support=to_won(line.device_support),
            plan_resolved=plan is not None,
        )
        if plan is not None:
            group = str(plan.plan_group or "").strip()
            base_fee = to_won(plan.base_fee)
            row.plan_group = group
            row.base_fee = base_fee

            bundle_rule = rule_index.get((group, "bundle"))
            if bundle_rule is not None and bundle_rule.amount is not None:
                row.bundle_discount = _discount(bundle_rule.amount)
            else:
                row.bundle_discount = per_line
            if line.contract_type == "selection":
                row.selection_discount = _selection_discount(base_fee, rule_index.get((group, "selection")), config)
            if line.premier_opt_in:
                row.premier_discount = _premier_discount(base_fee, rule_index.get((group, "premier")), config)
            if speed is not None:
                row.internet_discount = _internet_discount(
                    scenario_type, speed, rule_index.get((group, "internet")), config
                )
        row.total = (
            row.base_fee
            + row.bundle_discount
            + row.selection_discount
            + row.premier_discount
            + row.internet_discount
        )
        rows.append(row)

    return ScenarioResult(
        scenario_type=scenario_type,
        amount=sum((r.total for r in rows), ZERO),
        rows=rows,
        bundle_discount=sum((r.bundle_discount for r in rows), ZERO),
        selection_discount=sum((r.selection_discount for r in rows), ZERO),
        premier_discount=sum((r.premier_discount for r in rows), ZERO),
        internet_discount=sum((r.internet_discount for r in rows), ZERO),
        bundle_per_line=per_line,
        unresolved_plans=unresolved,
    )

"""
結合試算單元測試（純函式，不需 DB）。
覆蓋：折扣疊加順序與金額、結合級距比對、選擇約定/Premier/網路條件、查無要金制。
"""
from decimal import Decimal

from app.ob.line_calculator import (
    bundle_per_line,
    compute_scenario,
    lookup_bundle_tier,
    to_won,
)
from app.schemas import DiscountRuleBase, PlanReferenceBase, SharedOptions, SubscriptionLine

CONFIG = {
    "selection": {"rate": "0.2"},
    "premier": {"amount": -5000, "min_base_fee": 0},
    "internet": {
        "existing": {"100M": -1000, "500M": -3000, "1G": -3000},
        "together": {"100M": 0, "500M": -3000, "1G": -3000},
    },
    "bundle": {
        "existing": {"family_wireless": {"tiers": []}},
        "together": {"tiers": [{"members": 2, "per_line": -2000}]},
    },
}

PLANS = [
    PlanReferenceBase(plan_name="5G 50", plan_group="g50", base_fee=Decimal("50000")),
    PlanReferenceBase(plan_name="5G 90", plan_group="g90", base_fee=Decimal("90000")),
]

SHARED = SharedOptions(has_internet=True, internet_speed="500M")


def _line(key: str, plan: str = "5G 50", **kw) -> SubscriptionLine:
    base = {"line_key": key, "plan_name": plan, "contract_type": "selection", "premier_opt_in": True}
    base.update(kw)
    return SubscriptionLine(**base)


def test_to_won_rounds_half_up():
    assert to_won("1234.5") == Decimal("1235")
    assert to_won(None) == Decimal("0")
    assert to_won("") == Decimal("0")


def test_line_total_stacks_discounts_without_bundle():
    """月租 50000 - 選擇約定 10000 - Premier 5000 - 網路 3000 = 32000"""
    result = compute_scenario([_line("a")], SHARED, "existing", PLANS, [], CONFIG)
    row = result.rows[0]
    assert row.base_fee == Decimal("50000")
    assert row.selection_discount == Decimal("-10000")
    assert row.premier_discount == Decimal("-5000")
    assert row.internet_discount == Decimal("-3000")
    assert row.bundle_discount == Decimal("0")
    assert row.total == Decimal("32000")


def test_two_lines_with_bundle_discount_amount_60000():
    """兩回線各 32000 = 64000，結合每回線 -2000 共 -4000 → 60000"""
    result = compute_scenario([_line("a"), _line("b")], SHARED, "together", PLANS, [], CONFIG)
    assert result.bundle_per_line == Decimal("-2000")
    assert result.bundle_discount == Decimal("-4000")
    assert result.amount == Decimal("60000")
    assert [r.total for r in result.rows] == [Decimal("30000"), Decimal("30000")]


def test_scenario_buckets_are_sums_of_rows():
    result = compute_scenario([_line("a"), _line("b", plan="5G 90")], SHARED, "together", PLANS, [], CONFIG)
    assert result.selection_discount == sum(r.selection_discount for r in result.rows)
    assert result.premier_discount == sum(r.premier_discount for r in result.rows)
    assert result.internet_discount == sum(r.internet_discount for r in result.rows)
    assert result.amount == sum(r.total for r in result.rows)


def test_all_discounts_are_non_positive():
    result = compute_scenario([_line("a"), _line("b", plan="5G 90")], SHARED, "together", PLANS, [], CONFIG)
    for r in result.rows:
        for v in (r.bundle_discount, r.selection_discount, r.premier_discount, r.internet_discount):
            assert v <= 0


def test_premier_requires_opt_in():
    result = compute_scenario([_line("a", premier_opt_in=False)], SHARED, "existing", PLANS, [], CONFIG)
    assert result.rows[0].premier_discount == Decimal("0")
    assert result.rows[0].total == Decimal("37000")


def test_subsidy_contract_has_no_selection_discount():
    result = compute_scenario([_line("a", contract_type="subsidy")], SHARED, "existing", PLANS, [], CONFIG)
    assert result.rows[0].selection_discount == Decimal("0")


def test_premier_min_base_fee_from_config():
    """無群組規則時，月租未達 min_base_fee 不給 Premier 折扣"""
    config = dict(CONFIG, premier={"amount": -5250, "min_base_fee": 85000})
    result = compute_scenario([_line("a"), _line("b", plan="5G 90")], SHARED, "existing", PLANS, [], config)
    assert result.rows[0].premier_discount == Decimal("0")
    assert result.rows[1].premier_discount == Decimal("-5250")


def test_group_rules_override_config():
    rules = [
        DiscountRuleBase(plan_group="g50", rule_kind="selection", rate=Decimal("0.3")),
        DiscountRuleBase(plan_group="g50", rule_kind="premier", amount=Decimal("-7000")),
        DiscountRuleBase(plan_group="g50", rule_kind="internet", conditions={"500M": -4000}),
        DiscountRuleBase(plan_group="g50", rule_kind="bundle", amount=Decimal("-1500")),
    ]
    result = compute_scenario([_line("a"), _line("b")], SHARED, "together", PLANS, rules, CONFIG)
    row = result.rows[0]
    assert row.selection_discount == Decimal("-15000")
    assert row.premier_discount == Decimal("-7000")
    assert row.internet_discount == Decimal("-4000")
    assert row.bundle_discount == Decimal("-1500")
    assert row.total == Decimal("50000") - 15000 - 7000 - 4000 - 1500


def test_positive_rule_amount_is_treated_as_discount():
    rules = [DiscountRuleBase(plan_group="g50", rule_kind="premier", amount=Decimal("3000"))]
    result = compute_scenario([_line("a")], SHARED, "existing", PLANS, rules, CONFIG)
    assert result.rows[0].premier_discount == Decimal("-3000")


def test_no_internet_means_no_internet_discount():
    shared = SharedOptions(has_internet=False, internet_speed="1G")
    result = compute_scenario([_line("a")], shared, "existing", PLANS, [], CONFIG)
    assert result.rows[0].internet_discount == Decimal("0")


def test_unknown_internet_speed_gives_zero():
    shared = SharedOptions(has_internet=True, internet_speed="10G")
    result = compute_scenario([_line("a")], shared, "existing", PLANS, [], CONFIG)
    assert result.rows[0].internet_discount == Decimal("0")


def test_unresolved_plan_is_zero_and_does_not_abort():
    """查無要金制的回線以 0 元計，其他回線照算，且仍計入結合人數"""
    lines = [_line("a"), _line("b", plan="不存在的要金制")]
    result = compute_scenario(lines, SHARED, "together", PLANS, [], CONFIG)
    missing = result.rows[1]
    assert missing.plan_resolved is False
    assert missing.base_fee == Decimal("0")
    assert missing.total == Decimal("0")
    assert result.unresolved_plans == ["不存在的要金制"]
    assert result.rows[0].bundle_discount == Decimal("-2000")
    assert result.amount == Decimal("30000")


def test_empty_reference_data_gives_zero_amount():
    result = compute_scenario([_line("a"), _line("b")], SHARED, "together", [], [], CONFIG)
    assert result.amount == Decimal("0")
    assert len(result.unresolved_plans) == 2


def test_lookup_bundle_tier_first_match_by_fee_sum():
    tiers = [
        {"members": 2, "min_fee_sum": 100000, "per_line": -3000},
        {"members": 2, "per_line": -1000},
    ]
    assert lookup_bundle_tier(tiers, 2, Decimal("100000"), False) == Decimal("-3000")
    assert lookup_bundle_tier(tiers, 2, Decimal("99999"), False) == Decimal("-1000")
    assert lookup_bundle_tier(tiers, 0, Decimal("100000"), False) == Decimal("0")


def test_lookup_bundle_tier_members_off_table_gives_zero():
    tiers = [{"members": 2, "per_line": -1000}, {"members": 3, "per_line": -2000}]
    assert lookup_bundle_tier(tiers, 5, Decimal("0"), False) == Decimal("0")
    assert lookup_bundle_tier(tiers, 3, Decimal("0"), False) == Decimal("-2000")
    assert lookup_bundle_tier(tiers, 1, Decimal("0"), False) == Decimal("0")


def test_lookup_bundle_tier_internet_included():
    tiers = [
        {"members": 1, "internet_included": True, "per_line": -3300},
        {"members": 1, "per_line": -1100},
    ]
    assert lookup_bundle_tier(tiers, 1, Decimal("0"), True) == Decimal("-3300")
    assert lookup_bundle_tier(tiers, 1, Decimal("0"), False) == Decimal("-1100")


def test_unknown_existing_bundle_type_gives_zero():
    shared = SharedOptions(existing_bundle_type="no_such_type")
    assert bundle_per_line("existing", 3, Decimal("150000"), shared, CONFIG) == Decimal("0")

"""
月結彙總單元測試。
覆蓋：政策①②③與件數獎金、排除人員（月份/類型範圍）、對象出庫處比對、明細分組加總。
"""
from decimal import Decimal

from app.ob.settlement_aggregator import (
    ExclusionIndex,
    aggregate,
    aggregate_custom,
    aggregate_recontract,
    normalize_identity,
    outlet_matches,
    outlet_targets,
)
from app.schemas import CustomProposalRow, ExclusionCreate, RecontractRow, TargetOutletCreate

MONTH = "2025-03"
NO_EXCLUSION = ExclusionIndex(month=MONTH, type="custom")


def _custom(name, amount, theme="", pid=""):
    return CustomProposalRow(proposer_id=pid, proposer_name=name, sales_amount=Decimal(amount), theme_flag=theme)


def _recontract(promoter, outlet, fee, gift=0, deposit=0):
    return RecontractRow(
        promoter_name=promoter, outlet=outlet, settlement_amount=Decimal(fee),
        offer_gift_card=Decimal(gift), offer_deposit=Decimal(deposit),
    )


def test_policy3_threshold_reached():
    """營收 100000 + 200000 + 50000 = 350000 ≥ 300000 → 50000"""
    rows = [_custom("甲", 100000), _custom("乙", 200000), _custom("丙", 50000)]
    policy = {"policy1_multiplier": 0, "policy3_tiers": [{"sales": 300000, "payout": 50000}]}
    result = aggregate_custom(rows, NO_EXCLUSION, policy)
    assert result.sales_total == Decimal("350000")
    assert result.policy3.payout == Decimal("50000")
    assert result.policy3.tier_sales == Decimal("300000")


def test_policy3_threshold_not_reached():
    rows = [_custom("甲", 100000), _custom("乙", 200000), _custom("丙", 50000)]
    policy = {"policy1_multiplier": 0, "policy3_tiers": [{"sales": 400000, "payout": 50000}]}
    result = aggregate_custom(rows, NO_EXCLUSION, policy)
    assert result.policy3.payout == Decimal("0")
    assert result.policy3.tier_sales is None


def test_policy3_highest_reached_tier_wins():
    rows = [_custom("甲", 600000)]
    policy = {"policy3_tiers": [{"sales": 500000, "payout": 50000}, {"sales": 300000, "payout": 30000}]}
    assert aggregate_custom(rows, NO_EXCLUSION, policy).policy3.payout == Decimal("50000")


def test_policy1_policy2_and_total():
    rows = [_custom("甲", 1000, theme="1"), _custom("乙", 2000), _custom("甲", 500, theme="1")]
    policy = {"policy1_multiplier": 2, "theme_flag_value": "1"}
    result = aggregate_custom(rows, NO_EXCLUSION, policy)
    assert result.policy1.payout == Decimal("7000")
    assert result.policy2.qualifying_count == 2
    assert result.policy2.qualifying_sales == Decimal("1500")
    assert result.total_payout == Decimal("8500")


def test_per_case_requires_count_above_threshold():
    policy = {"policy1_multiplier": 0, "per_case_tiers": [{"threshold": 2, "unit_amount": 1000}]}
    two = aggregate_custom([_custom("甲", 1), _custom("乙", 1)], NO_EXCLUSION, policy)
    assert two.per_case.payout == Decimal("0")
    three = aggregate_custom([_custom("甲", 1), _custom("乙", 1), _custom("丙", 1)], NO_EXCLUSION, policy)
    assert three.per_case.payout == Decimal("3000")
    assert three.per_case.threshold == 2


def test_custom_drilldown_sums_match_totals():
    rows = [_custom("甲", 1000, theme="1"), _custom("乙", 2000), _custom("甲", 500)]
    result = aggregate_custom(rows, NO_EXCLUSION, {})
    by_name = {d.proposer_name: d for d in result.drilldown}
    assert by_name["甲"].count == 2
    assert by_name["甲"].sales_total == Decimal("1500")
    assert by_name["甲"].theme_sales == Decimal("1000")
    assert sum(d.sales_total for d in result.drilldown) == result.sales_total


def test_exclusion_scoped_by_month_and_type():
    entries = [
        ExclusionCreate(month=MONTH, type="custom", target_name="Kim  Min"),
        ExclusionCreate(month="2025-02", type="custom", target_id="P2"),
        ExclusionCreate(month=MONTH, type="recontract", target_id="P3"),
    ]
    index = ExclusionIndex.from_entries(entries, MONTH, "custom")
    assert index.contains("", "kim min")
    assert not index.contains("P2", "")
    assert not index.contains("P3", "")

    rows = [_custom("KIM MIN", 1000), _custom("", 2000, pid="P2"), _custom("", 3000, pid="P3")]
    result = aggregate_custom(rows, index, {"policy1_multiplier": 1})
    assert result.excluded_count == 1
    assert result.included_count == 2
    assert result.sales_total == Decimal("5000")
    # 被排除列另列回傳
    assert result.excluded_rows[0].proposer_name == "KIM MIN"


def test_normalize_identity():
    assert normalize_identity(" Kim Min ") == "kimmin"
    assert normalize_identity(None) == ""


def test_outlet_matches_counted_once():
    targets = ["강남", "Seoul"]
    assert outlet_matches("강남점 1호", targets)
    assert outlet_matches("SEOUL central", targets)
    assert not outlet_matches("SEOUL central", targets, ignore_case=False)
    assert not outlet_matches("부산점", targets)

    rows = [_recontract("박", "강남 Seoul", 1000)]
    result = aggregate_recontract(rows, ExclusionIndex(month=MONTH, type="recontract"), targets, {})
    assert result.included_count == 1
    assert result.fee_total == Decimal("1000")


def test_recontract_outlet_filter_then_exclusion():
    entries = [ExclusionCreate(month=MONTH, type="recontract", target_name="최")]
    rows = [
        _recontract("박", "강남점", 30000, gift=5000),
        _recontract("박", "강남점", 20000, deposit=3000),
        _recontract("최", "강남점", 10000),
        _recontract("이", "부산점", 99999),
    ]
    result = aggregate_recontract(rows, ExclusionIndex.from_entries(entries, MONTH, "recontract"), ["강남"], {})
    assert result.included_count == 2
    assert result.excluded_count == 1
    assert result.unmatched_count == 1
    assert result.fee_total == Decimal("50000")
    assert result.offer.gift_card == Decimal("5000")
    assert result.offer.deposit == Decimal("3000")
    assert result.total_payout == Decimal("58000")
    assert len(result.drilldown) == 1
    assert result.drilldown[0].offer_total == Decimal("8000")


def test_recontract_without_target_outlets_is_zero():
    rows = [_recontract("박", "강남점", 30000)]
    result = aggregate_recontract(rows, ExclusionIndex(month=MONTH, type="recontract"), [], {})
    assert result.included_count == 0
    assert result.unmatched_count == 1
    assert result.total_payout == Decimal("0")


def test_outlet_targets_filtered_by_month_and_type():
    entries = [
        TargetOutletCreate(month=MONTH, type="recontract", outlet_name="강남"),
        TargetOutletCreate(month=MONTH, type="recontract", outlet_name="강남"),
        TargetOutletCreate(month=MONTH, type="postSettlement", outlet_name="부산"),
        TargetOutletCreate(month="2025-04", type="recontract", outlet_name="대구"),
    ]
    assert outlet_targets(entries, MONTH) == ["강남"]


def test_aggregate_combines_streams():
    result = aggregate(
        MONTH,
        [_custom("甲", 1000)],
        [_recontract("박", "강남점", 2000)],
        [],
        [TargetOutletCreate(month=MONTH, type="recontract", outlet_name="강남")],
        {"custom_proposal": {"policy1_multiplier": 2}},
    )
    assert result.month == MONTH
    assert result.custom_proposal.total_payout == Decimal("2000")
    assert result.recontract.total_payout == Decimal("2000")

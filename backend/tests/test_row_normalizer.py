"""原始列正規化：表頭別名、數字解析、缺值隔離。"""
from decimal import Decimal

from app.ob.row_normalizer import (
    cell_str,
    normalize_cost_rows,
    normalize_custom_rows,
    normalize_recontract_rows,
    parse_number,
    remap_row,
    CUSTOM_ALIASES,
)


def test_parse_number_formats():
    assert parse_number("12,000") == Decimal("12000")
    assert parse_number("12,000원") == Decimal("12000")
    assert parse_number(" 3,500 元") == Decimal("3500")
    assert parse_number(1500) == Decimal("1500")
    assert parse_number(2.5) == Decimal("2.5")
    assert parse_number("-") is None
    assert parse_number("") is None
    assert parse_number(None) is None
    assert parse_number(float("nan")) is None


def test_cell_str():
    assert cell_str(3.0) == "3"
    assert cell_str("  王小明 ") == "王小明"
    assert cell_str(None) == ""
    assert cell_str("nan") == ""


def test_remap_row_ignores_case_and_spaces():
    mapped = remap_row({"유치자명": "김", "당월 맞춤제안 매출": 5000, "ProposerID": "P9"}, CUSTOM_ALIASES)
    assert mapped == {"proposer_name": "김", "sales_amount": 5000, "proposer_id": "P9"}


def test_custom_rows_quarantine_missing_identity_and_amount():
    raw = [
        {"proposerName": "王小明", "salesAmount": "1,000", "themeFlag": 1.0},
        {"sales_amount": 100},
        {"推廣人": "李小華", "當月客製提案營收": "abc"},
        {"proposer_id": "P1", "sales_amount": ""},
    ]
    rows, quarantined = normalize_custom_rows(raw, "客製提案.xlsx")
    assert len(rows) == 1
    assert rows[0].proposer_name == "王小明"
    assert rows[0].sales_amount == Decimal("1000")
    assert rows[0].theme_flag == "1"
    assert rows[0].source_sheet == "客製提案.xlsx"
    assert rows[0].row_number == 2

    assert [q.row_number for q in quarantined] == [3, 4, 5]
    assert quarantined[0].reason == "缺少推廣人 ID 與姓名"
    assert quarantined[1].reason == "營收金額非數字"
    assert quarantined[2].reason == "缺少營收金額"
    assert all(q.stream == "custom" for q in quarantined)


def test_custom_rows_keep_source_row_number():
    rows, _ = normalize_custom_rows([{"source_sheet": "3月", "row_number": 10, "proposer_id": "P1", "sales_amount": 1}])
    assert rows[0].source_sheet == "3月"
    assert rows[0].row_number == 10


def test_recontract_optional_offers_default_zero():
    raw = [{"출고처": "강남점", "고객명": "김고객", "정산금액": "30,000", "유치자명": "박"}]
    rows, quarantined = normalize_recontract_rows(raw)
    assert not quarantined
    assert rows[0].outlet == "강남점"
    assert rows[0].settlement_amount == Decimal("30000")
    assert rows[0].offer_gift_card == Decimal("0")
    assert rows[0].offer_deposit == Decimal("0")


def test_recontract_non_numeric_optional_is_quarantined():
    raw = [
        {"outlet": "A", "promoter_name": "박", "settlement_amount": 1000, "offer_gift_card": "x"},
        {"outlet": "A", "settlement_amount": 1000},
        {"outlet": "A", "customer_name": "客戶", "status": "完了"},
    ]
    rows, quarantined = normalize_recontract_rows(raw)
    assert rows == []
    assert [q.reason for q in quarantined] == ["禮券支付額非數字", "缺少推廣人與客戶姓名", "缺少結算金額"]


def test_cost_rows_keep_sign():
    raw = [
        {"項目": "外包人力", "金額": "-30,000"},
        {"item": "獎金", "amount": 5000},
        {"金額": 100},
    ]
    rows, quarantined = normalize_cost_rows(raw, "labor")
    assert [r.amount for r in rows] == [Decimal("-30000"), Decimal("5000")]
    assert len(quarantined) == 1
    assert quarantined[0].stream == "labor"
    assert quarantined[0].reason == "缺少項目名稱"

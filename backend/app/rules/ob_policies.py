"""
OB 折扣與月結政策設定：依 config/ob_discount_rules.yaml、config/ob_settlement_policies.yaml 載入，
DB（ob_config）可整段覆寫；檔案不存在時使用內建預設，不寫死在計算模組。
"""
import copy
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from app.config import settings

DISCOUNTS_KEY = "discounts"
SETTLEMENT_POLICIES_KEY = "settlement_policies"
CONFIG_KEYS = (DISCOUNTS_KEY, SETTLEMENT_POLICIES_KEY)

_FILES = {
    DISCOUNTS_KEY: "ob_discount_rules.yaml",
    SETTLEMENT_POLICIES_KEY: "ob_settlement_policies.yaml",
}


def _default_discounts() -> dict:
    """內建預設（與 YAML 同結構），無檔案時使用"""
    return {
        "selection": {"rate": 0.25},
        "premier": {"amount": -5250, "min_base_fee": 85000},
        "internet": {
            "existing": {"100M": -1100, "500M": -2200, "1G": -3300},
            "together": {"100M": 0, "500M": -2750, "1G": -2750},
        },
        "bundle": {
            "existing": {
                "family_wireless": {
                    "label": "家族無線結合",
                    "tiers": [
                        {"members": 2, "min_fee_sum": 48400, "per_line": -2750},
                        {"members": 2, "min_fee_sum": 1, "per_line": -1650},
                        {"members": 3, "min_fee_sum": 48400, "per_line": -3850},
                        {"members": 3, "min_fee_sum": 1, "per_line": -2200},
                        {"members": 4, "min_fee_sum": 48400, "per_line": -5500},
                        {"members": 4, "min_fee_sum": 1, "per_line": -3300},
                        {"members": 5, "min_fee_sum": 48400, "per_line": -6600},
                        {"members": 5, "min_fee_sum": 1, "per_line": -4400},
                    ],
                },
                "easy_bundle": {
                    "label": "簡易結合",
                    "tiers": [
                        {"members": 2, "min_fee_sum": 88000, "per_line": -4400},
                        {"members": 2, "min_fee_sum": 69000, "per_line": -3300},
                        {"members": 2, "per_line": -2200},
                        {"members": 3, "min_fee_sum": 88000, "per_line": -5500},
                        {"members": 3, "min_fee_sum": 69000, "per_line": -4400},
                        {"members": 3, "per_line": -3300},
                        {"members": 4, "min_fee_sum": 88000, "per_line": -6600},
                        {"members": 4, "min_fee_sum": 69000, "per_line": -5500},
                        {"members": 4, "per_line": -4400},
                    ],
                },
                "family_wired": {
                    "label": "家族有無線結合",
                    "tiers": [
                        {"members": 1, "internet_included": True, "per_line": -3300},
                        {"members": 1, "per_line": -1100},
                        {"members": 2, "internet_included": True, "per_line": -5500},
                        {"members": 2, "per_line": -2200},
                        {"members": 3, "internet_included": True, "per_line": -6600},
                        {"members": 3, "per_line": -3300},
                        {"members": 4, "internet_included": True, "per_line": -7700},
                        {"members": 4, "per_line": -4400},
                        {"members": 5, "internet_included": True, "per_line": -8800},
                        {"members": 5, "per_line": -5500},
                    ],
                },
                "hanbang_yo": {
                    "label": "Hanbang YO 結合",
                    "tiers": [
                        {"min_fee_sum": 48401, "per_line": -8800},
                        {"per_line": -5500},
                    ],
                },
            },
            "together": {
                "label": "共享結合",
                "tiers": [
                    {"members": 1, "per_line": 0},
                    {"members": 2, "per_line": -2000},
                    {"members": 3, "per_line": -4000},
                    {"members": 4, "per_line": -6000},
                    {"members": 5, "per_line": -8000},
                ],
            },
        },
    }


def _default_settlement_policies() -> dict:
    return {
        "custom_proposal": {
            "policy1_multiplier": 2,
            "theme_flag_value": "1",
            "policy3_tiers": [
                {"sales": 3000000, "payout": 300000},
                {"sales": 5000000, "payout": 500000},
                {"sales": 10000000, "payout": 1000000},
            ],
            "per_case_tiers": [
                {"threshold": 20, "unit_amount": 5000},
                {"threshold": 50, "unit_amount": 10000},
            ],
        },
        "recontract": {"outlet_match_ignore_case": True},
        "split": {"vip_ratio": 0.30, "yai_ratio": 0.70, "reconcile": False},
        "companies": {"vip": "VIP Plus", "yai": "YA"},
    }


_DEFAULTS = {
    DISCOUNTS_KEY: _default_discounts,
    SETTLEMENT_POLICIES_KEY: _default_settlement_policies,
}


def _load_yaml(key: str) -> dict:
    path = Path(settings.resolved_rules_dir()) / _FILES[key]
    if not path.exists():
        return _DEFAULTS[key]()
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return data or _DEFAULTS[key]()


def merge_config(base: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """dict 逐層合併；list 與純量整段取代"""
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_config(out[k], v)
        else:
            out[k] = copy.deepcopy(v)
    return out


def load_discount_config(override: Optional[Dict[str, Any]] = None) -> dict:
    return merge_config(_load_yaml(DISCOUNTS_KEY), override)


def load_settlement_policies(override: Optional[Dict[str, Any]] = None) -> dict:
    return merge_config(_load_yaml(SETTLEMENT_POLICIES_KEY), override)


def load_config(key: str, override: Optional[Dict[str, Any]] = None) -> dict:
    if key not in _FILES:
        raise KeyError(key)
    return merge_config(_load_yaml(key), override)

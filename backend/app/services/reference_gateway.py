"""
要金制 / 折扣規則參考資料：讀取失敗時降級為空清單（試算照跑，要金制一律視為查無），不丟例外到試算。
另提供要金制表 Excel 匯入解析（表頭別名比對）。
"""
import io
import logging
from typing import Any, List, Optional, Tuple

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.schemas import PlanReferenceBase

logger = logging.getLogger(__name__)

PLAN_COLUMN_ALIASES = {
    "plan_name": ["plan_name", "planName", "要金制", "要金制名稱", "요금제", "요금제명"],
    "base_fee": ["base_fee", "baseFee", "基本月租", "月租", "기본료", "월정액"],
    "plan_group": ["plan_group", "planGroup", "群組", "要金制群組", "요금제군", "그룹"],
}
REQUIRED_PLAN_COLUMNS = ("plan_name", "base_fee")


async def load_reference(db: AsyncSession) -> Tuple[List[Any], List[Any], bool]:
    """回傳 (plans, discount_rules, degraded)"""
    try:
        plans = await crud.list_plans(db)
        rules = await crud.list_discount_rules(db)
        return plans, rules, False
    except SQLAlchemyError:
        logger.exception("讀取要金制/折扣規則失敗，改以空參考資料試算")
        await db.rollback()
        return [], [], True


def _match_columns(df: pd.DataFrame) -> Optional[dict]:
    cols_lower = {"".join(str(c).split()).lower(): c for c in df.columns}
    mapping = {}
    for key, aliases in PLAN_COLUMN_ALIASES.items():
        for a in aliases:
            if "".join(a.split()).lower() in cols_lower:
                mapping[key] = cols_lower["".join(a.split()).lower()]
                break
    if any(k not in mapping for k in REQUIRED_PLAN_COLUMNS):
        return None
    return mapping


def parse_plan_file(content: bytes, filename: str) -> Tuple[List[PlanReferenceBase], List[str]]:
    """要金制表 → (plans, skipped)；skipped 為無法解析的列說明"""
    ext = (filename or "").lower().split(".")[-1]
    if ext not in ("xlsx", "xls", "ods"):
        raise ValueError("不支援的檔案格式，僅支援 xlsx / xls / ods")
    engine = {"ods": "odf", "xls": "xlrd"}.get(ext, "openpyxl")
    df = pd.read_excel(io.BytesIO(content), engine=engine, sheet_name=0, header=0)
    mapping = _match_columns(df) if df is not None else None
    if not mapping:
        raise ValueError("找不到要金制表頭（要金制名稱 / 基本月租）")

    plans: List[PlanReferenceBase] = []
    skipped: List[str] = []
    for idx, r in df.iterrows():
        name_val = r.get(mapping["plan_name"])
        if pd.isna(name_val) or not str(name_val).strip():
            continue
        fee_val = r.get(mapping["base_fee"])
        try:
            fee = float(str(fee_val).replace(",", "")) if not pd.isna(fee_val) else None
        except (TypeError, ValueError):
            fee = None
        if fee is None:
            skipped.append(f"第 {int(idx) + 2} 列：{str(name_val).strip()} 基本月租非數字")
            continue
        group_val = r.get(mapping["plan_group"]) if "plan_group" in mapping else None
        plans.append(PlanReferenceBase(
            plan_name=str(name_val).strip(),
            plan_group="" if group_val is None or pd.isna(group_val) else str(group_val).strip(),
            base_fee=round(fee),
        ))
    return plans, skipped

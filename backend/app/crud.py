"""CRUD 操作 - 要金制/折扣參考、試算結果、排除人員、對象出庫處、手動調整、月結原始資料與進度"""
import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import (
    ObPlan, ObDiscountRule, ObComparisonResult, ObExclusion, ObTargetOutlet,
    ObManualAdjustment, ObSettlementSource, ObSettlementProgress, ObConfig, ObUserPreference,
)
from app.schemas import (
    PlanReferenceBase, DiscountRuleBase, ComparisonResultSave,
    ExclusionCreate, ExclusionUpdate, TargetOutletCreate, TargetOutletUpdate,
    ManualAdjustmentCreate, ManualAdjustmentUpdate,
)
from app.ob.bundle_comparison import recommend
from app.ob.manual_ledger import normalize_label, normalize_manual_amount
from app.rules.ob_policies import CONFIG_KEYS, load_config

logger = logging.getLogger(__name__)


class ExclusionValidationError(ValueError):
    """排除人員需至少填寫 ID 或姓名"""
    pass


# ---------- 要金制 / 折扣規則 ----------
async def list_plans(db: AsyncSession) -> List[ObPlan]:
    r = await db.execute(select(ObPlan).order_by(ObPlan.plan_group, ObPlan.plan_name))
    return list(r.scalars().all())


async def get_plan_by_name(db: AsyncSession, plan_name: str) -> Optional[ObPlan]:
    r = await db.execute(select(ObPlan).where(ObPlan.plan_name == (plan_name or "").strip()))
    return r.scalar_one_or_none()


async def replace_plans(db: AsyncSession, items: List[PlanReferenceBase]) -> int:
    """整批取代要金制表；同名者後者為準"""
    by_name: Dict[str, PlanReferenceBase] = {}
    for item in items:
        by_name[item.plan_name] = item
    await db.execute(delete(ObPlan))
    for item in by_name.values():
        db.add(ObPlan(plan_name=item.plan_name, plan_group=item.plan_group, base_fee=item.base_fee))
    await db.flush()
    return len(by_name)


async def list_discount_rules(db: AsyncSession) -> List[ObDiscountRule]:
    r = await db.execute(select(ObDiscountRule).order_by(ObDiscountRule.plan_group, ObDiscountRule.rule_kind, ObDiscountRule.id))
    return list(r.scalars().all())


async def replace_discount_rules(db: AsyncSession, items: List[DiscountRuleBase]) -> List[ObDiscountRule]:
    await db.execute(delete(ObDiscountRule))
    rows = [ObDiscountRule(**item.model_dump()) for item in items]
    db.add_all(rows)
    await db.flush()
    return rows


# ---------- 結合試算結果 ----------
async def list_comparison_results(db: AsyncSession, user_id: str) -> List[ObComparisonResult]:
    r = await db.execute(
        select(ObComparisonResult)
        .where(ObComparisonResult.user_id == user_id)
        .order_by(ObComparisonResult.updated_at.desc(), ObComparisonResult.id.desc())
    )
    return list(r.scalars().all())


async def get_comparison_result(db: AsyncSession, result_id: int, user_id: Optional[str] = None) -> Optional[ObComparisonResult]:
    """user_id 有值時只回傳該使用者的紀錄"""
    r = await db.execute(select(ObComparisonResult).where(ObComparisonResult.id == result_id))
    row = r.scalar_one_or_none()
    if row is None or (user_id is not None and row.user_id != user_id):
        return None
    return row


def _comparison_values(data: ComparisonResultSave) -> Dict[str, Any]:
    diff = Decimal(data.existing_amount) - Decimal(data.together_amount)
    chosen = data.chosen_type if data.chosen_type is not None else recommend(diff)
    return {
        "scenario_name": data.scenario_name,
        "inputs_json": data.inputs_json,
        "existing_amount": data.existing_amount,
        "together_amount": data.together_amount,
        "diff": diff,
        "chosen_type": chosen,
        "notes": data.notes,
    }


async def create_comparison_result(db: AsyncSession, data: ComparisonResultSave) -> ObComparisonResult:
    row = ObComparisonResult(user_id=data.user_id, **_comparison_values(data))
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def update_comparison_result(db: AsyncSession, row: ObComparisonResult, data: ComparisonResultSave) -> ObComparisonResult:
    for k, v in _comparison_values(data).items():
        setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


async def save_comparison_result(
    db: AsyncSession, data: ComparisonResultSave, selected_id: Optional[int] = None
) -> Optional[ObComparisonResult]:
    """選定 id 時原地覆寫（不存在或非本人回傳 None），否則新增"""
    selected_id = selected_id if selected_id is not None else data.selected_id
    if selected_id is None:
        return await create_comparison_result(db, data)
    row = await get_comparison_result(db, selected_id, user_id=data.user_id)
    if row is None:
        return None
    return await update_comparison_result(db, row, data)


async def delete_comparison_result(db: AsyncSession, row: ObComparisonResult) -> None:
    await db.delete(row)


# ---------- 排除人員 ----------
def _check_exclusion_identity(target_id: Optional[str], target_name: Optional[str]) -> None:
    if not (target_id or "").strip() and not (target_name or "").strip():
        raise ExclusionValidationError("請輸入推廣人 ID 或姓名")


async def list_exclusions(db: AsyncSession, month: str, type: Optional[str] = None) -> List[ObExclusion]:
    q = select(ObExclusion).where(ObExclusion.month == month)
    if type and type != "all":
        q = q.where(ObExclusion.type == type)
    r = await db.execute(q.order_by(ObExclusion.type, ObExclusion.created_at, ObExclusion.id))
    return list(r.scalars().all())


async def get_exclusion(db: AsyncSession, exclusion_id: int) -> Optional[ObExclusion]:
    r = await db.execute(select(ObExclusion).where(ObExclusion.id == exclusion_id))
    return r.scalar_one_or_none()


async def create_exclusion(db: AsyncSession, data: ExclusionCreate) -> ObExclusion:
    _check_exclusion_identity(data.target_id, data.target_name)
    payload = data.model_dump()
    payload["target_id"] = (payload.get("target_id") or "").strip()
    payload["target_name"] = (payload.get("target_name") or "").strip()
    row = ObExclusion(**payload)
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def update_exclusion(db: AsyncSession, row: ObExclusion, data: ExclusionUpdate) -> ObExclusion:
    payload = data.model_dump(exclude_unset=True)
    target_id = payload.get("target_id", row.target_id)
    target_name = payload.get("target_name", row.target_name)
    _check_exclusion_identity(target_id, target_name)
    for k, v in payload.items():
        if k in ("target_id", "target_name"):
            v = (v or "").strip()
        setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


async def delete_exclusion(db: AsyncSession, row: ObExclusion) -> None:
    await db.delete(row)


# ---------- 對象出庫處 ----------
async def list_target_outlets(db: AsyncSession, month: str, type: Optional[str] = None) -> List[ObTargetOutlet]:
    q = select(ObTargetOutlet).where(ObTargetOutlet.month == month)
    if type and type != "all":
        q = q.where(ObTargetOutlet.type == type)
    r = await db.execute(q.order_by(ObTargetOutlet.type, ObTargetOutlet.outlet_name, ObTargetOutlet.id))
    return list(r.scalars().all())


async def get_target_outlet(db: AsyncSession, outlet_id: int) -> Optional[ObTargetOutlet]:
    r = await db.execute(select(ObTargetOutlet).where(ObTargetOutlet.id == outlet_id))
    return r.scalar_one_or_none()


async def create_target_outlet(db: AsyncSession, data: TargetOutletCreate) -> ObTargetOutlet:
    row = ObTargetOutlet(**data.model_dump())
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def update_target_outlet(db: AsyncSession, row: ObTargetOutlet, data: TargetOutletUpdate) -> ObTargetOutlet:
    payload = data.model_dump(exclude_unset=True)
    if "outlet_name" in payload:
        name = (payload["outlet_name"] or "").strip()
        if not name:
            raise ValueError("出庫處名稱不可空白")
        payload["outlet_name"] = name
    for k, v in payload.items():
        setattr(row, k, v)
    row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


async def delete_target_outlet(db: AsyncSession, row: ObTargetOutlet) -> None:
    await db.delete(row)


# ---------- 手動調整 ----------
async def list_manual_adjustments(db: AsyncSession, month: str, type: Optional[str] = None) -> List[ObManualAdjustment]:
    q = select(ObManualAdjustment).where(ObManualAdjustment.month == month)
    if type and type != "all":
        q = q.where(ObManualAdjustment.type == type)
    r = await db.execute(q.order_by(ObManualAdjustment.type, ObManualAdjustment.created_at, ObManualAdjustment.id))
    return list(r.scalars().all())


async def get_manual_adjustment(db: AsyncSession, entry_id: int, month: Optional[str] = None) -> Optional[ObManualAdjustment]:
    """month 有值時限定同月份，不同月份視為不存在"""
    q = select(ObManualAdjustment).where(ObManualAdjustment.id == entry_id)
    if month is not None:
        q = q.where(ObManualAdjustment.month == month)
    r = await db.execute(q)
    return r.scalar_one_or_none()


async def create_manual_adjustment(db: AsyncSession, data: ManualAdjustmentCreate) -> ObManualAdjustment:
    # 先驗證，失敗時不寫入
    label = normalize_label(data.label)
    amount = normalize_manual_amount(data.amount)
    row = ObManualAdjustment(month=data.month, type=data.type, label=label, amount=amount)
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def update_manual_adjustment(
    db: AsyncSession, row: ObManualAdjustment, data: ManualAdjustmentUpdate
) -> ObManualAdjustment:
    payload = data.model_dump(exclude_unset=True)
    label = normalize_label(payload["label"]) if "label" in payload else row.label
    amount = normalize_manual_amount(payload["amount"]) if "amount" in payload else row.amount
    row.label = label
    row.amount = amount
    row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


async def delete_manual_adjustment(db: AsyncSession, row: ObManualAdjustment) -> None:
    await db.delete(row)


# ---------- 月結原始資料 ----------
async def get_settlement_source(db: AsyncSession, month: str, stream: str) -> Optional[ObSettlementSource]:
    r = await db.execute(
        select(ObSettlementSource).where(ObSettlementSource.month == month, ObSettlementSource.stream == stream)
    )
    return r.scalar_one_or_none()


async def list_settlement_sources(db: AsyncSession, month: str) -> Dict[str, ObSettlementSource]:
    r = await db.execute(select(ObSettlementSource).where(ObSettlementSource.month == month))
    return {row.stream: row for row in r.scalars().all()}


async def upsert_settlement_source(
    db: AsyncSession, month: str, stream: str, rows: List[Dict[str, Any]], file_name: Optional[str] = None
) -> ObSettlementSource:
    """同月同資料流整份取代"""
    row = await get_settlement_source(db, month, stream)
    if row is None:
        row = ObSettlementSource(month=month, stream=stream)
        db.add(row)
    row.rows = list(rows)
    row.row_count = len(rows)
    row.file_name = file_name
    row.imported_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


# ---------- 月結進度 ----------
async def get_settlement_progress(db: AsyncSession, month: str) -> Optional[ObSettlementProgress]:
    r = await db.execute(select(ObSettlementProgress).where(ObSettlementProgress.month == month))
    return r.scalar_one_or_none()


async def upsert_settlement_progress(db: AsyncSession, month: str, progress: Dict[str, Any]) -> ObSettlementProgress:
    row = await get_settlement_progress(db, month)
    if row is None:
        row = ObSettlementProgress(month=month, progress=progress)
        db.add(row)
    else:
        row.progress = progress
        row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row


# ---------- 設定（DB 覆寫 YAML） ----------
async def get_ob_config(db: AsyncSession, config_key: str) -> Optional[Dict[str, Any]]:
    r = await db.execute(select(ObConfig).where(ObConfig.config_key == config_key))
    row = r.scalar_one_or_none()
    if not row or not row.config_value:
        return None
    try:
        return json.loads(row.config_value)
    except ValueError:
        logger.warning("ob_config.%s 不是合法 JSON，忽略", config_key)
        return None


async def set_ob_config(
    db: AsyncSession, config_key: str, value: Dict[str, Any], description: Optional[str] = None
) -> ObConfig:
    r = await db.execute(select(ObConfig).where(ObConfig.config_key == config_key))
    row = r.scalar_one_or_none()
    text = json.dumps(value, ensure_ascii=False)
    if row:
        row.config_value = text
        row.updated_at = datetime.utcnow()
        if description is not None:
            row.description = description
        await db.flush()
        await db.refresh(row)
        return row
    row = ObConfig(config_key=config_key, config_value=text, description=description)
    db.add(row)
    await db.flush()
    await db.refresh(row)
    return row


async def get_all_ob_rules(db: AsyncSession) -> Dict[str, Dict[str, Any]]:
    """YAML 預設 + ob_config 覆寫，回傳 {"discounts": {...}, "settlement_policies": {...}}"""
    result: Dict[str, Dict[str, Any]] = {}
    for key in CONFIG_KEYS:
        result[key] = load_config(key, await get_ob_config(db, key))
    return result


# ---------- 使用者偏好 ----------
async def get_user_preference(db: AsyncSession, user_id: str) -> Optional[ObUserPreference]:
    r = await db.execute(select(ObUserPreference).where(ObUserPreference.user_id == user_id))
    return r.scalar_one_or_none()


async def upsert_user_preference(db: AsyncSession, user_id: str, preferences: Dict[str, Any]) -> ObUserPreference:
    row = await get_user_preference(db, user_id)
    if row is None:
        row = ObUserPreference(user_id=user_id, preferences=preferences)
        db.add(row)
    else:
        row.preferences = preferences
        row.updated_at = datetime.utcnow()
    await db.flush()
    await db.refresh(row)
    return row

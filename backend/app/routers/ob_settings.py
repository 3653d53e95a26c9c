"""OB 設定：結合折扣預設值、月結政策（YAML 預設，DB 覆寫）"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.rules.ob_policies import DISCOUNTS_KEY, SETTLEMENT_POLICIES_KEY

router = APIRouter(prefix="/api/ob/settings", tags=["ob-settings"])


@router.get("", response_model=schemas.ObSettingsRead)
async def get_ob_settings(db: AsyncSession = Depends(get_db)):
    """回傳目前生效的設定（YAML 預設 + DB 覆寫）"""
    return schemas.ObSettingsRead(**await crud.get_all_ob_rules(db))


@router.put("", response_model=schemas.ObSettingsRead)
async def update_ob_settings(
    data: schemas.ObSettingsUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    僅更新有傳的區塊；傳入的物件會整段存為覆寫值，與 YAML 預設逐層合併後生效。
    例：{"settlement_policies": {"split": {"reconcile": true}}}
    """
    if data.discounts is not None:
        await crud.set_ob_config(db, DISCOUNTS_KEY, data.discounts, description="結合折扣覆寫")
    if data.settlement_policies is not None:
        await crud.set_ob_config(db, SETTLEMENT_POLICIES_KEY, data.settlement_policies, description="月結政策覆寫")
    return schemas.ObSettingsRead(**await crud.get_all_ob_rules(db))

"""OB 結合試算 API：既有 vs 共享試算、要金制/折扣參考資料、試算結果儲存。"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.ob.bundle_comparison import compare, mirror_identity_edit
from app.routers.ob_common import RESPONSE_404, read_upload
from app.services.reference_gateway import load_reference, parse_plan_file

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ob", tags=["ob-calculator"])


@router.post("/calculate", response_model=schemas.ComparisonResult, summary="既有結合 vs 共享結合試算")
async def calculate(
    data: schemas.CalculateRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    兩組回線以 line_key 對齊後各自試算；together_lines 未提供時複製 existing_lines。
    參考資料讀取失敗時 reference_degraded=true，所有回線視為查無要金制（0 元）。
    """
    plans, rules, degraded = await load_reference(db)
    config = (await crud.get_all_ob_rules(db))["discounts"]
    return compare(
        data.existing_lines,
        data.together_lines,
        data.shared_options,
        plans,
        rules,
        config,
        reference_degraded=degraded,
    )


@router.post(
    "/lines/identity",
    response_model=schemas.LineSets,
    responses={**RESPONSE_404},
    summary="同步修改回線姓名/電話",
)
async def edit_line_identity(data: schemas.LineIdentityEdit):
    try:
        existing, together = mirror_identity_edit(
            data.existing_lines, data.together_lines, data.line_key,
            customer_name=data.customer_name, phone=data.phone,
        )
    except KeyError:
        raise HTTPException(status_code=404, detail="找不到此回線")
    return schemas.LineSets(existing_lines=existing, together_lines=together)


@router.get("/plans", response_model=List[schemas.PlanReferenceRead], summary="要金制列表")
async def list_plans(db: AsyncSession = Depends(get_db)):
    plans, _, _ = await load_reference(db)
    return [schemas.PlanReferenceRead.model_validate(p) for p in plans]


@router.post("/plans/import", response_model=schemas.PlanImportResult, summary="匯入要金制表（整份取代）")
async def import_plans(
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    raw = await read_upload(file)
    try:
        plans, skipped = parse_plan_file(raw, file.filename or "")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not plans:
        raise HTTPException(status_code=400, detail="檔案中沒有可匯入的要金制")
    count = await crud.replace_plans(db, plans)
    logger.info("要金制表已匯入 %s 筆（略過 %s 筆）", count, len(skipped))
    return schemas.PlanImportResult(imported=count, skipped=skipped)


@router.get("/discounts", response_model=List[schemas.DiscountRuleRead], summary="折扣規則列表")
async def list_discounts(db: AsyncSession = Depends(get_db)):
    _, rules, _ = await load_reference(db)
    return [schemas.DiscountRuleRead.model_validate(r) for r in rules]


@router.put("/discounts", response_model=List[schemas.DiscountRuleRead], summary="整份取代折扣規則")
async def replace_discounts(
    data: List[schemas.DiscountRuleBase],
    db: AsyncSession = Depends(get_db),
):
    rows = await crud.replace_discount_rules(db, data)
    return [schemas.DiscountRuleRead.model_validate(r) for r in rows]


@router.get("/results", response_model=List[schemas.ComparisonResultRead], summary="我的試算結果")
async def list_results(
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    rows = await crud.list_comparison_results(db, user_id)
    return [schemas.ComparisonResultRead.model_validate(r) for r in rows]


@router.post(
    "/results",
    response_model=schemas.ComparisonResultRead,
    summary="儲存試算結果（selected_id 有值時覆寫）",
    responses={**RESPONSE_404},
)
async def save_result(
    data: schemas.ComparisonResultSave,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.save_comparison_result(db, data)
    if row is None:
        raise HTTPException(status_code=404, detail="試算結果不存在")
    return schemas.ComparisonResultRead.model_validate(row)


@router.get(
    "/results/{result_id}",
    response_model=schemas.ComparisonResultRead,
    summary="單筆試算結果",
    responses={**RESPONSE_404},
)
async def get_result(
    result_id: int,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_comparison_result(db, result_id, user_id=user_id)
    if not row:
        raise HTTPException(status_code=404, detail="試算結果不存在")
    return schemas.ComparisonResultRead.model_validate(row)


@router.put(
    "/results/{result_id}",
    response_model=schemas.ComparisonResultRead,
    summary="覆寫試算結果",
    responses={**RESPONSE_404},
)
async def update_result(
    result_id: int,
    data: schemas.ComparisonResultSave,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.save_comparison_result(db, data, selected_id=result_id)
    if row is None:
        raise HTTPException(status_code=404, detail="試算結果不存在")
    return schemas.ComparisonResultRead.model_validate(row)


@router.delete(
    "/results/{result_id}",
    status_code=204,
    summary="刪除試算結果",
    responses={**RESPONSE_404},
)
async def delete_result(
    result_id: int,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_comparison_result(db, result_id, user_id=user_id)
    if not row:
        raise HTTPException(status_code=404, detail="試算結果不存在")
    await crud.delete_comparison_result(db, row)

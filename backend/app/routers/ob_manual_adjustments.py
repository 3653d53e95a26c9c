"""手動調整 API（人事費/費用）：金額一律存為負數，刪改限定同月份。"""
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.ob.manual_ledger import ManualAdjustmentValidationError, totals_by_type
from app.routers.ob_common import RESPONSE_404, require_month

router = APIRouter(prefix="/api/ob/manual-adjustments", tags=["ob-manual-adjustments"])


@router.get("", response_model=schemas.ManualAdjustmentList, summary="手動調整列表與合計")
async def list_manual_adjustments(
    month: str = Query(..., description="YYYY-MM"),
    type: Literal["labor", "cost", "all"] = Query("all"),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    rows = await crud.list_manual_adjustments(db, month, type)
    totals = totals_by_type(rows)
    return schemas.ManualAdjustmentList(
        items=[schemas.ManualAdjustmentRead.model_validate(r) for r in rows],
        totals=schemas.ManualAdjustmentTotals(**totals),
    )


@router.post("", response_model=schemas.ManualAdjustmentRead, status_code=201, summary="新增手動調整")
async def create_manual_adjustment(
    data: schemas.ManualAdjustmentCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await crud.create_manual_adjustment(db, data)
    except ManualAdjustmentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.ManualAdjustmentRead.model_validate(row)


@router.put(
    "/{entry_id}",
    response_model=schemas.ManualAdjustmentRead,
    summary="更新手動調整",
    responses={**RESPONSE_404},
)
async def update_manual_adjustment(
    entry_id: int,
    data: schemas.ManualAdjustmentUpdate,
    month: str = Query(..., description="YYYY-MM"),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    row = await crud.get_manual_adjustment(db, entry_id, month=month)
    if not row:
        raise HTTPException(status_code=404, detail="手動調整不存在")
    try:
        row = await crud.update_manual_adjustment(db, row, data)
    except ManualAdjustmentValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.ManualAdjustmentRead.model_validate(row)


@router.delete(
    "/{entry_id}",
    status_code=204,
    summary="刪除手動調整",
    responses={**RESPONSE_404},
)
async def delete_manual_adjustment(
    entry_id: int,
    month: str = Query(..., description="YYYY-MM"),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    row = await crud.get_manual_adjustment(db, entry_id, month=month)
    if not row:
        raise HTTPException(status_code=404, detail="手動調整不存在")
    await crud.delete_manual_adjustment(db, row)

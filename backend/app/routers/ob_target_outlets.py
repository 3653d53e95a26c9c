"""對象出庫處 API：續約結算只計入出庫處包含這些名稱的資料列。"""
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.routers.ob_common import RESPONSE_404, require_month

router = APIRouter(prefix="/api/ob/target-outlets", tags=["ob-target-outlets"])


@router.get("", response_model=List[schemas.TargetOutletRead], summary="對象出庫處列表")
async def list_target_outlets(
    month: str = Query(..., description="YYYY-MM"),
    type: Literal["recontract", "postSettlement", "all"] = Query("all"),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    rows = await crud.list_target_outlets(db, month, type)
    return [schemas.TargetOutletRead.model_validate(r) for r in rows]


@router.post("", response_model=schemas.TargetOutletRead, status_code=201, summary="新增對象出庫處")
async def create_target_outlet(
    data: schemas.TargetOutletCreate,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.create_target_outlet(db, data)
    return schemas.TargetOutletRead.model_validate(row)


@router.put(
    "/{outlet_id}",
    response_model=schemas.TargetOutletRead,
    summary="更新對象出庫處",
    responses={**RESPONSE_404},
)
async def update_target_outlet(
    outlet_id: int,
    data: schemas.TargetOutletUpdate,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_target_outlet(db, outlet_id)
    if not row:
        raise HTTPException(status_code=404, detail="對象出庫處不存在")
    try:
        row = await crud.update_target_outlet(db, row, data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.TargetOutletRead.model_validate(row)


@router.delete(
    "/{outlet_id}",
    status_code=204,
    summary="刪除對象出庫處",
    responses={**RESPONSE_404},
)
async def delete_target_outlet(
    outlet_id: int,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_target_outlet(db, outlet_id)
    if not row:
        raise HTTPException(status_code=404, detail="對象出庫處不存在")
    await crud.delete_target_outlet(db, row)

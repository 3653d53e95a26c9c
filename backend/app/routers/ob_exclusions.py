"""排除人員 API：依 (月份, 類型) 登錄不列入月結彙總的推廣人。"""
from typing import List, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.crud import ExclusionValidationError
from app.routers.ob_common import RESPONSE_404, require_month

router = APIRouter(prefix="/api/ob/exclusions", tags=["ob-exclusions"])


@router.get("", response_model=List[schemas.ExclusionRead], summary="排除人員列表")
async def list_exclusions(
    month: str = Query(..., description="YYYY-MM"),
    type: Literal["custom", "recontract", "all"] = Query("all"),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    rows = await crud.list_exclusions(db, month, type)
    return [schemas.ExclusionRead.model_validate(r) for r in rows]


@router.post("", response_model=schemas.ExclusionRead, status_code=201, summary="新增排除人員")
async def create_exclusion(
    data: schemas.ExclusionCreate,
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await crud.create_exclusion(db, data)
    except ExclusionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.ExclusionRead.model_validate(row)


@router.put(
    "/{exclusion_id}",
    response_model=schemas.ExclusionRead,
    summary="更新排除人員",
    responses={**RESPONSE_404},
)
async def update_exclusion(
    exclusion_id: int,
    data: schemas.ExclusionUpdate,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_exclusion(db, exclusion_id)
    if not row:
        raise HTTPException(status_code=404, detail="排除紀錄不存在")
    try:
        row = await crud.update_exclusion(db, row, data)
    except ExclusionValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return schemas.ExclusionRead.model_validate(row)


@router.delete(
    "/{exclusion_id}",
    status_code=204,
    summary="刪除排除人員",
    responses={**RESPONSE_404},
)
async def delete_exclusion(
    exclusion_id: int,
    db: AsyncSession = Depends(get_db),
):
    row = await crud.get_exclusion(db, exclusion_id)
    if not row:
        raise HTTPException(status_code=404, detail="排除紀錄不存在")
    await crud.delete_exclusion(db, row)

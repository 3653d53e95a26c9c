"""排除人員與對象出庫處：CRUD、識別欄位驗證、月份/類型篩選。"""
import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from app import crud
from app.crud import ExclusionValidationError
from app.routers import ob_exclusions, ob_target_outlets
from app.schemas import (
    ExclusionCreate,
    ExclusionUpdate,
    TargetOutletCreate,
    TargetOutletUpdate,
)


def test_exclusion_month_format_validated():
    with pytest.raises(ValidationError):
        ExclusionCreate(month="2025/03", type="custom", target_id="P1")


def test_target_outlet_name_required():
    with pytest.raises(ValidationError):
        TargetOutletCreate(month="2025-03", type="recontract", outlet_name="  ")


@pytest.mark.asyncio
async def test_exclusion_requires_id_or_name(db):
    with pytest.raises(ExclusionValidationError):
        await crud.create_exclusion(db, ExclusionCreate(month="2025-03", type="custom", target_id=" ", target_name=""))

    with pytest.raises(HTTPException) as exc:
        await ob_exclusions.create_exclusion(ExclusionCreate(month="2025-03", type="custom"), db=db)
    assert exc.value.status_code == 400


@pytest.mark.asyncio
async def test_exclusion_list_filters_by_month_and_type(db):
    await crud.create_exclusion(db, ExclusionCreate(month="2025-03", type="custom", target_id=" P1 ", reason="離職"))
    await crud.create_exclusion(db, ExclusionCreate(month="2025-03", type="recontract", target_name="박"))
    await crud.create_exclusion(db, ExclusionCreate(month="2025-04", type="custom", target_name="王"))
    await db.commit()

    all_march = await ob_exclusions.list_exclusions(month="2025-03", type="all", db=db)
    assert len(all_march) == 2
    custom = await ob_exclusions.list_exclusions(month="2025-03", type="custom", db=db)
    assert [e.target_id for e in custom] == ["P1"]
    assert custom[0].reason == "離職"


@pytest.mark.asyncio
async def test_exclusion_update_keeps_identity_rule(db):
    row = await crud.create_exclusion(db, ExclusionCreate(month="2025-03", type="custom", target_id="P1"))
    await db.commit()

    updated = await ob_exclusions.update_exclusion(row.id, ExclusionUpdate(target_name="王小明"), db=db)
    assert updated.target_id == "P1"
    assert updated.target_name == "王小明"

    with pytest.raises(HTTPException) as exc:
        await ob_exclusions.update_exclusion(row.id, ExclusionUpdate(target_id="", target_name=""), db=db)
    assert exc.value.status_code == 400

    with pytest.raises(HTTPException) as exc:
        await ob_exclusions.update_exclusion(9999, ExclusionUpdate(reason="x"), db=db)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_exclusion_delete(db):
    row = await crud.create_exclusion(db, ExclusionCreate(month="2025-03", type="custom", target_id="P1"))
    await db.commit()
    await ob_exclusions.delete_exclusion(row.id, db=db)
    await db.commit()
    assert await crud.get_exclusion(db, row.id) is None
    with pytest.raises(HTTPException) as exc:
        await ob_exclusions.delete_exclusion(row.id, db=db)
    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_target_outlet_crud(db):
    created = await ob_target_outlets.create_target_outlet(
        TargetOutletCreate(month="2025-03", type="recontract", outlet_name=" 강남 ", registrant="管理員"), db=db
    )
    await ob_target_outlets.create_target_outlet(
        TargetOutletCreate(month="2025-03", type="postSettlement", outlet_name="부산"), db=db
    )
    await db.commit()
    assert created.outlet_name == "강남"

    rows = await ob_target_outlets.list_target_outlets(month="2025-03", type="recontract", db=db)
    assert [r.outlet_name for r in rows] == ["강남"]

    updated = await ob_target_outlets.update_target_outlet(created.id, TargetOutletUpdate(outlet_name="서초"), db=db)
    assert updated.outlet_name == "서초"

    with pytest.raises(HTTPException) as exc:
        await ob_target_outlets.update_target_outlet(created.id, TargetOutletUpdate(outlet_name=" "), db=db)
    assert exc.value.status_code == 400

    await ob_target_outlets.delete_target_outlet(created.id, db=db)
    await db.commit()
    rows = await ob_target_outlets.list_target_outlets(month="2025-03", type="all", db=db)
    assert [r.outlet_name for r in rows] == ["부산"]

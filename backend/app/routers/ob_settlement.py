"""OB 月結 API：原始資料上傳、月結總覽、流程進度（整份 upsert / 單步動作）、明細匯出。"""
import io
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, UploadFile, File
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import crud, schemas
from app.ob.row_normalizer import normalize_cost_rows, normalize_custom_rows, normalize_recontract_rows
from app.ob.settlement_export import (
    EmptyExportError,
    build_content_disposition,
    build_rows_excel,
    export_filenames,
)
from app.ob.settlement_session import SettlementSession
from app.ob.settlement_workflow import WorkflowPreconditionError, states_of, validate_progress
from app.routers.ob_common import read_upload, require_month
from app.services.progress_gateway import DbProgressGateway, PersistenceFailure
from app.services.settlement_source import SourceParseError, parse_source_file
from app.services.settlement_summary import build_settlement_summary, load_progress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ob", tags=["ob-settlement"])

Stream = Literal["custom", "recontract", "labor", "cost"]


def _quarantined_count(stream: str, rows: list) -> int:
    if stream == "custom":
        return len(normalize_custom_rows(rows)[1])
    if stream == "recontract":
        return len(normalize_recontract_rows(rows)[1])
    return len(normalize_cost_rows(rows, stream)[1])


@router.get(
    "/settlement/{month}/summary",
    response_model=schemas.SettlementSummaryResponse,
    summary="月結總覽（彙總、分配、進度一次回傳）",
)
async def get_settlement_summary(month: str, db: AsyncSession = Depends(get_db)):
    month = require_month(month)
    try:
        return await build_settlement_summary(db, month)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/settlement/{month}/sources/{stream}",
    response_model=schemas.SourceImportResult,
    summary="上傳月結原始資料（xlsx / xls / ods，整份取代）",
)
async def upload_settlement_source(
    month: str,
    stream: Stream,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    raw = await read_upload(file)
    try:
        rows = parse_source_file(raw, file.filename or "", stream)
    except SourceParseError as e:
        raise HTTPException(status_code=400, detail=str(e))
    src = await crud.upsert_settlement_source(db, month, stream, rows, file_name=file.filename)
    quarantined = _quarantined_count(stream, rows)
    logger.info("月結原始資料已匯入 month=%s stream=%s rows=%s quarantined=%s", month, stream, src.row_count, quarantined)
    return schemas.SourceImportResult(
        month=month, stream=stream, file_name=src.file_name, row_count=src.row_count, quarantined_count=quarantined
    )


@router.put(
    "/settlement/{month}/sources/{stream}",
    response_model=schemas.SourceImportResult,
    summary="以 JSON 取代月結原始資料",
)
async def put_settlement_source(
    month: str,
    stream: Stream,
    data: schemas.SourceRowsPut,
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    src = await crud.upsert_settlement_source(db, month, stream, data.rows, file_name=data.file_name)
    return schemas.SourceImportResult(
        month=month,
        stream=stream,
        file_name=src.file_name,
        row_count=src.row_count,
        quarantined_count=_quarantined_count(stream, data.rows),
    )


@router.get("/settlement/{month}/progress", response_model=schemas.ProgressRead, summary="月結流程進度")
async def get_settlement_progress(month: str, db: AsyncSession = Depends(get_db)):
    month = require_month(month)
    try:
        return await load_progress(db, month)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.post(
    "/settlement/{month}/progress/actions",
    response_model=schemas.ProgressRead,
    summary="執行流程動作（完成、儲存帳戶、匯款、確認、發票）",
)
async def apply_settlement_action(
    month: str,
    action: schemas.ProgressAction,
    db: AsyncSession = Depends(get_db),
):
    month = require_month(month)
    session = SettlementSession(DbProgressGateway(db))
    await session.switch_month(month)
    if session.notice:
        raise HTTPException(status_code=503, detail=session.notice)
    try:
        progress = await session.apply(action)
    except WorkflowPreconditionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return schemas.ProgressRead(month=month, progress=progress, states=states_of(progress))


@router.post(
    "/settlement-progress",
    response_model=schemas.ProgressRead,
    summary="整份儲存月結進度（以月份 upsert）",
)
async def upsert_settlement_progress(
    data: schemas.ProgressUpsert,
    db: AsyncSession = Depends(get_db),
):
    try:
        progress = validate_progress(data.progress)
    except WorkflowPreconditionError as e:
        raise HTTPException(status_code=422, detail=str(e))
    try:
        await DbProgressGateway(db).save(data.month, progress)
    except PersistenceFailure as e:
        raise HTTPException(status_code=503, detail=str(e))
    return schemas.ProgressRead(month=data.month, progress=progress, states=states_of(progress))


@router.get("/settlement/{month}/export/{kind}", summary="匯出月結明細 Excel")
async def export_settlement_rows(
    month: str,
    kind: Literal["custom", "recontract"],
    db: AsyncSession = Depends(get_db),
):
    """匯出彙總後計入的明細（已排除人員與出庫處過濾），無資料時 400"""
    month = require_month(month)
    summary = await build_settlement_summary(db, month)
    rows = summary.custom_proposal.rows if kind == "custom" else summary.recontract.rows
    try:
        content = build_rows_excel(kind, rows, month)
    except EmptyExportError as e:
        raise HTTPException(status_code=400, detail=str(e))
    ascii_name, unicode_name = export_filenames(kind, month)
    return StreamingResponse(
        io.BytesIO(content),
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": build_content_disposition(ascii_name, unicode_name)},
    )

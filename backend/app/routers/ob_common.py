"""OB 各 router 共用：月份參數檢查、上傳大小限制"""
from fastapi import HTTPException, UploadFile

from app.config import settings
from app.schemas import validate_month

RESPONSE_404 = {404: {"description": "資源不存在"}}
MAX_SIZE = settings.max_upload_size_mb * 1024 * 1024


def require_month(month: str) -> str:
    try:
        return validate_month(month)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


async def read_upload(file: UploadFile) -> bytes:
    raw = await file.read()
    if not raw:
        raise HTTPException(status_code=400, detail="檔案為空")
    if len(raw) > MAX_SIZE:
        raise HTTPException(status_code=400, detail=f"檔案不得超過 {settings.max_upload_size_mb}MB")
    return raw

"""使用者偏好 API（常用要金制、檢視模式、預設月份）"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app import schemas
from app.ob.preferences import DbPreferencesStore

router = APIRouter(prefix="/api/ob/preferences", tags=["ob-preferences"])


@router.get("/{user_id}", response_model=schemas.PreferencesRead)
async def get_preferences(user_id: str, db: AsyncSession = Depends(get_db)):
    return await DbPreferencesStore(db).get(user_id)


@router.put("/{user_id}", response_model=schemas.PreferencesRead)
async def put_preferences(
    user_id: str,
    data: schemas.PreferencesBase,
    db: AsyncSession = Depends(get_db),
):
    return await DbPreferencesStore(db).put(user_id, data)

"""使用者偏好（常用要金制、檢視模式、預設月份）：以 PreferencesStore 注入，不使用全域快取"""
from typing import Dict, Optional, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.schemas import PreferencesBase, PreferencesRead


class PreferencesStore(Protocol):
    async def get(self, user_id: str) -> PreferencesRead:
        ...

    async def put(self, user_id: str, prefs: PreferencesBase) -> PreferencesRead:
        ...


class DbPreferencesStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: str) -> PreferencesRead:
        row = await crud.get_user_preference(self.db, user_id)
        prefs = _from_json(row.preferences if row else None)
        return PreferencesRead(user_id=user_id, **prefs.model_dump())

    async def put(self, user_id: str, prefs: PreferencesBase) -> PreferencesRead:
        # 常用要金制去重、保留順序
        favorites = list(dict.fromkeys(p.strip() for p in prefs.favorite_plans if p and p.strip()))
        prefs = prefs.model_copy(update={"favorite_plans": favorites})
        await crud.upsert_user_preference(self.db, user_id, prefs.model_dump())
        return PreferencesRead(user_id=user_id, **prefs.model_dump())


def _from_json(data: Optional[dict]) -> PreferencesBase:
    if not data:
        return PreferencesBase()
    return PreferencesBase.model_validate(data)

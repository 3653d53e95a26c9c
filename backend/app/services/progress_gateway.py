"""
月結進度存取（以 month 為鍵整份 upsert，可重送）。
DB 實作寫入前將匯款帳號加密、讀取時解密；記錄 log 時帳號一律遮罩。
路由以 DbProgressGateway 共用請求 session；SessionFactoryProgressGateway 為函式庫 API，
供請求範圍外長時間存活的 SettlementSession 自行開 session 使用（路由不使用）。
"""
import logging
from typing import Optional, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app import crud
from app.crypto import decrypt_progress_accounts, encrypt_progress_accounts, mask_bank_account
from app.schemas import WorkflowProgress

logger = logging.getLogger(__name__)


class PersistenceFailure(ValueError):
    """進度儲存失敗（網路 / DB），本地狀態保留，需由使用者重試"""
    pass


class ProgressGateway(Protocol):
    async def load(self, month: str) -> Optional[WorkflowProgress]:
        ...

    async def save(self, month: str, progress: WorkflowProgress) -> WorkflowProgress:
        ...


def progress_from_json(data: Optional[dict]) -> Optional[WorkflowProgress]:
    if not data:
        return None
    return WorkflowProgress.model_validate(decrypt_progress_accounts(data))


def progress_to_json(progress: WorkflowProgress) -> dict:
    return encrypt_progress_accounts(progress.model_dump())


def _masked_accounts(progress: WorkflowProgress) -> dict:
    return {k: mask_bank_account(v.account_number) for k, v in progress.companies.items()}


class DbProgressGateway:
    """以呼叫端提供的 AsyncSession 讀寫（由呼叫端 commit）"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def load(self, month: str) -> Optional[WorkflowProgress]:
        try:
            row = await crud.get_settlement_progress(self.db, month)
        except SQLAlchemyError as e:
            raise PersistenceFailure("讀取月結進度失敗") from e
        return progress_from_json(row.progress) if row else None

    async def save(self, month: str, progress: WorkflowProgress) -> WorkflowProgress:
        try:
            await crud.upsert_settlement_progress(self.db, month, progress_to_json(progress))
        except SQLAlchemyError as e:
            logger.exception("儲存月結進度失敗 month=%s", month)
            raise PersistenceFailure("儲存月結進度失敗，請稍後重試") from e
        logger.info("月結進度已儲存 month=%s accounts=%s", month, _masked_accounts(progress))
        return progress


class SessionFactoryProgressGateway:
    """每次讀寫開新的 session 並 commit，供長時間存活的 SettlementSession 使用"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def load(self, month: str) -> Optional[WorkflowProgress]:
        async with self.session_factory() as db:
            return await DbProgressGateway(db).load(month)

    async def save(self, month: str, progress: WorkflowProgress) -> WorkflowProgress:
        async with self.session_factory() as db:
            try:
                saved = await DbProgressGateway(db).save(month, progress)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise PersistenceFailure("儲存月結進度失敗，請稍後重試") from e
            return saved

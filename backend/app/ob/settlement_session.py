"""
單一操作者的月結流程 session：本地狀態先變更再存檔（樂觀更新）。
存檔失敗不回滾，記錄可關閉的提示，由使用者以 retry_save() 重送。
切換月份時以 generation 計數器作廢較舊的載入結果，避免晚到的回應蓋掉新月份。
"""
import logging
from typing import Optional

from app.ob import settlement_workflow as workflow
from app.schemas import ProgressAction, WorkflowProgress
from app.services.progress_gateway import PersistenceFailure, ProgressGateway

logger = logging.getLogger(__name__)


class SettlementSession:
    def __init__(self, gateway: ProgressGateway, month: Optional[str] = None):
        self.gateway = gateway
        self.month = month
        self.progress = WorkflowProgress()
        self.notice: Optional[str] = None
        self.dirty = False
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    async def switch_month(self, month: str) -> bool:
        """切換月份並載入；若載入期間又切換了月份，回傳 False 且不套用結果"""
        self._generation += 1
        my_generation = self._generation
        self.month = month
        self.progress = WorkflowProgress()
        self.dirty = False
        self.notice = None
        try:
            loaded = await self.gateway.load(month)
        except PersistenceFailure as e:
            if my_generation == self._generation:
                self.notice = str(e)
            return False
        if my_generation != self._generation:
            logger.info("捨棄過期的進度載入 month=%s", month)
            return False
        self.progress = loaded or WorkflowProgress()
        return True

    def dismiss_notice(self) -> None:
        self.notice = None

    async def apply(self, action: ProgressAction) -> WorkflowProgress:
        """先套用到本地（不合法時 WorkflowPreconditionError，狀態不變），再存檔"""
        if not self.month:
            raise workflow.WorkflowPreconditionError("尚未選擇月份")
        self.progress = workflow.apply_action(self.progress, action)
        self.dirty = True
        await self._save()
        return self.progress

    async def retry_save(self) -> WorkflowProgress:
        if not self.month:
            raise workflow.WorkflowPreconditionError("尚未選擇月份")
        await self._save()
        return self.progress

    async def _save(self) -> None:
        month = self.month
        generation = self._generation
        try:
            await self.gateway.save(month, self.progress)
        except PersistenceFailure as e:
            if generation == self._generation:
                self.notice = str(e)
            raise
        if generation == self._generation:
            self.dirty = False
            self.notice = None

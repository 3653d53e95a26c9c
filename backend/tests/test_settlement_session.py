"""月結 session：樂觀更新、存檔失敗保留狀態並可重送、切換月份時捨棄過期載入。"""
import asyncio
from typing import Dict, Optional

import pytest

from app.ob.settlement_session import SettlementSession
from app.ob.settlement_workflow import WorkflowPreconditionError
from app.schemas import InvoiceProgress, ProgressAction, WorkflowProgress
from app.services.progress_gateway import PersistenceFailure


class FakeGateway:
    def __init__(self):
        self.store: Dict[str, WorkflowProgress] = {}
        self.fail_save = False
        self.fail_load = False
        self.gates: Dict[str, asyncio.Event] = {}
        self.saves = 0

    async def load(self, month: str) -> Optional[WorkflowProgress]:
        if month in self.gates:
            await self.gates[month].wait()
        if self.fail_load:
            raise PersistenceFailure("讀取月結進度失敗")
        return self.store.get(month)

    async def save(self, month: str, progress: WorkflowProgress) -> WorkflowProgress:
        self.saves += 1
        if self.fail_save:
            raise PersistenceFailure("儲存月結進度失敗，請稍後重試")
        self.store[month] = progress
        return progress


COMPLETE_VIP = ProgressAction(action="set_completed", company="vip", value=True)


@pytest.mark.asyncio
async def test_apply_saves_progress():
    gw = FakeGateway()
    session = SettlementSession(gw)
    assert await session.switch_month("2025-03") is True
    progress = await session.apply(COMPLETE_VIP)
    assert progress.companies["vip"].completed is True
    assert gw.store["2025-03"].companies["vip"].completed is True
    assert session.dirty is False
    assert session.notice is None


@pytest.mark.asyncio
async def test_save_failure_keeps_local_state_and_retry():
    gw = FakeGateway()
    session = SettlementSession(gw)
    await session.switch_month("2025-03")
    gw.fail_save = True
    with pytest.raises(PersistenceFailure):
        await session.apply(COMPLETE_VIP)
    assert session.progress.companies["vip"].completed is True
    assert session.dirty is True
    assert session.notice
    assert "2025-03" not in gw.store

    gw.fail_save = False
    await session.retry_save()
    assert session.dirty is False
    assert session.notice is None
    assert gw.store["2025-03"].companies["vip"].completed is True


@pytest.mark.asyncio
async def test_invalid_action_leaves_state_unchanged():
    gw = FakeGateway()
    session = SettlementSession(gw)
    await session.switch_month("2025-03")
    before = session.progress
    with pytest.raises(WorkflowPreconditionError):
        await session.apply(ProgressAction(action="set_deposit", company="vip", value=True))
    assert session.progress == before
    assert gw.saves == 0


@pytest.mark.asyncio
async def test_apply_without_month_rejected():
    session = SettlementSession(FakeGateway())
    with pytest.raises(WorkflowPreconditionError):
        await session.apply(COMPLETE_VIP)


@pytest.mark.asyncio
async def test_stale_load_is_discarded():
    """先切到 3 月（載入卡住），再切到 4 月；3 月的結果晚到時不可覆蓋 4 月"""
    gw = FakeGateway()
    gw.store["2025-03"] = WorkflowProgress(invoice=InvoiceProgress(issued=True))
    gw.store["2025-04"] = WorkflowProgress(invoice=InvoiceProgress(approved=True))
    gw.gates["2025-03"] = asyncio.Event()
    session = SettlementSession(gw)

    slow = asyncio.create_task(session.switch_month("2025-03"))
    await asyncio.sleep(0)
    assert await session.switch_month("2025-04") is True
    gw.gates["2025-03"].set()
    assert await slow is False

    assert session.month == "2025-04"
    assert session.progress.invoice.approved is True
    assert session.progress.invoice.issued is False


@pytest.mark.asyncio
async def test_load_failure_sets_dismissible_notice():
    gw = FakeGateway()
    gw.fail_load = True
    session = SettlementSession(gw)
    assert await session.switch_month("2025-03") is False
    assert session.notice
    session.dismiss_notice()
    assert session.notice is None

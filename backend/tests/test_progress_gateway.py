"""月結進度存取：以 month upsert、帳號加密存放、讀取解密；router 動作與整份上傳。"""
import pytest
from cryptography.fernet import Fernet
from fastapi import HTTPException

from app import crud, crypto
from app.config import settings
from app.routers import ob_settlement
from app.schemas import CompanyProgress, InvoiceProgress, ProgressAction, ProgressUpsert, WorkflowProgress
from app.services.progress_gateway import DbProgressGateway, SessionFactoryProgressGateway


@pytest.fixture
def encryption_key(monkeypatch):
    monkeypatch.setattr(settings, "encryption_key", Fernet.generate_key().decode("utf-8"))
    crypto.reset_fernet()
    yield
    crypto.reset_fernet()


def _saved_progress() -> WorkflowProgress:
    return WorkflowProgress(
        invoice=InvoiceProgress(issued=True, approved=True),
        companies={
            "vip": CompanyProgress(completed=True, bank_name="國泰世華", account_number="123456789012",
                                   is_saved=True, editing=False),
        },
    )


def test_mask_bank_account():
    assert crypto.mask_bank_account("123456789012") == "****9012"
    assert crypto.mask_bank_account("12") == "****"


@pytest.mark.asyncio
async def test_account_number_encrypted_at_rest(db, encryption_key):
    gw = DbProgressGateway(db)
    await gw.save("2025-03", _saved_progress())
    await db.commit()

    row = await crud.get_settlement_progress(db, "2025-03")
    stored = row.progress["companies"]["vip"]["account_number"]
    assert stored != "123456789012"

    loaded = await gw.load("2025-03")
    assert loaded.companies["vip"].account_number == "123456789012"
    assert loaded.companies["yai"] == CompanyProgress()


@pytest.mark.asyncio
async def test_upsert_replaces_by_month(db):
    gw = DbProgressGateway(db)
    await gw.save("2025-03", WorkflowProgress())
    await gw.save("2025-03", _saved_progress())
    await db.commit()
    loaded = await gw.load("2025-03")
    assert loaded.companies["vip"].is_saved is True
    assert await gw.load("2025-04") is None


@pytest.mark.asyncio
async def test_session_factory_gateway_commits(async_engine_and_session):
    _, async_session = async_engine_and_session
    gw = SessionFactoryProgressGateway(async_session)
    await gw.save("2025-03", _saved_progress())
    loaded = await gw.load("2025-03")
    assert loaded.companies["vip"].bank_name == "國泰世華"


@pytest.mark.asyncio
async def test_router_action_flow(db):
    await ob_settlement.apply_settlement_action(
        "2025-03", ProgressAction(action="set_invoice", field="issued", value=True), db=db
    )
    await ob_settlement.apply_settlement_action(
        "2025-03", ProgressAction(action="set_invoice", field="approved", value=True), db=db
    )
    result = await ob_settlement.apply_settlement_action(
        "2025-03", ProgressAction(action="set_completed", company="yai", value=True), db=db
    )
    assert result.states["yai"] == "completed"

    with pytest.raises(HTTPException) as exc:
        await ob_settlement.apply_settlement_action(
            "2025-03", ProgressAction(action="set_confirm", company="yai", value=True), db=db
        )
    assert exc.value.status_code == 409

    read = await ob_settlement.get_settlement_progress("2025-03", db=db)
    assert read.progress.companies["yai"].completed is True
    assert read.progress.companies["yai"].confirm_done is False


@pytest.mark.asyncio
async def test_router_upsert_validates(db):
    ok = await ob_settlement.upsert_settlement_progress(ProgressUpsert(month="2025-03", progress=_saved_progress()), db=db)
    assert ok.states["vip"] == "bank_saved"

    bad = WorkflowProgress(companies={"vip": CompanyProgress(deposit_done=True)})
    with pytest.raises(HTTPException) as exc:
        await ob_settlement.upsert_settlement_progress(ProgressUpsert(month="2025-03", progress=bad), db=db)
    assert exc.value.status_code == 422

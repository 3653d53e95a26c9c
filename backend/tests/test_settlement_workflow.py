"""
月結流程狀態機測試。
覆蓋：發票閘門、完成 → 帳戶 → 匯款 → 確認 的順序、取消發票/取消完成的連動重設、整份上傳檢查。
"""
import pytest

from app.ob import settlement_workflow as wf
from app.ob.settlement_workflow import WorkflowPreconditionError
from app.schemas import CompanyProgress, InvoiceProgress, ProgressAction, WorkflowProgress


def _ready() -> WorkflowProgress:
    """發票已開立並核准、兩公司皆已完成"""
    p = WorkflowProgress(invoice=InvoiceProgress(issued=True, approved=True))
    p = wf.set_completed(p, "vip", True)
    return wf.set_completed(p, "yai", True)


def _deposited() -> WorkflowProgress:
    p = wf.save_bank(_ready(), "vip", "國泰世華", "123456789012")
    return wf.set_deposit(p, "vip", True)


def test_default_progress_has_both_companies():
    p = WorkflowProgress()
    assert set(p.companies) == {"vip", "yai"}
    assert wf.states_of(p) == {"vip": wf.ENTERING, "yai": wf.ENTERING}


def test_partial_companies_are_filled():
    p = WorkflowProgress.model_validate({"companies": {"vip": {"completed": True}}})
    assert p.companies["vip"].completed is True
    assert p.companies["yai"].completed is False


def test_bank_save_requires_invoice_gate():
    p = wf.set_completed(WorkflowProgress(), "vip", True)
    with pytest.raises(WorkflowPreconditionError):
        wf.save_bank(p, "vip", "銀行", "123")


def test_bank_save_requires_completed():
    p = WorkflowProgress(invoice=InvoiceProgress(issued=True, approved=True))
    with pytest.raises(WorkflowPreconditionError):
        wf.save_bank(p, "vip", "銀行", "123")


def test_bank_save_requires_fields():
    with pytest.raises(WorkflowPreconditionError):
        wf.save_bank(_ready(), "vip", " ", "123")


def test_happy_path_to_confirm():
    p = wf.save_bank(_ready(), "vip", "國泰世華", "123456789012")
    assert wf.company_state(p.companies["vip"]) == wf.BANK_SAVED
    assert p.companies["vip"].editing is False
    p = wf.set_deposit(p, "vip", True)
    p = wf.set_confirm(p, "vip", True)
    assert wf.states_of(p) == {"vip": wf.CONFIRM_DONE, "yai": wf.COMPLETED}


def test_actions_return_new_objects():
    p = _ready()
    out = wf.save_bank(p, "vip", "銀行", "123")
    assert p.companies["vip"].is_saved is False
    assert out.companies["vip"].is_saved is True


def test_confirm_before_deposit_rejected():
    p = wf.save_bank(_ready(), "vip", "銀行", "123")
    with pytest.raises(WorkflowPreconditionError):
        wf.set_confirm(p, "vip", True)


def test_deposit_before_bank_rejected():
    with pytest.raises(WorkflowPreconditionError):
        wf.set_deposit(_ready(), "vip", True)


def test_repeated_actions_are_noops():
    p = _deposited()
    assert wf.set_deposit(p, "vip", True) == p
    assert wf.set_completed(p, "vip", True) == p


def test_save_bank_needs_edit_mode_after_saved():
    p = wf.save_bank(_ready(), "vip", "銀行", "123")
    with pytest.raises(WorkflowPreconditionError):
        wf.save_bank(p, "vip", "別的銀行", "999")
    p = wf.edit_bank(p, "vip")
    assert p.companies["vip"].is_saved is True
    p = wf.save_bank(p, "vip", "別的銀行", "999")
    assert p.companies["vip"].bank_name == "別的銀行"


def test_undo_deposit_clears_confirm():
    p = wf.set_confirm(_deposited(), "vip", True)
    p = wf.set_deposit(p, "vip", False)
    assert p.companies["vip"].deposit_done is False
    assert p.companies["vip"].confirm_done is False


def test_reset_bank_keeps_completed():
    p = wf.reset_bank(_deposited(), "vip")
    cp = p.companies["vip"]
    assert cp.completed is True
    assert cp.bank_name == ""
    assert cp.is_saved is False
    assert cp.deposit_done is False


def test_clearing_invoice_reverts_both_companies():
    """取消發票任一欄：兩公司退回帳戶輸入，保留帳戶欄位與完成狀態"""
    p = wf.save_bank(_deposited(), "yai", "台新", "888877776666")
    p = wf.set_invoice(p, "approved", False)
    for key in ("vip", "yai"):
        cp = p.companies[key]
        assert cp.completed is True
        assert cp.is_saved is False
        assert cp.editing is True
        assert cp.deposit_done is False
        assert cp.confirm_done is False
    assert p.companies["vip"].account_number == "123456789012"
    assert p.companies["yai"].bank_name == "台新"


def test_set_invoice_when_ready_keeps_state():
    p = _deposited()
    out = wf.set_invoice(p, "issued", True)
    assert out.companies == p.companies


def test_uncompleting_resets_company_and_invoice():
    p = wf.save_bank(_deposited(), "yai", "台新", "888877776666")
    p = wf.set_completed(p, "vip", False)
    assert p.companies["vip"] == CompanyProgress()
    assert p.invoice == InvoiceProgress()
    assert p.companies["yai"].completed is True
    assert p.companies["yai"].is_saved is False


def test_unknown_company_rejected():
    with pytest.raises(WorkflowPreconditionError):
        wf.set_completed(WorkflowProgress(), "other", True)


def test_apply_action_dispatch():
    p = WorkflowProgress()
    p = wf.apply_action(p, ProgressAction(action="set_invoice", field="issued", value=True))
    p = wf.apply_action(p, ProgressAction(action="set_invoice", field="approved", value=True))
    p = wf.apply_action(p, ProgressAction(action="set_completed", company="vip", value=True))
    p = wf.apply_action(
        p, ProgressAction(action="save_bank", company="vip", bank_name="銀行", account_number="123")
    )
    assert wf.company_state(p.companies["vip"]) == wf.BANK_SAVED
    with pytest.raises(WorkflowPreconditionError):
        wf.apply_action(p, ProgressAction(action="set_deposit", company="vip"))


def test_validate_progress_chain():
    ok = _deposited()
    assert wf.validate_progress(ok) is ok

    bad = WorkflowProgress(companies={"vip": CompanyProgress(confirm_done=True), "yai": CompanyProgress()})
    with pytest.raises(WorkflowPreconditionError):
        wf.validate_progress(bad)

    no_gate = WorkflowProgress(
        companies={"vip": CompanyProgress(completed=True, is_saved=True, bank_name="b", account_number="1")}
    )
    with pytest.raises(WorkflowPreconditionError):
        wf.validate_progress(no_gate)

    blank = WorkflowProgress(
        invoice=InvoiceProgress(issued=True, approved=True),
        companies={"vip": CompanyProgress(completed=True, is_saved=True)},
    )
    with pytest.raises(WorkflowPreconditionError):
        wf.validate_progress(blank)

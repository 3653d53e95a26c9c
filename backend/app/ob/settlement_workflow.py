"""
月結流程狀態機（每公司獨立）：entering → completed → bank_saved → deposit_done → confirm_done。
發票「已開立 + 已核准」為兩公司共用的閘門，帳戶/匯款/確認動作都需先通過。
不合法的轉換丟 WorkflowPreconditionError，狀態不變；每次動作回傳新的 WorkflowProgress。
"""
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, Optional

from app.schemas import CompanyProgress, InvoiceProgress, WorkflowProgress

COMPANIES = ("vip", "yai")

ENTERING = "entering"
COMPLETED = "completed"
BANK_SAVED = "bank_saved"
DEPOSIT_DONE = "deposit_done"
CONFIRM_DONE = "confirm_done"
STATES = (ENTERING, COMPLETED, BANK_SAVED, DEPOSIT_DONE, CONFIRM_DONE)
_ANY = frozenset(STATES)


class WorkflowPreconditionError(ValueError):
    """流程順序不符（如未匯款先確認）"""
    pass


def company_state(cp: CompanyProgress) -> str:
    if cp.confirm_done:
        return CONFIRM_DONE
    if cp.deposit_done:
        return DEPOSIT_DONE
    if cp.is_saved:
        return BANK_SAVED
    if cp.completed:
        return COMPLETED
    return ENTERING


def invoice_ready(progress: WorkflowProgress) -> bool:
    return bool(progress.invoice.issued and progress.invoice.approved)


def _revert_to_bank_entry(cp: CompanyProgress) -> CompanyProgress:
    # 保留已輸入的帳戶欄位與 completed
    return cp.model_copy(update={"is_saved": False, "editing": True, "deposit_done": False, "confirm_done": False})


def _complete(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"completed": True})


def _reopen(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return CompanyProgress()


def _save_bank(cp: CompanyProgress, params: dict) -> CompanyProgress:
    bank_name = (params.get("bank_name") or "").strip()
    account_number = (params.get("account_number") or "").strip()
    if not bank_name or not account_number:
        raise WorkflowPreconditionError("請輸入銀行名稱與帳號")
    return cp.model_copy(update={
        "bank_name": bank_name,
        "account_number": account_number,
        "is_saved": True,
        "editing": False,
    })


def _edit_bank(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"editing": True})


def _reset_bank(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return CompanyProgress(completed=cp.completed)


def _deposit(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"deposit_done": True})


def _undo_deposit(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"deposit_done": False, "confirm_done": False})


def _confirm(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"confirm_done": True})


def _undo_confirm(cp: CompanyProgress, _: dict) -> CompanyProgress:
    return cp.model_copy(update={"confirm_done": False})


@dataclass(frozen=True)
class Transition:
    sources: FrozenSet[str]
    apply: Callable[[CompanyProgress, dict], CompanyProgress]
    message: str
    needs_invoice: bool = True
    # 在這些狀態下為無動作（重送安全）
    noop: FrozenSet[str] = frozenset()
    needs_editing: bool = False


TRANSITIONS: Dict[str, Transition] = {
    "complete": Transition(
        sources=frozenset({ENTERING}),
        apply=_complete,
        message="",
        needs_invoice=False,
        noop=frozenset({COMPLETED, BANK_SAVED, DEPOSIT_DONE, CONFIRM_DONE}),
    ),
    "reopen": Transition(sources=_ANY, apply=_reopen, message="", needs_invoice=False),
    "save_bank": Transition(
        sources=frozenset({COMPLETED, BANK_SAVED, DEPOSIT_DONE, CONFIRM_DONE}),
        apply=_save_bank,
        message="請先勾選完成，再儲存帳戶資料",
        needs_editing=True,
    ),
    "edit_bank": Transition(
        sources=frozenset({BANK_SAVED, DEPOSIT_DONE, CONFIRM_DONE}),
        apply=_edit_bank,
        message="帳戶資料尚未儲存，無法修改",
    ),
    "reset_bank": Transition(sources=_ANY, apply=_reset_bank, message=""),
    "deposit": Transition(
        sources=frozenset({BANK_SAVED}),
        apply=_deposit,
        message="請先儲存帳戶資料，再進行匯款完成",
        noop=frozenset({DEPOSIT_DONE, CONFIRM_DONE}),
    ),
    "undo_deposit": Transition(
        sources=frozenset({DEPOSIT_DONE, CONFIRM_DONE}),
        apply=_undo_deposit,
        message="",
        noop=frozenset({ENTERING, COMPLETED, BANK_SAVED}),
    ),
    "confirm": Transition(
        sources=frozenset({DEPOSIT_DONE}),
        apply=_confirm,
        message="請先完成匯款，再進行確認",
        noop=frozenset({CONFIRM_DONE}),
    ),
    "undo_confirm": Transition(
        sources=frozenset({CONFIRM_DONE}),
        apply=_undo_confirm,
        message="",
        noop=frozenset({ENTERING, COMPLETED, BANK_SAVED, DEPOSIT_DONE}),
    ),
}


def _check_company(company: Optional[str]) -> str:
    if company not in COMPANIES:
        raise WorkflowPreconditionError(f"未知的公司：{company}")
    return company


def _with_company(progress: WorkflowProgress, company: str, cp: CompanyProgress) -> WorkflowProgress:
    companies = dict(progress.companies)
    companies[company] = cp
    return progress.model_copy(update={"companies": companies})


def transition(progress: WorkflowProgress, company: str, name: str, **params) -> WorkflowProgress:
    company = _check_company(company)
    t = TRANSITIONS[name]
    cp = progress.companies[company]
    state = company_state(cp)
    if state in t.noop:
        return progress
    if t.needs_invoice and not invoice_ready(progress):
        raise WorkflowPreconditionError("發票尚未開立並核准，無法進行此操作")
    if state not in t.sources:
        raise WorkflowPreconditionError(t.message or f"目前狀態（{state}）不可執行此操作")
    if t.needs_editing and not cp.editing:
        raise WorkflowPreconditionError("請先按修改，再儲存帳戶資料")
    return _with_company(progress, company, t.apply(cp, params))


def set_invoice(progress: WorkflowProgress, field: str, value: bool) -> WorkflowProgress:
    """發票欄位隨時可改；任一欄取消時，兩公司都退回帳戶輸入（保留帳戶欄位與 completed）"""
    if field not in ("issued", "approved"):
        raise WorkflowPreconditionError(f"未知的發票欄位：{field}")
    invoice = progress.invoice.model_copy(update={field: bool(value)})
    out = progress.model_copy(update={"invoice": invoice})
    if invoice.issued and invoice.approved:
        return out
    companies = {k: _revert_to_bank_entry(v) for k, v in out.companies.items()}
    return out.model_copy(update={"companies": companies})


def set_completed(progress: WorkflowProgress, company: str, value: bool) -> WorkflowProgress:
    """取消完成 = 該公司整段重設，並清除發票狀態（另一公司因此退回帳戶輸入）"""
    if value:
        return transition(progress, company, "complete")
    out = transition(progress, company, "reopen")
    out = out.model_copy(update={"invoice": InvoiceProgress()})
    companies = {k: (v if k == company else _revert_to_bank_entry(v)) for k, v in out.companies.items()}
    return out.model_copy(update={"companies": companies})


def save_bank(progress: WorkflowProgress, company: str, bank_name: str, account_number: str) -> WorkflowProgress:
    return transition(progress, company, "save_bank", bank_name=bank_name, account_number=account_number)


def edit_bank(progress: WorkflowProgress, company: str) -> WorkflowProgress:
    return transition(progress, company, "edit_bank")


def reset_bank(progress: WorkflowProgress, company: str) -> WorkflowProgress:
    return transition(progress, company, "reset_bank")


def set_deposit(progress: WorkflowProgress, company: str, value: bool) -> WorkflowProgress:
    return transition(progress, company, "deposit" if value else "undo_deposit")


def set_confirm(progress: WorkflowProgress, company: str, value: bool) -> WorkflowProgress:
    return transition(progress, company, "confirm" if value else "undo_confirm")


def apply_action(progress: WorkflowProgress, action) -> WorkflowProgress:
    """依 ProgressAction 分派"""
    name = action.action
    if name == "set_invoice":
        if action.value is None:
            raise WorkflowPreconditionError("缺少 value")
        return set_invoice(progress, action.field, action.value)
    if name == "set_completed":
        if action.value is None:
            raise WorkflowPreconditionError("缺少 value")
        return set_completed(progress, action.company, action.value)
    if name == "save_bank":
        return save_bank(progress, action.company, action.bank_name or "", action.account_number or "")
    if name == "edit_bank":
        return edit_bank(progress, action.company)
    if name == "reset_bank":
        return reset_bank(progress, action.company)
    if name == "set_deposit":
        if action.value is None:
            raise WorkflowPreconditionError("缺少 value")
        return set_deposit(progress, action.company, action.value)
    if name == "set_confirm":
        if action.value is None:
            raise WorkflowPreconditionError("缺少 value")
        return set_confirm(progress, action.company, action.value)
    raise WorkflowPreconditionError(f"未知的操作：{name}")


def validate_progress(progress: WorkflowProgress) -> WorkflowProgress:
    """整份進度上傳時檢查：confirm ⇒ deposit ⇒ is_saved ⇒ completed，且下游狀態需通過發票閘門"""
    gate = invoice_ready(progress)
    for company in COMPANIES:
        cp = progress.companies[company]
        if cp.confirm_done and not cp.deposit_done:
            raise WorkflowPreconditionError(f"{company}：未匯款完成不可確認")
        if cp.deposit_done and not cp.is_saved:
            raise WorkflowPreconditionError(f"{company}：未儲存帳戶不可匯款完成")
        if cp.is_saved and not cp.completed:
            raise WorkflowPreconditionError(f"{company}：未完成不可儲存帳戶")
        if cp.is_saved and (not cp.bank_name.strip() or not cp.account_number.strip()):
            raise WorkflowPreconditionError(f"{company}：已儲存的帳戶資料不可空白")
        if cp.is_saved and not gate:
            raise WorkflowPreconditionError(f"{company}：發票尚未開立並核准")
    return progress


def states_of(progress: WorkflowProgress) -> Dict[str, str]:
    return {k: company_state(v) for k, v in progress.companies.items()}

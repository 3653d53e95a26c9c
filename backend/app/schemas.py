"""API 請求/回應結構 - Pydantic（OB 結合試算 / 月結）"""
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any, Literal, Union
import re
import uuid
from pydantic import BaseModel, Field, ConfigDict, field_validator


MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

ContractType = Literal["subsidy", "selection"]
ScenarioType = Literal["existing", "together"]
ExclusionType = Literal["custom", "recontract"]
TargetOutletType = Literal["recontract", "postSettlement"]
ManualAdjustmentType = Literal["labor", "cost"]
CompanyKey = Literal["vip", "yai"]


def validate_month(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    v = v.strip()
    if not MONTH_PATTERN.match(v):
        raise ValueError("月份格式錯誤（例：2025-03）")
    return v


def _new_line_key() -> str:
    return uuid.uuid4().hex


# ---------- 參考資料（要金制 / 折扣規則） ----------
class PlanReferenceBase(BaseModel):
    plan_name: str = Field(..., description="要金制名稱（唯一鍵）")
    plan_group: str = ""
    base_fee: Decimal = Decimal("0")

    @field_validator("plan_name")
    @classmethod
    def strip_plan_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("要金制名稱不可空白")
        return v


class PlanReferenceRead(PlanReferenceBase):
    model_config = ConfigDict(from_attributes=True)
    id: int


class PlanImportResult(BaseModel):
    imported: int
    skipped: List[str] = []


class DiscountRuleBase(BaseModel):
    plan_group: str
    rule_kind: Literal["bundle", "selection", "premier", "internet"]
    amount: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    conditions: Optional[Dict[str, Any]] = None
    note: Optional[str] = None


class DiscountRuleRead(DiscountRuleBase):
    model_config = ConfigDict(from_attributes=True)
    id: int


# ---------- 結合試算 ----------
class SubscriptionLine(BaseModel):
    """單一回線輸入；line_key 為既有/共享兩組共用的穩定識別"""
    line_key: str = Field(default_factory=_new_line_key)
    line_id: Optional[str] = None
    customer_name: str = ""
    phone: str = ""
    plan_name: str = ""
    contract_type: ContractType = "subsidy"
    premier_opt_in: bool = False
    device_support: Decimal = Decimal("0")


class SharedOptions(BaseModel):
    has_internet: bool = False
    internet_speed: Optional[str] = Field(None, description="100M / 500M / 1G")
    existing_bundle_type: str = "family_wireless"


class LineResult(BaseModel):
    line_key: str
    line_id: Optional[str] = None
    customer_name: str = ""
    phone: str = ""
    plan_name: str = ""
    plan_group: str = ""
    plan_resolved: bool = True
    contract_type: ContractType = "subsidy"
    base_fee: Decimal = Decimal("0")
    bundle_discount: Decimal = Decimal("0")
    selection_discount: Decimal = Decimal("0")
    premier_discount: Decimal = Decimal("0")
    internet_discount: Decimal = Decimal("0")
    device_support: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class ScenarioResult(BaseModel):
    scenario_type: ScenarioType
    amount: Decimal = Decimal("0")
    rows: List[LineResult] = []
    bundle_discount: Decimal = Decimal("0")
    selection_discount: Decimal = Decimal("0")
    premier_discount: Decimal = Decimal("0")
    internet_discount: Decimal = Decimal("0")
    bundle_per_line: Decimal = Decimal("0")
    unresolved_plans: List[str] = []


class CalculateRequest(BaseModel):
    existing_lines: List[SubscriptionLine] = []
    # 未提供時以 existing_lines 複製（同 line_key）
    together_lines: Optional[List[SubscriptionLine]] = None
    shared_options: SharedOptions = Field(default_factory=SharedOptions)


class LineIdentityEdit(BaseModel):
    """修改單一回線姓名/電話，既有與共享兩組同步"""
    existing_lines: List[SubscriptionLine] = []
    together_lines: List[SubscriptionLine] = []
    line_key: str
    customer_name: Optional[str] = None
    phone: Optional[str] = None


class LineSets(BaseModel):
    existing_lines: List[SubscriptionLine] = []
    together_lines: List[SubscriptionLine] = []


class ComparisonResult(BaseModel):
    existing: ScenarioResult
    together: ScenarioResult
    diff: Decimal
    recommendation: Literal["existing", "together", "equal"]
    existing_lines: List[SubscriptionLine] = []
    together_lines: List[SubscriptionLine] = []
    reference_degraded: bool = False


class ComparisonResultSave(BaseModel):
    """儲存試算結果：selected_id 有值時原地覆寫，否則新增"""
    user_id: str
    selected_id: Optional[int] = None
    scenario_name: str = ""
    inputs_json: Optional[Dict[str, Any]] = None
    existing_amount: Decimal = Decimal("0")
    together_amount: Decimal = Decimal("0")
    chosen_type: Optional[Literal["existing", "together", "equal", ""]] = None
    notes: Optional[str] = None

    @field_validator("user_id")
    @classmethod
    def user_id_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("user_id 不可空白")
        return v


class ComparisonResultRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: str
    scenario_name: str
    inputs_json: Optional[Dict[str, Any]] = None
    existing_amount: Decimal
    together_amount: Decimal
    diff: Decimal
    chosen_type: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---------- 排除人員 ----------
class ExclusionBase(BaseModel):
    month: str
    type: ExclusionType
    target_id: str = ""
    target_name: str = ""
    reason: str = ""
    note: Optional[str] = None
    registrant: str = ""

    @field_validator("month")
    @classmethod
    def check_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v)


class ExclusionCreate(ExclusionBase):
    pass


class ExclusionUpdate(BaseModel):
    target_id: Optional[str] = None
    target_name: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None
    registrant: Optional[str] = None


class ExclusionRead(ExclusionBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None


# ---------- 對象出庫處 ----------
class TargetOutletBase(BaseModel):
    month: str
    type: TargetOutletType
    outlet_name: str
    reason: str = ""
    note: Optional[str] = None
    registrant: str = ""

    @field_validator("month")
    @classmethod
    def check_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v)

    @field_validator("outlet_name")
    @classmethod
    def outlet_name_required(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("出庫處名稱不可空白")
        return v


class TargetOutletCreate(TargetOutletBase):
    pass


class TargetOutletUpdate(BaseModel):
    outlet_name: Optional[str] = None
    reason: Optional[str] = None
    note: Optional[str] = None
    registrant: Optional[str] = None


class TargetOutletRead(TargetOutletBase):
    model_config = ConfigDict(from_attributes=True)
    id: int
    created_at: datetime


# ---------- 手動調整 ----------
class ManualAdjustmentCreate(BaseModel):
    """amount 可為數字或含千分位字串；正負號不拘，一律存為負數"""
    month: str
    type: ManualAdjustmentType
    label: str = ""
    amount: Union[Decimal, str, None] = None

    @field_validator("month")
    @classmethod
    def check_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v)


class ManualAdjustmentUpdate(BaseModel):
    label: Optional[str] = None
    amount: Union[Decimal, str, None] = None


class ManualAdjustmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    month: str
    type: str
    label: str
    amount: Decimal
    created_at: datetime
    updated_at: datetime


class ManualAdjustmentTotals(BaseModel):
    labor: Decimal = Decimal("0")
    cost: Decimal = Decimal("0")


class ManualAdjustmentList(BaseModel):
    items: List[ManualAdjustmentRead]
    totals: ManualAdjustmentTotals


# ---------- 月結原始資料（正規化後） ----------
class CustomProposalRow(BaseModel):
    source_sheet: str = ""
    row_number: int = 0
    proposer_id: str = ""
    proposer_name: str = ""
    sales_amount: Decimal = Decimal("0")
    theme_flag: str = ""
    approval_flag: str = ""


class RecontractRow(BaseModel):
    source_sheet: str = ""
    row_number: int = 0
    registration_date: str = ""
    outlet: str = ""
    customer_name: str = ""
    internet_unique_number: str = ""
    status: str = ""
    settlement_amount: Decimal = Decimal("0")
    remark_plate: str = ""
    remark_recontract: str = ""
    offer_gift_card: Decimal = Decimal("0")
    offer_deposit: Decimal = Decimal("0")
    promoter_name: str = ""


class PostSettlementEntry(BaseModel):
    """後結算表單來源的人事費/費用列"""
    source_sheet: str = ""
    row_number: int = 0
    label: str = ""
    amount: Decimal = Decimal("0")


class QuarantinedRow(BaseModel):
    stream: str
    source_sheet: str = ""
    row_number: int = 0
    reason: str
    raw: Dict[str, Any] = {}


class SourceRowsPut(BaseModel):
    file_name: Optional[str] = None
    rows: List[Dict[str, Any]] = []


class SourceImportResult(BaseModel):
    month: str
    stream: str
    file_name: Optional[str] = None
    row_count: int
    quarantined_count: int = 0


# ---------- 彙總 ----------
class Policy1Result(BaseModel):
    multiplier: Decimal
    sales_total: Decimal
    payout: Decimal


class Policy2Result(BaseModel):
    qualifying_count: int
    qualifying_sales: Decimal


class Policy3Result(BaseModel):
    sales_total: Decimal
    tier_sales: Optional[Decimal] = None
    payout: Decimal


class PerCaseResult(BaseModel):
    count: int
    threshold: Optional[int] = None
    unit_amount: Decimal = Decimal("0")
    payout: Decimal


class CustomDrilldown(BaseModel):
    proposer_name: str
    count: int
    sales_total: Decimal
    theme_sales: Decimal


class CustomProposalSummary(BaseModel):
    rows: List[CustomProposalRow] = []
    excluded_rows: List[CustomProposalRow] = []
    included_count: int = 0
    excluded_count: int = 0
    sales_total: Decimal = Decimal("0")
    policy1: Policy1Result
    policy2: Policy2Result
    policy3: Policy3Result
    per_case: PerCaseResult
    total_payout: Decimal = Decimal("0")
    drilldown: List[CustomDrilldown] = []


class RecontractOffer(BaseModel):
    gift_card: Decimal = Decimal("0")
    deposit: Decimal = Decimal("0")
    total: Decimal = Decimal("0")


class RecontractDrilldown(BaseModel):
    promoter_name: str
    outlet: str
    count: int
    fee_total: Decimal
    offer_total: Decimal


class RecontractSummary(BaseModel):
    rows: List[RecontractRow] = []
    excluded_rows: List[RecontractRow] = []
    included_count: int = 0
    excluded_count: int = 0
    unmatched_count: int = 0
    target_outlets: List[str] = []
    fee_total: Decimal = Decimal("0")
    offer: RecontractOffer = Field(default_factory=RecontractOffer)
    total_payout: Decimal = Decimal("0")
    drilldown: List[RecontractDrilldown] = []


class AggregateResult(BaseModel):
    month: str
    custom_proposal: CustomProposalSummary
    recontract: RecontractSummary


class SettlementSplit(BaseModel):
    vip: Decimal
    yai: Decimal
    vip_ratio: Decimal
    yai_ratio: Decimal
    drift: Decimal
    reconciled: bool = False


class SettlementTotals(BaseModel):
    custom_total: Decimal
    recontract_total: Decimal
    labor_sheet: Decimal
    labor_manual: Decimal
    labor_total: Decimal
    cost_sheet: Decimal
    cost_manual: Decimal
    cost_total: Decimal
    grand_total: Decimal
    split: SettlementSplit


# ---------- 月結流程 ----------
class InvoiceProgress(BaseModel):
    issued: bool = False
    approved: bool = False


class CompanyProgress(BaseModel):
    completed: bool = False
    bank_name: str = ""
    account_number: str = ""
    is_saved: bool = False
    editing: bool = True
    deposit_done: bool = False
    confirm_done: bool = False


def _default_companies() -> Dict[str, CompanyProgress]:
    return {"vip": CompanyProgress(), "yai": CompanyProgress()}


class WorkflowProgress(BaseModel):
    invoice: InvoiceProgress = Field(default_factory=InvoiceProgress)
    companies: Dict[CompanyKey, CompanyProgress] = Field(default_factory=_default_companies)

    @field_validator("companies")
    @classmethod
    def fill_companies(cls, v: Dict[str, CompanyProgress]) -> Dict[str, CompanyProgress]:
        out = dict(v)
        for key in ("vip", "yai"):
            out.setdefault(key, CompanyProgress())
        return out


class ProgressUpsert(BaseModel):
    month: str
    progress: WorkflowProgress

    @field_validator("month")
    @classmethod
    def check_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v)


class ProgressAction(BaseModel):
    action: Literal[
        "set_completed", "save_bank", "edit_bank", "reset_bank",
        "set_deposit", "set_confirm", "set_invoice",
    ]
    company: Optional[CompanyKey] = None
    field: Optional[Literal["issued", "approved"]] = None
    value: Optional[bool] = None
    bank_name: Optional[str] = None
    account_number: Optional[str] = None


class ProgressRead(BaseModel):
    month: str
    progress: WorkflowProgress
    states: Dict[str, str] = {}


# ---------- 月結總覽 ----------
class PostSettlementBlock(BaseModel):
    labor_entries: List[PostSettlementEntry] = []
    cost_entries: List[PostSettlementEntry] = []
    manual_labor: List[ManualAdjustmentRead] = []
    manual_cost: List[ManualAdjustmentRead] = []


class SettlementSummaryResponse(BaseModel):
    month: str
    companies: Dict[str, str] = {}
    custom_proposal: CustomProposalSummary
    recontract: RecontractSummary
    post_settlement: PostSettlementBlock
    quarantined: List[QuarantinedRow] = []
    target_outlets: List[TargetOutletRead] = []
    totals: SettlementTotals
    progress: ProgressRead


# ---------- 設定 / 偏好 ----------
class ObSettingsRead(BaseModel):
    discounts: Dict[str, Any]
    settlement_policies: Dict[str, Any]


class ObSettingsUpdate(BaseModel):
    discounts: Optional[Dict[str, Any]] = None
    settlement_policies: Optional[Dict[str, Any]] = None


class PreferencesBase(BaseModel):
    favorite_plans: List[str] = []
    view_mode: Literal["table", "card"] = "table"
    default_month: Optional[str] = None

    @field_validator("default_month")
    @classmethod
    def check_month(cls, v: Optional[str]) -> Optional[str]:
        return validate_month(v)


class PreferencesRead(PreferencesBase):
    user_id: str

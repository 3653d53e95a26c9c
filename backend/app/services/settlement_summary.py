"""月結總覽：一次讀取某月份的原始資料、排除人員、對象出庫處、手動調整與進度，組出彙總與分配。"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from app import crud
from app.ob.manual_ledger import totals_by_type
from app.ob.row_normalizer import normalize_cost_rows, normalize_custom_rows, normalize_recontract_rows
from app.ob.settlement_aggregator import aggregate
from app.ob.settlement_totals import compose_totals
from app.ob.settlement_workflow import states_of
from app.schemas import (
    CustomProposalRow,
    ManualAdjustmentRead,
    PostSettlementBlock,
    PostSettlementEntry,
    ProgressRead,
    QuarantinedRow,
    RecontractRow,
    SettlementSummaryResponse,
    TargetOutletRead,
    WorkflowProgress,
)
from app.services.progress_gateway import DbProgressGateway

logger = logging.getLogger(__name__)


@dataclass
class MonthRows:
    custom: List[CustomProposalRow] = field(default_factory=list)
    recontract: List[RecontractRow] = field(default_factory=list)
    labor: List[PostSettlementEntry] = field(default_factory=list)
    cost: List[PostSettlementEntry] = field(default_factory=list)
    quarantined: List[QuarantinedRow] = field(default_factory=list)


async def load_month_rows(db: AsyncSession, month: str) -> MonthRows:
    """讀取月結原始快照並正規化（隔離列另列）"""
    sources = await crud.list_settlement_sources(db, month)
    out = MonthRows()

    def raw(stream: str):
        src = sources.get(stream)
        return (src.rows or []) if src else []

    def sheet(stream: str) -> str:
        src = sources.get(stream)
        return (src.file_name or stream) if src else stream

    out.custom, q = normalize_custom_rows(raw("custom"), sheet("custom"))
    out.quarantined.extend(q)
    out.recontract, q = normalize_recontract_rows(raw("recontract"), sheet("recontract"))
    out.quarantined.extend(q)
    out.labor, q = normalize_cost_rows(raw("labor"), "labor", sheet("labor"))
    out.quarantined.extend(q)
    out.cost, q = normalize_cost_rows(raw("cost"), "cost", sheet("cost"))
    out.quarantined.extend(q)
    if out.quarantined:
        logger.warning("%s 有 %s 筆原始列被隔離", month, len(out.quarantined))
    return out


async def load_progress(db: AsyncSession, month: str) -> ProgressRead:
    progress = await DbProgressGateway(db).load(month) or WorkflowProgress()
    return ProgressRead(month=month, progress=progress, states=states_of(progress))


async def build_settlement_summary(db: AsyncSession, month: str) -> SettlementSummaryResponse:
    rules = await crud.get_all_ob_rules(db)
    policies = rules["settlement_policies"]

    rows = await load_month_rows(db, month)
    exclusions = await crud.list_exclusions(db, month)
    outlets = await crud.list_target_outlets(db, month)
    result = aggregate(month, rows.custom, rows.recontract, exclusions, outlets, policies)

    manual = await crud.list_manual_adjustments(db, month)
    manual_totals = totals_by_type(manual)
    labor_sheet = sum((e.amount for e in rows.labor), Decimal("0"))
    cost_sheet = sum((e.amount for e in rows.cost), Decimal("0"))

    totals = compose_totals(
        result.custom_proposal.total_payout,
        result.recontract.total_payout,
        labor_sheet,
        manual_totals["labor"],
        cost_sheet,
        manual_totals["cost"],
        policies.get("split"),
    )
    companies: Dict[str, str] = {k: str(v) for k, v in (policies.get("companies") or {}).items()}

    return SettlementSummaryResponse(
        month=month,
        companies=companies,
        custom_proposal=result.custom_proposal,
        recontract=result.recontract,
        post_settlement=PostSettlementBlock(
            labor_entries=rows.labor,
            cost_entries=rows.cost,
            manual_labor=[ManualAdjustmentRead.model_validate(m) for m in manual if m.type == "labor"],
            manual_cost=[ManualAdjustmentRead.model_validate(m) for m in manual if m.type == "cost"],
        ),
        quarantined=rows.quarantined,
        target_outlets=[TargetOutletRead.model_validate(o) for o in outlets],
        totals=totals,
        progress=await load_progress(db, month),
    )

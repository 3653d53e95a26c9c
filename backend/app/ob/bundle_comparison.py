"""
既有結合 vs 共享結合比較：兩組回線以 line_key 對齊（姓名/電話同步），各自試算後回傳差額。
diff = existing - together；diff < 0 建議 together，diff > 0 建議 existing，0 為 equal。
mirror_identity_edit 由 POST /api/ob/lines/identity 使用；sync_by_position 為舊版依位置同步的函式庫 API，僅供舊資料比對，路由不使用。
"""
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from app.ob.line_calculator import compute_scenario
from app.schemas import ComparisonResult, SharedOptions, SubscriptionLine


def recommend(diff: Decimal) -> str:
    if diff < 0:
        return "together"
    if diff > 0:
        return "existing"
    return "equal"


def _counterpart(line: SubscriptionLine) -> SubscriptionLine:
    """另一組缺少的回線：同識別、同姓名電話，要金制等欄位為預設值"""
    return SubscriptionLine(
        line_key=line.line_key,
        line_id=line.line_id,
        customer_name=line.customer_name,
        phone=line.phone,
    )


def sync_line_sets(
    existing: List[SubscriptionLine],
    together: List[SubscriptionLine],
) -> Tuple[List[SubscriptionLine], List[SubscriptionLine]]:
    """
    以 line_key 同步兩組回線：兩邊都有者以 existing 的姓名/電話為準；
    只存在一邊者在另一邊補上對應回線。回傳新的 list，不修改傳入物件。
    """
    together_by_key = {t.line_key: t for t in together}
    existing_keys = {e.line_key for e in existing}

    new_existing = [e.model_copy() for e in existing]
    new_together: List[SubscriptionLine] = []
    for e in existing:
        t = together_by_key.get(e.line_key)
        if t is None:
            new_together.append(_counterpart(e))
        else:
            new_together.append(t.model_copy(update={"customer_name": e.customer_name, "phone": e.phone}))
    for t in together:
        if t.line_key not in existing_keys:
            new_together.append(t.model_copy())
            new_existing.append(_counterpart(t))
    return new_existing, new_together


def mirror_identity_edit(
    existing: List[SubscriptionLine],
    together: List[SubscriptionLine],
    line_key: str,
    customer_name: Optional[str] = None,
    phone: Optional[str] = None,
) -> Tuple[List[SubscriptionLine], List[SubscriptionLine]]:
    """修改某回線的姓名/電話，兩組同步；line_key 不存在時 KeyError"""
    if line_key not in {line.line_key for line in existing + together}:
        raise KeyError(line_key)
    update: Dict[str, Any] = {}
    if customer_name is not None:
        update["customer_name"] = customer_name
    if phone is not None:
        update["phone"] = phone

    def apply(lines: List[SubscriptionLine]) -> List[SubscriptionLine]:
        return [line.model_copy(update=update) if line.line_key == line_key else line.model_copy() for line in lines]

    return sync_line_sets(apply(existing), apply(together))


def sync_by_position(
    existing: List[SubscriptionLine],
    together: List[SubscriptionLine],
) -> Tuple[List[SubscriptionLine], List[SubscriptionLine]]:
    """
    舊版行為（依陣列位置同步）：僅兩邊都有的索引會把 existing 的姓名/電話帶到 together，
    長度不同時多出的回線維持原樣。保留供舊資料比對，新流程請用 sync_line_sets。
    """
    new_together = [t.model_copy() for t in together]
    for i in range(min(len(existing), len(together))):
        new_together[i] = together[i].model_copy(
            update={"customer_name": existing[i].customer_name, "phone": existing[i].phone}
        )
    return [e.model_copy() for e in existing], new_together


def compare(
    existing_lines: List[SubscriptionLine],
    together_lines: Optional[List[SubscriptionLine]],
    shared_options: SharedOptions,
    plans: Iterable[Any],
    discount_rules: Iterable[Any],
    config: Dict[str, Any],
    reference_degraded: bool = False,
) -> ComparisonResult:
    if together_lines is None:
        together_lines = [line.model_copy() for line in existing_lines]
    existing_lines, together_lines = sync_line_sets(existing_lines, together_lines)

    plans = list(plans or [])
    discount_rules = list(discount_rules or [])
    existing = compute_scenario(existing_lines, shared_options, "existing", plans, discount_rules, config)
    together = compute_scenario(together_lines, shared_options, "together", plans, discount_rules, config)
    diff = existing.amount - together.amount
    return ComparisonResult(
        existing=existing,
        together=together,
        diff=diff,
        recommendation=recommend(diff),
        existing_lines=existing_lines,
        together_lines=together_lines,
        reference_degraded=reference_degraded,
    )

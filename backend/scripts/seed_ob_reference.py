"""Seed 參考資料：從 config/ob_reference_seed.json 匯入要金制與折扣規則（整批取代，需先執行 alembic upgrade）"""
import asyncio
import json
import sys
from pathlib import Path

# 專案根目錄
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from app import crud
from app.database import AsyncSessionLocal
from app.schemas import DiscountRuleBase, PlanReferenceBase


async def run(seed_path: Path):
    if not seed_path.exists():
        print(f"找不到 {seed_path}")
        return
    with open(seed_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    plans = [PlanReferenceBase(**p) for p in data.get("plans", [])]
    rules = [DiscountRuleBase(**r) for r in data.get("discount_rules", [])]
    if not plans:
        print("plans 為空")
        return

    async with AsyncSessionLocal() as db:
        count = await crud.replace_plans(db, plans)
        rule_rows = await crud.replace_discount_rules(db, rules)
        await db.commit()
    print(f"已匯入要金制 {count} 筆、折扣規則 {len(rule_rows)} 筆")


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else ROOT / "config" / "ob_reference_seed.json"
    asyncio.run(run(path))

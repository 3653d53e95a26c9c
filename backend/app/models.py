"""資料庫模型 - OB 結算與結合試算。
參考資料（要金制、折扣規則）僅供查表，不在試算中修改；月結資料一律以 month（YYYY-MM）為範圍。"""
from datetime import datetime
from decimal import Decimal
from typing import Optional
from sqlalchemy import String, Text, Numeric, DateTime, Integer, UniqueConstraint, JSON
from sqlalchemy.orm import Mapped, mapped_column
from app.database import Base

DISCOUNT_RULE_KINDS = ("bundle", "selection", "premier", "internet")
EXCLUSION_TYPES = ("custom", "recontract")
TARGET_OUTLET_TYPES = ("recontract", "postSettlement")
MANUAL_ADJUSTMENT_TYPES = ("labor", "cost")
SOURCE_STREAMS = ("custom", "recontract", "labor", "cost")
COMPARISON_CHOICES = ("existing", "together", "equal", "")


class ObPlan(Base):
    """要金制參考表：plan_name 唯一，查無時試算以 base_fee=0 處理"""
    __tablename__ = "ob_plans"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    plan_name: Mapped[str] = mapped_column(String(200), unique=True, index=True, comment="要金制名稱（唯一鍵）")
    plan_group: Mapped[str] = mapped_column(String(100), default="", comment="要金制群組，對應折扣規則")
    base_fee: Mapped[Decimal] = mapped_column(Numeric(12, 0), default=0, comment="基本月租")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObDiscountRule(Base):
    """折扣規則：依要金制群組覆寫預設折扣（bundle / selection / premier / internet）"""
    __tablename__ = "ob_discount_rules"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    plan_group: Mapped[str] = mapped_column(String(100), index=True, comment="要金制群組")
    rule_kind: Mapped[str] = mapped_column(String(20), index=True, comment="bundle / selection / premier / internet")
    amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 0), comment="每回線固定折扣（負數）")
    rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(6, 4), comment="比例折扣（selection 用，如 0.25）")
    conditions: Mapped[Optional[dict]] = mapped_column(JSON, comment="條件，如 internet 各速度金額")
    note: Mapped[Optional[str]] = mapped_column(String(200), comment="備註")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObComparisonResult(Base):
    """結合比較試算結果（既有結合 vs 共享結合），屬於提交者；選定 id 時原地覆寫"""
    __tablename__ = "ob_comparison_results"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), index=True, comment="提交者")
    scenario_name: Mapped[str] = mapped_column(String(200), default="", comment="情境名稱")
    inputs_json: Mapped[Optional[dict]] = mapped_column(JSON, comment="試算輸入（回線與共用選項）")
    existing_amount: Mapped[Decimal] = mapped_column(Numeric(14, 0), default=0)
    together_amount: Mapped[Decimal] = mapped_column(Numeric(14, 0), default=0)
    diff: Mapped[Decimal] = mapped_column(Numeric(14, 0), default=0, comment="existing - together")
    chosen_type: Mapped[str] = mapped_column(String(20), default="", comment="existing / together / equal")
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObExclusion(Base):
    """排除人員：限定 (month, type)，僅作為彙總過濾條件，不會自動失效"""
    __tablename__ = "ob_exclusions"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), index=True, comment="YYYY-MM")
    type: Mapped[str] = mapped_column(String(20), index=True, comment="custom / recontract")
    target_id: Mapped[str] = mapped_column(String(100), default="", comment="推廣人 ID")
    target_name: Mapped[str] = mapped_column(String(100), default="", comment="推廣人姓名 / 登錄職員")
    reason: Mapped[str] = mapped_column(String(200), default="")
    note: Mapped[Optional[str]] = mapped_column(Text)
    registrant: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObTargetOutlet(Base):
    """對象出庫處（續約/後結算）：outlet_name 以子字串比對"""
    __tablename__ = "ob_target_outlets"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), index=True, comment="YYYY-MM")
    type: Mapped[str] = mapped_column(String(20), index=True, comment="recontract / postSettlement")
    outlet_name: Mapped[str] = mapped_column(String(200))
    reason: Mapped[str] = mapped_column(String(200), default="")
    note: Mapped[Optional[str]] = mapped_column(Text)
    registrant: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObManualAdjustment(Base):
    """手動調整（人事費/費用）：amount 一律 ≤ 0 且不為 0"""
    __tablename__ = "ob_manual_adjustments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), index=True, comment="YYYY-MM")
    type: Mapped[str] = mapped_column(String(20), index=True, comment="labor / cost")
    label: Mapped[str] = mapped_column(String(200))
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 0), comment="一律為負數")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObSettlementSource(Base):
    """月結原始資料快照（每月每資料流一筆）；結算時只讀不改"""
    __tablename__ = "ob_settlement_sources"
    __table_args__ = (UniqueConstraint("month", "stream", name="uq_ob_settlement_sources_month_stream"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), index=True, comment="YYYY-MM")
    stream: Mapped[str] = mapped_column(String(20), comment="custom / recontract / labor / cost")
    file_name: Mapped[Optional[str]] = mapped_column(String(255), comment="來源檔名")
    rows: Mapped[list] = mapped_column(JSON, default=list, comment="原始列（dict 陣列）")
    row_count: Mapped[int] = mapped_column(Integer, default=0)
    imported_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObSettlementProgress(Base):
    """月結流程進度（整份 JSON upsert，以 month 為鍵）"""
    __tablename__ = "ob_settlement_progress"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), unique=True, index=True, comment="YYYY-MM")
    progress: Mapped[dict] = mapped_column(JSON, comment="invoice + companies{vip,yai}")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObConfig(Base):
    """折扣/政策設定（DB 覆寫 YAML 預設）"""
    __tablename__ = "ob_config"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    config_key: Mapped[str] = mapped_column(String(50), unique=True, index=True, comment="設定鍵")
    config_value: Mapped[str] = mapped_column(Text, comment="JSON")
    description: Mapped[Optional[str]] = mapped_column(String(200), comment="說明")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ObUserPreference(Base):
    """使用者偏好（常用要金制、檢視模式），取代瀏覽器端快取"""
    __tablename__ = "ob_user_preferences"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    preferences: Mapped[dict] = mapped_column(JSON, default=dict)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

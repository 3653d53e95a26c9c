"""ob settlement schema - plans, discount rules, comparison results, exclusions,
target outlets, manual adjustments, settlement sources/progress, config, preferences

Revision ID: 001
Revises:
Create Date: 2025-03-01

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "ob_plans",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plan_name", sa.String(200), nullable=False),
        sa.Column("plan_group", sa.String(100), nullable=False, server_default=""),
        sa.Column("base_fee", sa.Numeric(12, 0), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_plans_plan_name", "ob_plans", ["plan_name"], unique=True)

    op.create_table(
        "ob_discount_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("plan_group", sa.String(100), nullable=False),
        sa.Column("rule_kind", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(12, 0), nullable=True),
        sa.Column("rate", sa.Numeric(6, 4), nullable=True),
        sa.Column("conditions", sa.JSON(), nullable=True),
        sa.Column("note", sa.String(200), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_discount_rules_plan_group", "ob_discount_rules", ["plan_group"], unique=False)
    op.create_index("ix_ob_discount_rules_rule_kind", "ob_discount_rules", ["rule_kind"], unique=False)

    op.create_table(
        "ob_comparison_results",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("scenario_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("inputs_json", sa.JSON(), nullable=True),
        sa.Column("existing_amount", sa.Numeric(14, 0), nullable=False, server_default="0"),
        sa.Column("together_amount", sa.Numeric(14, 0), nullable=False, server_default="0"),
        sa.Column("diff", sa.Numeric(14, 0), nullable=False, server_default="0"),
        sa.Column("chosen_type", sa.String(20), nullable=False, server_default=""),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_comparison_results_user_id", "ob_comparison_results", ["user_id"], unique=False)

    op.create_table(
        "ob_exclusions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=False, server_default=""),
        sa.Column("target_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("reason", sa.String(200), nullable=False, server_default=""),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("registrant", sa.String(100), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_exclusions_month", "ob_exclusions", ["month"], unique=False)
    op.create_index("ix_ob_exclusions_type", "ob_exclusions", ["type"], unique=False)

    op.create_table(
        "ob_target_outlets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("outlet_name", sa.String(200), nullable=False),
        sa.Column("reason", sa.String(200), nullable=False, server_default=""),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("registrant", sa.String(100), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_target_outlets_month", "ob_target_outlets", ["month"], unique=False)
    op.create_index("ix_ob_target_outlets_type", "ob_target_outlets", ["type"], unique=False)

    op.create_table(
        "ob_manual_adjustments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("label", sa.String(200), nullable=False),
        sa.Column("amount", sa.Numeric(14, 0), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_manual_adjustments_month", "ob_manual_adjustments", ["month"], unique=False)
    op.create_index("ix_ob_manual_adjustments_type", "ob_manual_adjustments", ["type"], unique=False)

    op.create_table(
        "ob_settlement_sources",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("stream", sa.String(20), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=True),
        sa.Column("rows", sa.JSON(), nullable=True),
        sa.Column("row_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("imported_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("month", "stream", name="uq_ob_settlement_sources_month_stream"),
    )
    op.create_index("ix_ob_settlement_sources_month", "ob_settlement_sources", ["month"], unique=False)

    op.create_table(
        "ob_settlement_progress",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("month", sa.String(7), nullable=False),
        sa.Column("progress", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_settlement_progress_month", "ob_settlement_progress", ["month"], unique=True)

    op.create_table(
        "ob_config",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("config_key", sa.String(50), nullable=False),
        sa.Column("config_value", sa.Text(), nullable=False),
        sa.Column("description", sa.String(200), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_config_config_key", "ob_config", ["config_key"], unique=True)

    op.create_table(
        "ob_user_preferences",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("preferences", sa.JSON(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_ob_user_preferences_user_id", "ob_user_preferences", ["user_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_ob_user_preferences_user_id", table_name="ob_user_preferences")
    op.drop_table("ob_user_preferences")
    op.drop_index("ix_ob_config_config_key", table_name="ob_config")
    op.drop_table("ob_config")
    op.drop_index("ix_ob_settlement_progress_month", table_name="ob_settlement_progress")
    op.drop_table("ob_settlement_progress")
    op.drop_index("ix_ob_settlement_sources_month", table_name="ob_settlement_sources")
    op.drop_table("ob_settlement_sources")
    op.drop_index("ix_ob_manual_adjustments_type", table_name="ob_manual_adjustments")
    op.drop_index("ix_ob_manual_adjustments_month", table_name="ob_manual_adjustments")
    op.drop_table("ob_manual_adjustments")
    op.drop_index("ix_ob_target_outlets_type", table_name="ob_target_outlets")
    op.drop_index("ix_ob_target_outlets_month", table_name="ob_target_outlets")
    op.drop_table("ob_target_outlets")
    op.drop_index("ix_ob_exclusions_type", table_name="ob_exclusions")
    op.drop_index("ix_ob_exclusions_month", table_name="ob_exclusions")
    op.drop_table("ob_exclusions")
    op.drop_index("ix_ob_comparison_results_user_id", table_name="ob_comparison_results")
    op.drop_table("ob_comparison_results")
    op.drop_index("ix_ob_discount_rules_rule_kind", table_name="ob_discount_rules")
    op.drop_index("ix_ob_discount_rules_plan_group", table_name="ob_discount_rules")
    op.drop_table("ob_discount_rules")
    op.drop_index("ix_ob_plans_plan_name", table_name="ob_plans")
    op.drop_table("ob_plans")

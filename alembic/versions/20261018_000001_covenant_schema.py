"""Covenant monitoring schema.

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18 00:00:01
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid() -> postgresql.UUID:
    return postgresql.UUID(as_uuid=True)


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")
    )


def upgrade() -> None:
    """Create borrower, contract, covenant, financial, alert and event tables."""
    op.create_table(
        "borrowers",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("legal_name", sa.String(255), nullable=False),
        sa.Column("industry", sa.String(100), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "contracts",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("borrower_id", _uuid(), sa.ForeignKey("borrowers.id"), nullable=False),
        sa.Column("contract_name", sa.String(255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_contracts_borrower_id", "contracts", ["borrower_id"])

    op.create_table(
        "covenants",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("contract_id", _uuid(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("covenant_name", sa.String(255), nullable=False),
        sa.Column("covenant_type", sa.String(20), nullable=False, server_default="other"),
        sa.Column("metric_name", sa.String(100), nullable=True),
        sa.Column("operator", sa.String(2), nullable=True),
        sa.Column("threshold_value", sa.Float(), nullable=True),
        sa.Column("threshold_unit", sa.String(50), nullable=True),
        sa.Column("check_frequency", sa.String(20), nullable=False, server_default="quarterly"),
        sa.Column("covenant_clause", sa.Text(), nullable=True),
        sa.Column("ai_extracted", sa.Boolean(), nullable=False, server_default="false"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "operator IS NULL OR operator IN ('<', '<=', '>', '>=', '=', '!=')",
            name="ck_covenants_operator",
        ),
    )
    op.create_index("ix_covenants_contract_id", "covenants", ["contract_id"])

    op.create_table(
        "covenant_health",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("covenant_id", _uuid(), sa.ForeignKey("covenants.id"), nullable=False),
        sa.Column("contract_id", _uuid(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("current_value", sa.Float(), nullable=True),
        sa.Column("threshold_value", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("buffer_percentage", sa.Float(), nullable=True),
        sa.Column("trend", sa.String(20), nullable=False, server_default="stable"),
        sa.Column("trend_confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("days_to_breach", sa.Integer(), nullable=True),
        sa.Column("risk_score", sa.Float(), nullable=True),
        sa.Column("risk_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("recommended_action", sa.Text(), nullable=False, server_default=""),
        sa.Column("last_reported_date", sa.Date(), nullable=True),
        sa.Column("last_calculated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("covenant_id", name="uq_covenant_health_covenant"),
    )

    op.create_table(
        "financial_snapshots",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("borrower_id", _uuid(), sa.ForeignKey("borrowers.id"), nullable=False),
        sa.Column("period_date", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(20), nullable=False),
        sa.Column("source", sa.String(100), nullable=False),
        sa.Column("debt_total", sa.Float(), nullable=True),
        sa.Column("ebitda", sa.Float(), nullable=True),
        sa.Column("revenue", sa.Float(), nullable=True),
        sa.Column("net_income", sa.Float(), nullable=True),
        sa.Column("operating_cash_flow", sa.Float(), nullable=True),
        sa.Column("capex", sa.Float(), nullable=True),
        sa.Column("interest_expense", sa.Float(), nullable=True),
        sa.Column("equity_total", sa.Float(), nullable=True),
        sa.Column("current_assets", sa.Float(), nullable=True),
        sa.Column("current_liabilities", sa.Float(), nullable=True),
        sa.Column("debt_to_ebitda", sa.Float(), nullable=True),
        sa.Column("debt_to_equity", sa.Float(), nullable=True),
        sa.Column("current_ratio", sa.Float(), nullable=True),
        sa.Column("interest_coverage", sa.Float(), nullable=True),
        sa.Column("roe", sa.Float(), nullable=True),
        sa.Column("roa", sa.Float(), nullable=True),
        sa.Column("data_confidence", sa.Float(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("borrower_id", "period_date", "period_type", name="uq_snapshot_period"),
    )
    op.create_index(
        "ix_snapshots_borrower_period", "financial_snapshots", ["borrower_id", "period_date"]
    )

    op.create_table(
        "alerts",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("covenant_id", _uuid(), sa.ForeignKey("covenants.id"), nullable=False),
        sa.Column("contract_id", _uuid(), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("alert_type", sa.String(20), nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("trigger_metric_value", sa.Float(), nullable=True),
        sa.Column("threshold_value", sa.Float(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="new"),
        sa.Column(
            "triggered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")
        ),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("acknowledged_by", sa.String(255), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_alerts_status", "alerts", ["status"])
    op.create_index("ix_alerts_covenant_id", "alerts", ["covenant_id"])

    op.create_table(
        "adverse_events",
        sa.Column("id", _uuid(), nullable=False),
        sa.Column("borrower_id", _uuid(), sa.ForeignKey("borrowers.id"), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("headline", sa.String(500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("source_url", sa.String(1000), nullable=True),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("risk_score", sa.Float(), nullable=False),
        sa.Column("ai_analyzed", sa.Boolean(), nullable=False, server_default="false"),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("risk_score >= 1 AND risk_score <= 10", name="ck_adverse_events_score"),
    )
    op.create_index("ix_adverse_events_borrower_id", "adverse_events", ["borrower_id"])


def downgrade() -> None:
    """Drop all covenant monitoring tables."""
    op.drop_index("ix_adverse_events_borrower_id", table_name="adverse_events")
    op.drop_table("adverse_events")
    op.drop_index("ix_alerts_covenant_id", table_name="alerts")
    op.drop_index("ix_alerts_status", table_name="alerts")
    op.drop_table("alerts")
    op.drop_index("ix_snapshots_borrower_period", table_name="financial_snapshots")
    op.drop_table("financial_snapshots")
    op.drop_table("covenant_health")
    op.drop_index("ix_covenants_contract_id", table_name="covenants")
    op.drop_table("covenants")
    op.drop_index("ix_contracts_borrower_id", table_name="contracts")
    op.drop_table("contracts")
    op.drop_table("borrowers")

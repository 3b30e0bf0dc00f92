"""
CovenantWatch SQLAlchemy Models.

Uses compatibility types for SQLite (tests, dev) + PostgreSQL (prod).
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from covenantwatch.db.compat import GUID
from covenantwatch.db.engine import Base


def _genuuid():
    return uuid.uuid4()


def _utcnow():
    return datetime.now(timezone.utc)


# ──────────────────────────────────────────────────────────────────────────────
# Borrowers & contracts
# ──────────────────────────────────────────────────────────────────────────────


class BorrowerRecord(Base):
    __tablename__ = "borrowers"

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    legal_name: Mapped[str] = mapped_column(String(255), nullable=False)
    industry: Mapped[Optional[str]] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class ContractRecord(Base):
    __tablename__ = "contracts"
    __table_args__ = (Index("ix_contracts_borrower_id", "borrower_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    borrower_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("borrowers.id"), nullable=False)
    contract_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# Covenants & health
# ──────────────────────────────────────────────────────────────────────────────


class CovenantRecord(Base):
    __tablename__ = "covenants"
    __table_args__ = (Index("ix_covenants_contract_id", "contract_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    contract_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("contracts.id"), nullable=False)
    covenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    covenant_type: Mapped[str] = mapped_column(String(20), nullable=False, default="other")
    metric_name: Mapped[Optional[str]] = mapped_column(String(100))
    operator: Mapped[Optional[str]] = mapped_column(String(2))
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)
    threshold_unit: Mapped[Optional[str]] = mapped_column(String(50))
    check_frequency: Mapped[str] = mapped_column(String(20), nullable=False, default="quarterly")
    covenant_clause: Mapped[Optional[str]] = mapped_column(Text)
    ai_extracted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class CovenantHealthRecord(Base):
    """Current health per covenant. Overwritten on every recalculation."""

    __tablename__ = "covenant_health"
    __table_args__ = (UniqueConstraint("covenant_id", name="uq_covenant_health_covenant"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    covenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("covenants.id"), nullable=False)
    contract_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("contracts.id"), nullable=False)
    current_value: Mapped[Optional[float]] = mapped_column(Float)
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    buffer_percentage: Mapped[Optional[float]] = mapped_column(Float)
    trend: Mapped[str] = mapped_column(String(20), nullable=False, default="stable")
    trend_confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    days_to_breach: Mapped[Optional[int]] = mapped_column(Integer)
    risk_score: Mapped[Optional[float]] = mapped_column(Float)
    risk_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    recommended_action: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_reported_date: Mapped[Optional[date]] = mapped_column(Date)
    last_calculated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ──────────────────────────────────────────────────────────────────────────────
# Financial data
# ──────────────────────────────────────────────────────────────────────────────


class FinancialSnapshotRecord(Base):
    __tablename__ = "financial_snapshots"
    __table_args__ = (
        UniqueConstraint(
            "borrower_id", "period_date", "period_type", name="uq_snapshot_period"
        ),
        Index("ix_snapshots_borrower_period", "borrower_id", "period_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    borrower_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("borrowers.id"), nullable=False)
    period_date: Mapped[date] = mapped_column(Date, nullable=False)
    period_type: Mapped[str] = mapped_column(String(20), nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False)

    debt_total: Mapped[Optional[float]] = mapped_column(Float)
    ebitda: Mapped[Optional[float]] = mapped_column(Float)
    revenue: Mapped[Optional[float]] = mapped_column(Float)
    net_income: Mapped[Optional[float]] = mapped_column(Float)
    operating_cash_flow: Mapped[Optional[float]] = mapped_column(Float)
    capex: Mapped[Optional[float]] = mapped_column(Float)
    interest_expense: Mapped[Optional[float]] = mapped_column(Float)
    equity_total: Mapped[Optional[float]] = mapped_column(Float)
    current_assets: Mapped[Optional[float]] = mapped_column(Float)
    current_liabilities: Mapped[Optional[float]] = mapped_column(Float)

    # Derived at ingestion
    debt_to_ebitda: Mapped[Optional[float]] = mapped_column(Float)
    debt_to_equity: Mapped[Optional[float]] = mapped_column(Float)
    current_ratio: Mapped[Optional[float]] = mapped_column(Float)
    interest_coverage: Mapped[Optional[float]] = mapped_column(Float)
    roe: Mapped[Optional[float]] = mapped_column(Float)
    roa: Mapped[Optional[float]] = mapped_column(Float)
    data_confidence: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ──────────────────────────────────────────────────────────────────────────────
# Alerts & adverse events
# ──────────────────────────────────────────────────────────────────────────────


class AlertRecord(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        Index("ix_alerts_status", "status"),
        Index("ix_alerts_covenant_id", "covenant_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    covenant_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("covenants.id"), nullable=False)
    contract_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("contracts.id"), nullable=False)
    alert_type: Mapped[str] = mapped_column(String(20), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    trigger_metric_value: Mapped[Optional[float]] = mapped_column(Float)
    threshold_value: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="new")
    triggered_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    acknowledged_by: Mapped[Optional[str]] = mapped_column(String(255))
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text)


class AdverseEventRecord(Base):
    __tablename__ = "adverse_events"
    __table_args__ = (Index("ix_adverse_events_borrower_id", "borrower_id"),)

    id: Mapped[uuid.UUID] = mapped_column(GUID(), primary_key=True, default=_genuuid)
    borrower_id: Mapped[uuid.UUID] = mapped_column(GUID(), ForeignKey("borrowers.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(40), nullable=False)
    headline: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_url: Mapped[Optional[str]] = mapped_column(String(1000))
    event_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    risk_score: Mapped[float] = mapped_column(Float, nullable=False)
    ai_analyzed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

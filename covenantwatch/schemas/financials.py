"""Financial snapshot and derived ratio schemas."""

from datetime import date
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from covenantwatch.schemas.covenants import BatchEvaluationResult


class PeriodType(StrEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"


# Raw figures carried by a snapshot, in declaration order.
RAW_FIGURES: tuple[str, ...] = (
    "debt_total",
    "ebitda",
    "revenue",
    "net_income",
    "operating_cash_flow",
    "capex",
    "interest_expense",
    "equity_total",
    "current_assets",
    "current_liabilities",
)


class FinancialSnapshot(BaseModel):
    """
    One reporting period for one borrower.

    Every raw figure is optional: absence means "not reported", which is
    different from a reported zero.
    """

    model_config = ConfigDict(frozen=True)

    borrower_id: str = Field(min_length=1)
    period_date: date
    period_type: PeriodType
    source: str = Field(min_length=1)

    debt_total: Optional[float] = None
    ebitda: Optional[float] = None
    revenue: Optional[float] = None
    net_income: Optional[float] = None
    operating_cash_flow: Optional[float] = None
    capex: Optional[float] = None
    interest_expense: Optional[float] = None
    equity_total: Optional[float] = None
    current_assets: Optional[float] = None
    current_liabilities: Optional[float] = None

    # Stored alongside the snapshot once it has been ingested
    data_confidence: Optional[float] = None


class FinancialRatios(BaseModel):
    """Derived ratios. A ratio is None when it cannot be computed."""

    model_config = ConfigDict(frozen=True)

    debt_to_ebitda: Optional[float] = None
    debt_to_equity: Optional[float] = None
    current_ratio: Optional[float] = None
    interest_coverage: Optional[float] = None
    roe: Optional[float] = None
    roa: Optional[float] = None
    data_confidence: float = Field(ge=0.0, le=1.0)


class EnrichedSnapshot(BaseModel):
    """A snapshot together with its ratios, as returned by ingestion."""

    snapshot: FinancialSnapshot
    ratios: FinancialRatios


class FinancialIngestResult(BaseModel):
    """Stored snapshot plus the recalculation it triggered."""

    snapshot: FinancialSnapshot
    ratios: FinancialRatios
    recalculation: BatchEvaluationResult


class FinancialIngestError(BaseModel):
    """A snapshot rejected during batch ingestion."""

    borrower_id: str
    period_date: date
    error_type: str
    message: str


class FinancialBatchIngestResult(BaseModel):
    """Stored snapshots, per-item failures, and one recalculation per borrower."""

    stored: list[FinancialSnapshot] = Field(default_factory=list)
    errors: list[FinancialIngestError] = Field(default_factory=list)
    recalculations: list[BatchEvaluationResult] = Field(default_factory=list)


class StaleBorrower(BaseModel):
    """
    A borrower whose latest snapshot is older than the staleness window.

    All three period fields are None when the borrower has never reported.
    """

    borrower_id: str
    last_period_date: Optional[date] = None
    days_since_update: Optional[int] = None
    missing_periods: Optional[int] = None


class DataQualityReport(BaseModel):
    is_valid: bool
    confidence_score: float = Field(ge=0.0, le=1.0)
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

"""
Covenant, covenant health and risk-assessment schemas.
"""

from datetime import date, datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Enums ──────────────────────────────────────────────────────────────


class CovenantOperator(StrEnum):
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    EQ = "="
    NEQ = "!="


class CovenantType(StrEnum):
    FINANCIAL = "financial"
    OPERATIONAL = "operational"
    REPORTING = "reporting"
    OTHER = "other"


class CheckFrequency(StrEnum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUALLY = "annually"
    ON_DEMAND = "on_demand"


class ComplianceStatus(StrEnum):
    COMPLIANT = "compliant"
    WARNING = "warning"
    BREACHED = "breached"


class TrendDirection(StrEnum):
    IMPROVING = "improving"
    STABLE = "stable"
    DETERIORATING = "deteriorating"


# ── Covenant ───────────────────────────────────────────────────────────


class CovenantCreate(BaseModel):
    """A validated covenant candidate ready to be persisted."""

    contract_id: str
    covenant_name: str
    covenant_type: CovenantType = CovenantType.OTHER
    metric_name: Optional[str] = None
    operator: Optional[CovenantOperator] = None
    threshold_value: Optional[float] = None
    threshold_unit: Optional[str] = None
    check_frequency: CheckFrequency = CheckFrequency.QUARTERLY
    covenant_clause: Optional[str] = None
    ai_extracted: bool = False


class Covenant(BaseModel):
    """
    A rule attached to a contract, plus the borrower context the engine
    needs to evaluate it.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    contract_id: str
    borrower_id: str
    covenant_name: str
    covenant_type: CovenantType = CovenantType.OTHER
    metric_name: Optional[str] = None
    operator: Optional[str] = None
    threshold_value: Optional[float] = None
    threshold_unit: Optional[str] = None
    check_frequency: CheckFrequency = CheckFrequency.QUARTERLY
    covenant_clause: Optional[str] = None

    borrower_name: str = "Unknown"
    industry: Optional[str] = None


# ── Health ─────────────────────────────────────────────────────────────


class CovenantHealth(BaseModel):
    """Latest evaluation of a covenant. One current record per covenant."""

    model_config = ConfigDict(from_attributes=True)

    covenant_id: str
    contract_id: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    status: ComplianceStatus
    buffer_percentage: Optional[float] = None
    trend: TrendDirection = TrendDirection.STABLE
    trend_confidence: float = 0.0
    days_to_breach: Optional[int] = None
    risk_score: Optional[float] = None
    risk_summary: str = ""
    recommended_action: str = ""
    last_reported_date: Optional[date] = None
    last_calculated: datetime


class TrendPoint(BaseModel):
    period_date: date
    value: Optional[float]
    status: ComplianceStatus


class CovenantTrendSeries(BaseModel):
    covenant_id: str
    trend: TrendDirection
    confidence: float
    points: list[TrendPoint] = Field(default_factory=list)


# ── AI risk narrative ──────────────────────────────────────────────────


class CovenantRiskContext(BaseModel):
    """Covenant-side inputs sent to the AI narrative service."""

    covenant_name: str
    current_value: Optional[float] = None
    threshold_value: Optional[float] = None
    trend: TrendDirection = TrendDirection.STABLE
    buffer_percentage: Optional[float] = None


class BorrowerContext(BaseModel):
    borrower_name: str = "Unknown"
    industry: Optional[str] = None
    recent_metrics: dict[str, float] = Field(default_factory=dict)
    active_covenants: list[dict[str, str]] = Field(default_factory=list)


class RiskAssessment(BaseModel):
    risk_score: float = Field(ge=1.0, le=10.0)
    risk_factors: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)
    summary: str = ""
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


DEFAULT_RISK_ASSESSMENT = RiskAssessment(
    risk_score=5.0,
    risk_factors=["Unable to perform AI analysis"],
    recommended_actions=["Manual review recommended"],
    summary="AI risk analysis unavailable",
    confidence=0.1,
)


# ── Batch results ──────────────────────────────────────────────────────


class CovenantEvaluationError(BaseModel):
    """A covenant that could not be evaluated. Shown as 'unavailable'."""

    covenant_id: str
    error_type: str
    message: str
    status: str = "unavailable"


class BatchEvaluationResult(BaseModel):
    borrower_id: str
    results: list[CovenantHealth] = Field(default_factory=list)
    errors: list[CovenantEvaluationError] = Field(default_factory=list)

    @property
    def evaluated(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.errors)

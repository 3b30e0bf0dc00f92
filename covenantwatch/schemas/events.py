"""Adverse event and borrower risk aggregation schemas."""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AdverseEventType(StrEnum):
    NEWS = "news"
    REGULATORY = "regulatory"
    CREDIT_RATING_DOWNGRADE = "credit_rating_downgrade"
    EXECUTIVE_CHANGE = "executive_change"
    LITIGATION = "litigation"
    OTHER = "other"


class RiskTrend(StrEnum):
    INCREASING = "increasing"
    STABLE = "stable"
    DECREASING = "decreasing"


class AdverseEventInput(BaseModel):
    borrower_id: str = Field(min_length=1)
    event_type: AdverseEventType = AdverseEventType.OTHER
    headline: str = Field(min_length=1)
    description: str = ""
    source_url: Optional[str] = None
    event_date: datetime


class AdverseEvent(BaseModel):
    """A scored external signal about a borrower. Immutable once scored."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: str
    borrower_id: str
    event_type: AdverseEventType = AdverseEventType.OTHER
    headline: str
    description: str = ""
    source_url: Optional[str] = None
    event_date: datetime
    risk_score: float = Field(ge=1.0, le=10.0)
    ai_analyzed: bool = False


class EventRiskScore(BaseModel):
    """Response of the AI event-risk service."""

    risk_score: float = Field(ge=1.0, le=10.0)
    impact_assessment: str = ""
    affected_covenants: list[str] = Field(default_factory=list)
    recommended_actions: list[str] = Field(default_factory=list)


DEFAULT_EVENT_RISK = EventRiskScore(
    risk_score=5.0,
    impact_assessment="Automated analysis unavailable",
    affected_covenants=[],
    recommended_actions=["Review event manually"],
)


class RiskAggregation(BaseModel):
    """Recomputed-on-demand view over all of a borrower's adverse events."""

    borrower_id: str
    total_events: int
    aggregate_risk_score: float
    risk_factors: list[str] = Field(default_factory=list)
    highest_risk_event: Optional[AdverseEvent] = None
    risk_trend: RiskTrend = RiskTrend.STABLE
    last_calculated: datetime


class IngestedEvent(BaseModel):
    event: AdverseEvent
    alerts_created: int = 0

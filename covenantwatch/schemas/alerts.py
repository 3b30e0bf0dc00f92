"""
Alert Schemas.

An alert is an immutable event created by the Alert Generator or the
adverse-event path. Only its lifecycle status changes afterwards.
"""

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from covenantwatch.schemas.covenants import ComplianceStatus


class AlertType(StrEnum):
    WARNING = "warning"
    CRITICAL = "critical"
    BREACH = "breach"
    REPORTING_DUE = "reporting_due"


class AlertSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Escalation order, lowest first
SEVERITY_LEVELS: tuple[AlertSeverity, ...] = (
    AlertSeverity.LOW,
    AlertSeverity.MEDIUM,
    AlertSeverity.HIGH,
    AlertSeverity.CRITICAL,
)


class AlertStatus(StrEnum):
    NEW = "new"
    ACKNOWLEDGED = "acknowledged"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class AlertCreate(BaseModel):
    """Alert input handed to the alert sink."""

    model_config = ConfigDict(frozen=True)

    covenant_id: str
    contract_id: str
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    trigger_metric_value: Optional[float] = None
    threshold_value: Optional[float] = None


class Alert(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    covenant_id: str
    contract_id: str
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    description: str
    trigger_metric_value: Optional[float] = None
    threshold_value: Optional[float] = None
    status: AlertStatus = AlertStatus.NEW
    triggered_at: datetime
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    resolution_notes: Optional[str] = None


class StatusChangeEvent(BaseModel):
    """A covenant moved from one compliance status to another."""

    covenant_id: str
    contract_id: str
    covenant_name: str
    metric_name: str = "unknown"
    previous_status: ComplianceStatus
    new_status: ComplianceStatus
    current_value: float = 0.0
    threshold_value: float = 0.0


class EscalationResult(BaseModel):
    alert_id: str
    previous_severity: AlertSeverity
    new_severity: AlertSeverity
    escalated_at: datetime
    reason: str


class AlertSummary(BaseModel):
    total: int = 0
    new: int = 0
    acknowledged: int = 0
    escalated: int = 0
    resolved: int = 0
    by_severity: dict[str, int] = Field(default_factory=dict)

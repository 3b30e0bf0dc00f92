"""
Alert Generator — synthesizes alerts from covenant status transitions.

Only three transitions notify a human:
    compliant → warning
    compliant → breached
    warning   → breached

Steady states (e.g. breached → breached) and improvements never alert,
which keeps an unchanged breach from producing an alert storm.

Severity rule (single code path for every transition):
- new status BREACHED → CRITICAL
- new status WARNING  → graded by distance from threshold:
  ≤5% HIGH, ≤15% MEDIUM, otherwise LOW
"""

from typing import Optional

import structlog

from covenantwatch.schemas.alerts import (
    AlertCreate,
    AlertSeverity,
    AlertType,
    StatusChangeEvent,
)
from covenantwatch.schemas.covenants import ComplianceStatus, Covenant, CovenantHealth

logger = structlog.get_logger(__name__)

ALERTING_TRANSITIONS: frozenset[tuple[ComplianceStatus, ComplianceStatus]] = frozenset({
    (ComplianceStatus.COMPLIANT, ComplianceStatus.WARNING),
    (ComplianceStatus.COMPLIANT, ComplianceStatus.BREACHED),
    (ComplianceStatus.WARNING, ComplianceStatus.BREACHED),
})

HIGH_SEVERITY_DISTANCE_PCT: float = 5.0
MEDIUM_SEVERITY_DISTANCE_PCT: float = 15.0


def determine_severity(
    new_status: ComplianceStatus,
    current_value: float,
    threshold_value: float,
) -> AlertSeverity:
    """Severity for an alerting transition into new_status."""
    if new_status == ComplianceStatus.BREACHED:
        return AlertSeverity.CRITICAL

    if threshold_value == 0:
        return AlertSeverity.HIGH

    distance = abs((current_value - threshold_value) / threshold_value) * 100
    if distance <= HIGH_SEVERITY_DISTANCE_PCT:
        return AlertSeverity.HIGH
    elif distance <= MEDIUM_SEVERITY_DISTANCE_PCT:
        return AlertSeverity.MEDIUM
    return AlertSeverity.LOW


def alert_title(event: StatusChangeEvent) -> str:
    status_text = "BREACH" if event.new_status == ComplianceStatus.BREACHED else "WARNING"
    return f"Covenant {status_text}: {event.covenant_name}"


def alert_description(event: StatusChangeEvent) -> str:
    return (
        f"{event.covenant_name} ({event.metric_name}) has moved from "
        f"{event.previous_status.value} to {event.new_status.value}. "
        f"Current value: {event.current_value:.2f}, "
        f"Threshold: {event.threshold_value:.2f}."
    )


class AlertGenerator:
    """
    Stateless transition watcher.

    Never raises for an unrecognized transition; it simply returns None.
    """

    def on_status_change(self, event: StatusChangeEvent) -> Optional[AlertCreate]:
        """
        Build the alert for a status transition, if one is warranted.

        Returns:
            AlertCreate for an alerting transition, None otherwise
        """
        transition = (event.previous_status, event.new_status)
        if transition not in ALERTING_TRANSITIONS:
            return None

        alert_type = (
            AlertType.BREACH
            if event.new_status == ComplianceStatus.BREACHED
            else AlertType.WARNING
        )
        severity = determine_severity(
            event.new_status, event.current_value, event.threshold_value
        )

        alert = AlertCreate(
            covenant_id=event.covenant_id,
            contract_id=event.contract_id,
            alert_type=alert_type,
            severity=severity,
            title=alert_title(event),
            description=alert_description(event),
            trigger_metric_value=event.current_value,
            threshold_value=event.threshold_value,
        )

        logger.info(
            "covenant_alert_generated",
            covenant_id=event.covenant_id,
            previous_status=event.previous_status.value,
            new_status=event.new_status.value,
            alert_type=alert_type.value,
            severity=severity.value,
        )
        return alert

    def process_health_update(
        self,
        covenant: Covenant,
        previous: Optional[CovenantHealth],
        new: CovenantHealth,
    ) -> Optional[AlertCreate]:
        """
        Compare two health records for the same covenant.

        A covenant with no previous record is treated as previously compliant.
        """
        previous_status = previous.status if previous is not None else ComplianceStatus.COMPLIANT
        if previous_status == new.status:
            return None

        event = StatusChangeEvent(
            covenant_id=covenant.id,
            contract_id=covenant.contract_id,
            covenant_name=covenant.covenant_name,
            metric_name=covenant.metric_name or "unknown",
            previous_status=previous_status,
            new_status=new.status,
            current_value=new.current_value or 0.0,
            threshold_value=covenant.threshold_value or 0.0,
        )
        return self.on_status_change(event)

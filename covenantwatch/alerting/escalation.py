"""
Alert lifecycle and escalation.

Lifecycle: NEW → ACKNOWLEDGED | ESCALATED → RESOLVED. An escalated alert can
still be acknowledged; a resolved alert is final.

An alert still NEW after the escalation threshold moves one severity level
up (capped at CRITICAL) and into ESCALATED status.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

from covenantwatch.exceptions import ValidationError
from covenantwatch.schemas.alerts import (
    SEVERITY_LEVELS,
    Alert,
    AlertSeverity,
    AlertStatus,
    AlertSummary,
)

ALERT_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.NEW: frozenset(
        {AlertStatus.ACKNOWLEDGED, AlertStatus.ESCALATED, AlertStatus.RESOLVED}
    ),
    AlertStatus.ESCALATED: frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED}),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
}


def check_status_transition(current: AlertStatus, target: AlertStatus) -> None:
    """Raise ValidationError unless the lifecycle allows current → target."""
    if target not in ALERT_TRANSITIONS[current]:
        raise ValidationError(
            f"Alert cannot move from {current.value} to {target.value}",
            field="status",
            details={"current": current.value, "requested": target.value},
        )


def escalate_severity(severity: AlertSeverity) -> AlertSeverity:
    index = SEVERITY_LEVELS.index(severity)
    return SEVERITY_LEVELS[min(index + 1, len(SEVERITY_LEVELS) - 1)]


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def alerts_due_for_escalation(
    alerts: Iterable[Alert],
    threshold_minutes: int = 60,
    now: Optional[datetime] = None,
) -> list[Alert]:
    """Alerts still NEW after threshold_minutes."""
    now = _aware(now or datetime.now(timezone.utc))
    cutoff = now - timedelta(minutes=threshold_minutes)
    return [
        a for a in alerts
        if a.status == AlertStatus.NEW and _aware(a.triggered_at) <= cutoff
    ]


def summarize_alerts(alerts: Iterable[Alert]) -> AlertSummary:
    summary = AlertSummary(by_severity={s.value: 0 for s in SEVERITY_LEVELS})
    for alert in alerts:
        summary.total += 1
        if alert.status == AlertStatus.NEW:
            summary.new += 1
        elif alert.status == AlertStatus.ACKNOWLEDGED:
            summary.acknowledged += 1
        elif alert.status == AlertStatus.ESCALATED:
            summary.escalated += 1
        elif alert.status == AlertStatus.RESOLVED:
            summary.resolved += 1
        summary.by_severity[alert.severity.value] += 1
    return summary

"""
Adverse Event Risk Aggregator.

Older and milder events matter less. Each event's weight combines a linear
recency decay with its severity:

    days      = max(1, age in days)
    recency   = max(0.1, 1 - days / 90)
    weight    = recency × (0.5 + 0.5 × score / 10)

Aggregate = weighted mean score × min(1.5, 1 + (n - 1) × 0.1), clamped to
[1, 10]. An empty event set aggregates to 0 with a stable trend.

High-risk events (score ≥ 7) also raise warning alerts against every
borrower covenant the event type is likely to affect, per IMPACT_MATRIX.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import structlog

from covenantwatch.config import settings
from covenantwatch.exceptions import ExternalServiceError
from covenantwatch.schemas.alerts import AlertCreate, AlertSeverity, AlertType
from covenantwatch.schemas.covenants import BorrowerContext, Covenant, CovenantType
from covenantwatch.schemas.events import (
    DEFAULT_EVENT_RISK,
    AdverseEvent,
    AdverseEventInput,
    AdverseEventType,
    EventRiskScore,
    IngestedEvent,
    RiskAggregation,
    RiskTrend,
)
from covenantwatch.services.ports import (
    AdverseEventStore,
    AlertSink,
    CovenantStore,
    EventRiskService,
)

logger = structlog.get_logger(__name__)

# ── Configuration ─────────────────────────────────────────────────────────

MIN_RECENCY_WEIGHT: float = 0.1
MAX_COUNT_MULTIPLIER: float = 1.5
COUNT_MULTIPLIER_STEP: float = 0.1
TREND_DIFF_THRESHOLD: float = 1.0
HIGH_SEVERITY_SCORE: float = 8.0

DEFAULT_IMPACT: float = 0.3

# Covenant type × event type → likelihood the event moves the covenant
IMPACT_MATRIX: dict[CovenantType, dict[AdverseEventType, float]] = {
    CovenantType.FINANCIAL: {
        AdverseEventType.CREDIT_RATING_DOWNGRADE: 0.9,
        AdverseEventType.REGULATORY: 0.7,
        AdverseEventType.LITIGATION: 0.6,
        AdverseEventType.NEWS: 0.4,
        AdverseEventType.EXECUTIVE_CHANGE: 0.3,
        AdverseEventType.OTHER: 0.2,
    },
    CovenantType.OPERATIONAL: {
        AdverseEventType.EXECUTIVE_CHANGE: 0.8,
        AdverseEventType.REGULATORY: 0.7,
        AdverseEventType.LITIGATION: 0.5,
        AdverseEventType.NEWS: 0.4,
        AdverseEventType.CREDIT_RATING_DOWNGRADE: 0.3,
        AdverseEventType.OTHER: 0.2,
    },
    CovenantType.REPORTING: {
        AdverseEventType.REGULATORY: 0.8,
        AdverseEventType.LITIGATION: 0.6,
        AdverseEventType.EXECUTIVE_CHANGE: 0.5,
        AdverseEventType.NEWS: 0.3,
        AdverseEventType.CREDIT_RATING_DOWNGRADE: 0.3,
        AdverseEventType.OTHER: 0.2,
    },
    CovenantType.OTHER: {
        AdverseEventType.CREDIT_RATING_DOWNGRADE: 0.5,
        AdverseEventType.REGULATORY: 0.5,
        AdverseEventType.LITIGATION: 0.5,
        AdverseEventType.NEWS: 0.5,
        AdverseEventType.EXECUTIVE_CHANGE: 0.5,
        AdverseEventType.OTHER: 0.3,
    },
}


def impact_weight(covenant_type: CovenantType | str, event_type: AdverseEventType | str) -> float:
    """Impact of an event type on a covenant type; unknown pairs → 0.3."""
    try:
        row = IMPACT_MATRIX[CovenantType(covenant_type)]
        return row.get(AdverseEventType(event_type), DEFAULT_IMPACT)
    except ValueError:
        return DEFAULT_IMPACT


# ── Scoring ───────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WeightedEvent:
    """An event with its recency/severity weight applied."""
    event_id: str
    score: float
    age_days: float
    recency_weight: float
    weight: float


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo is not None else ts.replace(tzinfo=timezone.utc)


def weigh_event(
    event: AdverseEvent,
    now: datetime,
    window_days: float = 90.0,
) -> WeightedEvent:
    age_days = (_aware(now) - _aware(event.event_date)).total_seconds() / 86400
    days = max(1.0, age_days)
    recency = max(MIN_RECENCY_WEIGHT, 1 - days / window_days)
    severity = event.risk_score / 10
    return WeightedEvent(
        event_id=event.id,
        score=event.risk_score,
        age_days=age_days,
        recency_weight=recency,
        weight=recency * (0.5 + 0.5 * severity),
    )


def weighted_risk_score(
    events: Sequence[AdverseEvent],
    now: datetime,
    window_days: float = 90.0,
) -> float:
    if not events:
        return 0.0

    weighted = [weigh_event(e, now, window_days) for e in events]
    total_weight = sum(w.weight for w in weighted)
    base = sum(w.score * w.weight for w in weighted) / total_weight

    multiplier = min(MAX_COUNT_MULTIPLIER, 1 + (len(events) - 1) * COUNT_MULTIPLIER_STEP)
    return min(10.0, max(1.0, base * multiplier))


def risk_trend(
    events: Sequence[AdverseEvent],
    now: datetime,
    recent_days: float = 30.0,
) -> RiskTrend:
    """Recent-bucket vs older-bucket average score."""
    if len(events) < 2:
        return RiskTrend.STABLE

    cutoff = _aware(now) - timedelta(days=recent_days)
    recent = [e.risk_score for e in events if _aware(e.event_date) >= cutoff]
    older = [e.risk_score for e in events if _aware(e.event_date) < cutoff]

    if not older:
        return RiskTrend.INCREASING
    if not recent:
        return RiskTrend.DECREASING

    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff > TREND_DIFF_THRESHOLD:
        return RiskTrend.INCREASING
    elif diff < -TREND_DIFF_THRESHOLD:
        return RiskTrend.DECREASING
    return RiskTrend.STABLE


def risk_factors(events: Sequence[AdverseEvent], high_risk_threshold: float = 7.0) -> list[str]:
    factors: dict[str, None] = {}
    for event in events:
        factors.setdefault(f"{event.event_type.value} event detected")
        if event.risk_score >= high_risk_threshold:
            factors.setdefault(f"High-risk {event.event_type.value} event")
    return list(factors)


def highest_risk_event(events: Sequence[AdverseEvent]) -> Optional[AdverseEvent]:
    highest: Optional[AdverseEvent] = None
    for event in events:
        if highest is None or event.risk_score > highest.risk_score:
            highest = event
    return highest


# ── Service ───────────────────────────────────────────────────────────────


class AdverseEventAggregator:
    """Scores, stores and aggregates adverse events per borrower."""

    def __init__(
        self,
        events: AdverseEventStore,
        covenants: Optional[CovenantStore] = None,
        alerts: Optional[AlertSink] = None,
        scorer: Optional[EventRiskService] = None,
        window_days: float | None = None,
        recent_days: float | None = None,
        high_risk_threshold: float | None = None,
        impact_threshold: float | None = None,
    ):
        self.events = events
        self.covenants = covenants
        self.alerts = alerts
        self.scorer = scorer
        self.window_days = (
            window_days if window_days is not None else settings.recency_window_days
        )
        self.recent_days = (
            recent_days if recent_days is not None else settings.recent_bucket_days
        )
        self.high_risk_threshold = (
            high_risk_threshold if high_risk_threshold is not None else settings.high_risk_threshold
        )
        self.impact_threshold = (
            impact_threshold if impact_threshold is not None else settings.impact_alert_threshold
        )

    async def aggregate(self, borrower_id: str, now: Optional[datetime] = None) -> RiskAggregation:
        """Recompute the borrower's aggregate risk from all stored events."""
        now = now or datetime.now(timezone.utc)
        events = await self.events.get_events_for_borrower(borrower_id)

        aggregation = RiskAggregation(
            borrower_id=borrower_id,
            total_events=len(events),
            aggregate_risk_score=weighted_risk_score(events, now, self.window_days),
            risk_factors=risk_factors(events, self.high_risk_threshold),
            highest_risk_event=highest_risk_event(events),
            risk_trend=risk_trend(events, now, self.recent_days),
            last_calculated=now,
        )

        logger.info(
            "borrower_risk_aggregated",
            borrower_id=borrower_id,
            total_events=aggregation.total_events,
            score=round(aggregation.aggregate_risk_score, 2),
            trend=aggregation.risk_trend.value,
        )
        return aggregation

    async def score_event(
        self, event: AdverseEventInput, borrower: BorrowerContext
    ) -> tuple[EventRiskScore, bool]:
        """AI risk score for an event; (default, False) when the AI is unavailable."""
        if self.scorer is None:
            return DEFAULT_EVENT_RISK, False
        try:
            return await self.scorer.score_adverse_event(event, borrower), True
        except ExternalServiceError as exc:
            logger.warning(
                "event_scoring_unavailable",
                borrower_id=event.borrower_id,
                service=exc.service,
                error=exc.message,
            )
            return DEFAULT_EVENT_RISK, False

    async def ingest_event(
        self,
        event: AdverseEventInput,
        borrower: Optional[BorrowerContext] = None,
    ) -> IngestedEvent:
        """Score and store one event; alert affected covenants if high-risk."""
        covenants: list[Covenant] = []
        if self.covenants is not None:
            covenants = await self.covenants.get_covenants_for_borrower(event.borrower_id)

        if borrower is None:
            first = covenants[0] if covenants else None
            borrower = BorrowerContext(
                borrower_name=first.borrower_name if first else "Unknown Borrower",
                industry=first.industry if first else None,
            )
        if not borrower.active_covenants:
            borrower = borrower.model_copy(update={
                "active_covenants": [
                    {"covenant_name": c.covenant_name, "covenant_type": c.covenant_type.value}
                    for c in covenants
                ],
            })

        assessment, analyzed = await self.score_event(event, borrower)
        stored = await self.events.save_event(event, assessment.risk_score, analyzed)

        created = 0
        if stored.risk_score >= self.high_risk_threshold:
            created = await self._alert_affected_covenants(stored, assessment, covenants)

        logger.info(
            "adverse_event_ingested",
            event_id=stored.id,
            borrower_id=stored.borrower_id,
            event_type=stored.event_type.value,
            risk_score=stored.risk_score,
            ai_analyzed=analyzed,
            alerts_created=created,
        )
        return IngestedEvent(event=stored, alerts_created=created)

    async def _alert_affected_covenants(
        self,
        event: AdverseEvent,
        assessment: EventRiskScore,
        covenants: list[Covenant],
    ) -> int:
        if self.alerts is None:
            return 0

        severity = (
            AlertSeverity.HIGH
            if event.risk_score >= HIGH_SEVERITY_SCORE
            else AlertSeverity.MEDIUM
        )
        created = 0
        for covenant in covenants:
            if impact_weight(covenant.covenant_type, event.event_type) < self.impact_threshold:
                continue
            await self.alerts.create_alert(
                AlertCreate(
                    covenant_id=covenant.id,
                    contract_id=covenant.contract_id,
                    alert_type=AlertType.WARNING,
                    severity=severity,
                    title=f"Adverse Event: {event.headline}",
                    description=(
                        f"{event.event_type.value} event detected for borrower. "
                        f"{assessment.impact_assessment}"
                    ),
                    trigger_metric_value=event.risk_score,
                    threshold_value=self.high_risk_threshold,
                )
            )
            created += 1
        return created

    async def batch_ingest(
        self, inputs: Sequence[AdverseEventInput]
    ) -> tuple[list[IngestedEvent], list[dict[str, str]]]:
        """Ingest many events; one failure does not stop the rest."""
        ingested: list[IngestedEvent] = []
        errors: list[dict[str, str]] = []
        for index, event in enumerate(inputs):
            try:
                ingested.append(await self.ingest_event(event))
            except Exception as exc:
                logger.error(
                    "adverse_event_ingest_failed",
                    index=index,
                    borrower_id=event.borrower_id,
                    error=str(exc),
                )
                errors.append({
                    "index": str(index),
                    "headline": event.headline,
                    "error": str(exc),
                })
        return ingested, errors

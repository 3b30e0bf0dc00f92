"""
Covenant Health Orchestrator.

Composes the pure engine per covenant and persists the verdict.

Pipeline (evaluate):
1. Load covenant + borrower context            (NotFoundError if absent)
2. Load latest + up to N historical snapshots  (missing data is valid)
3. Resolve the declared metric                 (UnknownMetricError if unmapped)
4. Compliance, trend, days-to-breach
5. AI risk narrative                           (fixed default on failure)
6. Alert on status transition, then overwrite the health record

recalculate_for_borrower fans out in bounded batches with per-covenant
failure isolation: partial results plus an error list, never a raise.
ingest_financial_batch applies the same isolation per snapshot.
"""

import asyncio
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Sequence

import structlog

from covenantwatch.alerting.generator import AlertGenerator
from covenantwatch.config import settings
from covenantwatch.engine.compliance import evaluate_compliance
from covenantwatch.engine.metrics import MetricDefinition, get_metric, read_metric
from covenantwatch.engine.ratios import (
    assess_data_confidence,
    compute_ratios,
    validate_snapshot,
)
from covenantwatch.engine.trend import analyze_trend, project_days_to_breach
from covenantwatch.exceptions import ExternalServiceError, NotFoundError
from covenantwatch.schemas.alerts import Alert
from covenantwatch.schemas.covenants import (
    DEFAULT_RISK_ASSESSMENT,
    BatchEvaluationResult,
    BorrowerContext,
    Covenant,
    CovenantEvaluationError,
    CovenantHealth,
    CovenantRiskContext,
    CovenantTrendSeries,
    RiskAssessment,
    TrendPoint,
)
from covenantwatch.schemas.financials import (
    EnrichedSnapshot,
    FinancialBatchIngestResult,
    FinancialIngestError,
    FinancialIngestResult,
    FinancialRatios,
    FinancialSnapshot,
    StaleBorrower,
)
from covenantwatch.services.ports import (
    AlertSink,
    CovenantStore,
    FinancialDataReader,
    RiskNarrativeService,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class EvaluationOutcome:
    health: CovenantHealth
    alert: Optional[Alert] = None


@dataclass(frozen=True)
class _MetricSeries:
    """Chronological metric values with the confidence of each source snapshot."""
    values: tuple[float, ...]
    confidences: tuple[Optional[float], ...]


def _recent_metrics(ratios: Optional[FinancialRatios]) -> dict[str, float]:
    if ratios is None:
        return {}
    return {
        name: value
        for name, value in ratios.model_dump(exclude={"data_confidence"}).items()
        if value is not None
    }


class CovenantHealthOrchestrator:
    """Evaluates covenants against the latest financial data."""

    def __init__(
        self,
        covenants: CovenantStore,
        financials: FinancialDataReader,
        narrative: Optional[RiskNarrativeService] = None,
        alerts: Optional[AlertSink] = None,
        generator: Optional[AlertGenerator] = None,
        historical_periods: int | None = None,
        batch_size: int | None = None,
        days_per_period: int | None = None,
        ingest_batch_size: int | None = None,
        stale_data_days: int | None = None,
    ):
        self.covenants = covenants
        self.financials = financials
        self.narrative = narrative
        self.alerts = alerts
        self.generator = generator or AlertGenerator()
        self.historical_periods = (
            historical_periods if historical_periods is not None else settings.historical_periods
        )
        self.batch_size = batch_size if batch_size is not None else settings.recalc_batch_size
        self.days_per_period = (
            days_per_period if days_per_period is not None else settings.days_per_period
        )
        self.ingest_batch_size = (
            ingest_batch_size if ingest_batch_size is not None else settings.ingest_batch_size
        )
        self.stale_data_days = (
            stale_data_days if stale_data_days is not None else settings.stale_data_days
        )

    # ── Single covenant ────────────────────────────────────────────────

    async def _load_covenant(self, covenant_id: str) -> Covenant:
        covenant = await self.covenants.get_covenant(covenant_id)
        if covenant is None:
            raise NotFoundError("Covenant", covenant_id)
        return covenant

    def _series(
        self,
        definition: Optional[MetricDefinition],
        history_newest_first: list[FinancialSnapshot],
    ) -> _MetricSeries:
        values: list[float] = []
        confidences: list[Optional[float]] = []
        for snapshot in reversed(history_newest_first):
            value = read_metric(definition, snapshot, compute_ratios(snapshot))
            if value is None:
                continue
            values.append(value)
            confidences.append(snapshot.data_confidence)
        return _MetricSeries(tuple(values), tuple(confidences))

    async def _assess_risk(
        self,
        covenant: Covenant,
        context: CovenantRiskContext,
        ratios: Optional[FinancialRatios],
    ) -> RiskAssessment:
        if self.narrative is None:
            return DEFAULT_RISK_ASSESSMENT

        borrower = BorrowerContext(
            borrower_name=covenant.borrower_name,
            industry=covenant.industry,
            recent_metrics=_recent_metrics(ratios),
        )
        try:
            return await self.narrative.assess_covenant_risk(context, borrower)
        except ExternalServiceError as exc:
            logger.warning(
                "risk_narrative_unavailable",
                covenant_id=covenant.id,
                service=exc.service,
                error=exc.message,
            )
            return DEFAULT_RISK_ASSESSMENT

    async def evaluate(self, covenant_id: str) -> EvaluationOutcome:
        """Evaluate one covenant and persist its health record."""
        covenant = await self._load_covenant(covenant_id)

        # Resolve the metric before any I/O so misconfiguration fails fast
        definition = get_metric(covenant.metric_name, covenant.id)

        latest = await self.financials.get_latest_snapshot(covenant.borrower_id)
        history = await self.financials.get_historical_snapshots(
            covenant.borrower_id, self.historical_periods
        )

        ratios = compute_ratios(latest) if latest is not None else None
        current_value = read_metric(definition, latest, ratios)

        compliance = evaluate_compliance(
            current_value, covenant.threshold_value, covenant.operator
        )

        series = self._series(definition, history)
        trend = analyze_trend(
            series.values,
            lower_is_better=definition.lower_is_better if definition else False,
            data_confidences=series.confidences,
        )
        days_to_breach = project_days_to_breach(
            series.values,
            current_value,
            covenant.threshold_value,
            days_per_period=self.days_per_period,
        )

        assessment = await self._assess_risk(
            covenant,
            CovenantRiskContext(
                covenant_name=covenant.covenant_name,
                current_value=current_value,
                threshold_value=covenant.threshold_value,
                trend=trend.direction,
                buffer_percentage=compliance.buffer_percentage,
            ),
            ratios,
        )

        health = CovenantHealth(
            covenant_id=covenant.id,
            contract_id=covenant.contract_id,
            current_value=current_value,
            threshold_value=covenant.threshold_value,
            status=compliance.status,
            buffer_percentage=compliance.buffer_percentage,
            trend=trend.direction,
            trend_confidence=trend.confidence,
            days_to_breach=days_to_breach,
            risk_score=assessment.risk_score,
            risk_summary=assessment.summary,
            recommended_action="; ".join(assessment.recommended_actions),
            last_reported_date=latest.period_date if latest is not None else None,
            last_calculated=datetime.now(timezone.utc),
        )

        previous = await self.covenants.get_covenant_health(covenant.id)
        alert_input = self.generator.process_health_update(covenant, previous, health)

        # Alert first: if the overwrite fails, the next run still sees the transition
        alert: Optional[Alert] = None
        if alert_input is not None and self.alerts is not None:
            alert = await self.alerts.create_alert(alert_input)

        saved = await self.covenants.save_covenant_health(health)

        logger.info(
            "covenant_evaluated",
            covenant_id=covenant.id,
            metric=covenant.metric_name,
            value=current_value,
            status=saved.status.value,
            buffer=compliance.buffer_percentage,
            trend=trend.direction.value,
            days_to_breach=days_to_breach,
            alert_created=alert is not None,
        )
        return EvaluationOutcome(health=saved, alert=alert)

    # ── Borrower batch ─────────────────────────────────────────────────

    async def recalculate_for_borrower(self, borrower_id: str) -> BatchEvaluationResult:
        """Evaluate every covenant of a borrower; failures are reported, not raised."""
        covenants = await self.covenants.get_covenants_for_borrower(borrower_id)
        result = BatchEvaluationResult(borrower_id=borrower_id)

        for start in range(0, len(covenants), self.batch_size):
            batch = covenants[start:start + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.evaluate(c.id) for c in batch),
                return_exceptions=True,
            )
            for covenant, outcome in zip(batch, outcomes):
                if isinstance(outcome, EvaluationOutcome):
                    result.results.append(outcome.health)
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "covenant_evaluation_failed",
                    borrower_id=borrower_id,
                    covenant_id=covenant.id,
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                result.errors.append(
                    CovenantEvaluationError(
                        covenant_id=covenant.id,
                        error_type=type(outcome).__name__,
                        message=str(outcome),
                    )
                )

        logger.info(
            "borrower_recalculated",
            borrower_id=borrower_id,
            evaluated=result.evaluated,
            failed=result.failed,
        )
        return result

    # ── Trend series ───────────────────────────────────────────────────

    async def trend_series(
        self, covenant_id: str, periods: int | None = None
    ) -> CovenantTrendSeries:
        """Per-period value and status over the last N snapshots, oldest first."""
        covenant = await self._load_covenant(covenant_id)
        definition = get_metric(covenant.metric_name, covenant.id)
        history = await self.financials.get_historical_snapshots(
            covenant.borrower_id, periods if periods is not None else self.historical_periods
        )

        points = []
        for snapshot in reversed(history):
            value = read_metric(definition, snapshot, compute_ratios(snapshot))
            status = evaluate_compliance(
                value, covenant.threshold_value, covenant.operator
            ).status
            points.append(
                TrendPoint(period_date=snapshot.period_date, value=value, status=status)
            )

        series = self._series(definition, history)
        trend = analyze_trend(
            series.values,
            lower_is_better=definition.lower_is_better if definition else False,
            data_confidences=series.confidences,
        )
        return CovenantTrendSeries(
            covenant_id=covenant.id,
            trend=trend.direction,
            confidence=trend.confidence,
            points=points,
        )

    # ── Ingestion ──────────────────────────────────────────────────────

    async def _store_snapshot(
        self, snapshot: FinancialSnapshot
    ) -> tuple[FinancialSnapshot, FinancialRatios]:
        validate_snapshot(snapshot)

        ratios = compute_ratios(snapshot)
        enriched = EnrichedSnapshot(
            snapshot=snapshot.model_copy(
                update={"data_confidence": assess_data_confidence(snapshot)}
            ),
            ratios=ratios,
        )
        stored = await self.financials.save_snapshot(enriched)

        logger.info(
            "financial_data_ingested",
            borrower_id=stored.borrower_id,
            period_date=str(stored.period_date),
            data_confidence=stored.data_confidence,
        )
        return stored, ratios

    async def ingest_financial_data(self, snapshot: FinancialSnapshot) -> FinancialIngestResult:
        """Validate, enrich and store a snapshot, then recalculate the borrower."""
        stored, ratios = await self._store_snapshot(snapshot)
        recalculation = await self.recalculate_for_borrower(stored.borrower_id)
        return FinancialIngestResult(
            snapshot=stored, ratios=ratios, recalculation=recalculation
        )

    async def ingest_financial_batch(
        self, snapshots: Sequence[FinancialSnapshot]
    ) -> FinancialBatchIngestResult:
        """
        Store many snapshots, then recalculate each affected borrower once.

        A rejected snapshot is reported in `errors` and does not stop the
        rest of the batch. Borrowers are recalculated in the order their
        first stored snapshot appeared.
        """
        result = FinancialBatchIngestResult()

        for start in range(0, len(snapshots), self.ingest_batch_size):
            batch = snapshots[start:start + self.ingest_batch_size]
            outcomes = await asyncio.gather(
                *(self._store_snapshot(s) for s in batch),
                return_exceptions=True,
            )
            for snapshot, outcome in zip(batch, outcomes):
                if isinstance(outcome, tuple):
                    result.stored.append(outcome[0])
                    continue
                if not isinstance(outcome, Exception):
                    raise outcome
                logger.error(
                    "financial_ingest_failed",
                    borrower_id=snapshot.borrower_id,
                    period_date=str(snapshot.period_date),
                    error_type=type(outcome).__name__,
                    error=str(outcome),
                )
                result.errors.append(
                    FinancialIngestError(
                        borrower_id=snapshot.borrower_id,
                        period_date=snapshot.period_date,
                        error_type=type(outcome).__name__,
                        message=str(outcome),
                    )
                )

        borrower_ids = list(dict.fromkeys(s.borrower_id for s in result.stored))
        for borrower_id in borrower_ids:
            result.recalculations.append(await self.recalculate_for_borrower(borrower_id))

        logger.info(
            "financial_batch_ingested",
            stored=len(result.stored),
            failed=len(result.errors),
            borrowers=len(borrower_ids),
        )
        return result

    # ── Data freshness ─────────────────────────────────────────────────

    async def find_stale_borrowers(
        self,
        days_threshold: int | None = None,
        today: Optional[date] = None,
    ) -> list[StaleBorrower]:
        """
        Borrowers whose latest snapshot is more than `days_threshold` days old.

        Borrowers that never reported come first, then the stalest.
        """
        threshold = days_threshold if days_threshold is not None else self.stale_data_days
        today = today or datetime.now(timezone.utc).date()

        stale: list[StaleBorrower] = []
        for borrower_id in await self.covenants.list_borrower_ids():
            latest = await self.financials.get_latest_snapshot(borrower_id)
            if latest is None:
                stale.append(StaleBorrower(borrower_id=borrower_id))
                continue
            days = (today - latest.period_date).days
            if days > threshold:
                stale.append(
                    StaleBorrower(
                        borrower_id=borrower_id,
                        last_period_date=latest.period_date,
                        days_since_update=days,
                        missing_periods=days // self.days_per_period,
                    )
                )

        stale.sort(
            key=lambda s: (s.days_since_update is not None, -(s.days_since_update or 0))
        )
        return stale

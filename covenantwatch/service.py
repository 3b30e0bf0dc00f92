"""
CovenantWatch Service — the single entry point callers use.

Wires the orchestrator, alert generator, adverse-event aggregator and
extraction queue over one set of collaborators. The API routers and the
scheduler both go through this facade; neither touches the components
directly.

Components:
- CovenantHealthOrchestrator: evaluate / recalculate / trend / ingest / freshness
- AlertGenerator + escalation: transitions → alerts, stale alerts → escalated
- AdverseEventAggregator: event scoring and borrower risk
- ExtractionJobQueue: remote-then-local covenant extraction
"""

from datetime import datetime, timezone
from typing import Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from covenantwatch.alerting.escalation import (
    alerts_due_for_escalation,
    check_status_transition,
    escalate_severity,
    summarize_alerts,
)
from covenantwatch.alerting.generator import AlertGenerator
from covenantwatch.config import settings
from covenantwatch.engine.ratios import assess_data_quality
from covenantwatch.exceptions import NotFoundError
from covenantwatch.schemas.alerts import (
    Alert,
    AlertStatus,
    AlertSummary,
    EscalationResult,
)
from covenantwatch.schemas.covenants import (
    BatchEvaluationResult,
    CovenantCreate,
    CovenantHealth,
    CovenantTrendSeries,
)
from covenantwatch.schemas.events import (
    AdverseEventInput,
    IngestedEvent,
    RiskAggregation,
)
from covenantwatch.schemas.extraction import (
    DispatchResult,
    ExtractionJob,
    JobPriority,
    QueueStats,
)
from covenantwatch.schemas.financials import (
    DataQualityReport,
    FinancialBatchIngestResult,
    FinancialIngestResult,
    FinancialSnapshot,
    StaleBorrower,
)
from covenantwatch.services.adverse_events import AdverseEventAggregator
from covenantwatch.services.covenant_health import (
    CovenantHealthOrchestrator,
    EvaluationOutcome,
)
from covenantwatch.services.extraction_queue import ExtractionJobQueue
from covenantwatch.services.ports import (
    AdverseEventStore,
    AlertSink,
    CovenantStore,
    EventRiskService,
    ExtractionService,
    FinancialDataReader,
    RemoteExtractionQueue,
    RiskNarrativeService,
)

logger = structlog.get_logger(__name__)


class CovenantWatchService:
    """Facade over the covenant compliance and alerting engine."""

    def __init__(
        self,
        covenants: CovenantStore,
        financials: FinancialDataReader,
        alerts: AlertSink,
        events: AdverseEventStore,
        narrative: Optional[RiskNarrativeService] = None,
        extractor: Optional[ExtractionService] = None,
        event_scorer: Optional[EventRiskService] = None,
        remote: Optional[RemoteExtractionQueue] = None,
        queue: Optional[ExtractionJobQueue] = None,
    ):
        self.covenants = covenants
        self.alerts = alerts
        self.generator = AlertGenerator()
        self.orchestrator = CovenantHealthOrchestrator(
            covenants=covenants,
            financials=financials,
            narrative=narrative,
            alerts=alerts,
            generator=self.generator,
        )
        self.aggregator = AdverseEventAggregator(
            events=events,
            covenants=covenants,
            alerts=alerts,
            scorer=event_scorer,
        )
        if queue is None:
            if extractor is None:
                raise ValueError("either an extractor or a queue is required")
            queue = ExtractionJobQueue(extractor=extractor, covenants=covenants, remote=remote)
        self.queue = queue

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        gemini=None,
        xano=None,
    ) -> "CovenantWatchService":
        """Build the service over the SQL repositories and the HTTP clients."""
        from covenantwatch.db.repositories import (
            SqlAdverseEventStore,
            SqlAlertSink,
            SqlCovenantStore,
            SqlFinancialDataReader,
        )
        from covenantwatch.services.gemini import GeminiClient
        from covenantwatch.services.xano import XanoClient

        gemini = gemini or GeminiClient()
        xano = xano or XanoClient()
        return cls(
            covenants=SqlCovenantStore(session_factory),
            financials=SqlFinancialDataReader(session_factory),
            alerts=SqlAlertSink(session_factory),
            events=SqlAdverseEventStore(session_factory),
            narrative=gemini if gemini.configured else None,
            extractor=gemini,
            event_scorer=gemini if gemini.configured else None,
            remote=xano if xano.enabled else None,
        )

    # ── Covenant health ────────────────────────────────────────────────

    async def evaluate_covenant(self, covenant_id: str) -> EvaluationOutcome:
        return await self.orchestrator.evaluate(covenant_id)

    async def recalculate_borrower(self, borrower_id: str) -> BatchEvaluationResult:
        return await self.orchestrator.recalculate_for_borrower(borrower_id)

    async def recalculate_all(self) -> list[BatchEvaluationResult]:
        """Recalculate every borrower; one borrower failing does not stop the rest."""
        results: list[BatchEvaluationResult] = []
        for borrower_id in await self.covenants.list_borrower_ids():
            try:
                results.append(await self.recalculate_borrower(borrower_id))
            except Exception as e:
                logger.error("borrower_recalculation_failed", borrower_id=borrower_id, error=str(e))
        return results

    async def get_covenant_health(self, covenant_id: str) -> CovenantHealth:
        health = await self.covenants.get_covenant_health(covenant_id)
        if health is None:
            raise NotFoundError("CovenantHealth", covenant_id)
        return health

    async def trend_series(
        self, covenant_id: str, periods: int | None = None
    ) -> CovenantTrendSeries:
        return await self.orchestrator.trend_series(covenant_id, periods)

    async def ingest_financial_data(self, snapshot: FinancialSnapshot) -> FinancialIngestResult:
        return await self.orchestrator.ingest_financial_data(snapshot)

    async def ingest_financial_batch(
        self, snapshots: Sequence[FinancialSnapshot]
    ) -> FinancialBatchIngestResult:
        return await self.orchestrator.ingest_financial_batch(snapshots)

    async def find_stale_borrowers(
        self, days_threshold: int | None = None
    ) -> list[StaleBorrower]:
        return await self.orchestrator.find_stale_borrowers(days_threshold)

    def assess_data_quality(self, snapshot: FinancialSnapshot) -> DataQualityReport:
        return assess_data_quality(snapshot)

    async def create_covenants(self, covenants: list[CovenantCreate]) -> int:
        return await self.covenants.create_covenants(covenants)

    # ── Alerts ─────────────────────────────────────────────────────────

    async def on_covenant_health_changed(
        self,
        previous: Optional[CovenantHealth],
        new: CovenantHealth,
    ) -> Optional[Alert]:
        """Run the alert generator on an externally observed health change."""
        covenant = await self.covenants.get_covenant(new.covenant_id)
        if covenant is None:
            raise NotFoundError("Covenant", new.covenant_id)

        alert_input = self.generator.process_health_update(covenant, previous, new)
        if alert_input is None:
            return None
        return await self.alerts.create_alert(alert_input)

    async def list_alerts(self, status: Optional[AlertStatus] = None) -> list[Alert]:
        return await self.alerts.list_alerts(status)

    async def alert_summary(self) -> AlertSummary:
        return summarize_alerts(await self.alerts.list_alerts())

    async def update_alert_status(
        self,
        alert_id: str,
        status: AlertStatus,
        acknowledged_by: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Alert:
        """Move an alert along its lifecycle; illegal moves raise ValidationError."""
        alert = await self.alerts.get_alert(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        check_status_transition(alert.status, status)
        updated = await self.alerts.update_alert(
            alert_id,
            status=status,
            acknowledged_by=acknowledged_by,
            resolution_notes=resolution_notes,
        )
        logger.info(
            "alert_status_changed",
            alert_id=alert_id,
            previous=alert.status.value,
            status=status.value,
        )
        return updated

    async def escalate_stale_alerts(
        self,
        threshold_minutes: int | None = None,
        now: Optional[datetime] = None,
    ) -> list[EscalationResult]:
        """Raise the severity of alerts nobody acknowledged in time."""
        now = now or datetime.now(timezone.utc)
        threshold = (
            threshold_minutes if threshold_minutes is not None else settings.escalation_threshold_minutes
        )
        due = alerts_due_for_escalation(
            await self.alerts.list_alerts(AlertStatus.NEW), threshold, now
        )

        escalated: list[EscalationResult] = []
        for alert in due:
            new_severity = escalate_severity(alert.severity)
            await self.alerts.update_alert(
                alert.id, severity=new_severity, status=AlertStatus.ESCALATED
            )
            escalated.append(
                EscalationResult(
                    alert_id=alert.id,
                    previous_severity=alert.severity,
                    new_severity=new_severity,
                    escalated_at=now,
                    reason=f"Unacknowledged for more than {threshold} minutes",
                )
            )

        if escalated:
            logger.info("alerts_escalated", count=len(escalated))
        return escalated

    # ── Adverse events ─────────────────────────────────────────────────

    async def aggregate_borrower_risk(
        self, borrower_id: str, now: Optional[datetime] = None
    ) -> RiskAggregation:
        return await self.aggregator.aggregate(borrower_id, now)

    async def ingest_event(self, event: AdverseEventInput) -> IngestedEvent:
        return await self.aggregator.ingest_event(event)

    async def batch_ingest_events(
        self, events: Sequence[AdverseEventInput]
    ) -> tuple[list[IngestedEvent], list[dict[str, str]]]:
        return await self.aggregator.batch_ingest(events)

    # ── Extraction ─────────────────────────────────────────────────────

    async def enqueue_extraction(
        self,
        contract_id: str,
        contract_text: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> DispatchResult:
        return await self.queue.enqueue(contract_id, contract_text, priority)

    async def get_job_status(self, job_id: str) -> Optional[ExtractionJob]:
        return await self.queue.get_job_status(job_id)

    async def get_contract_extraction_status(self, contract_id: str) -> Optional[ExtractionJob]:
        return await self.queue.get_contract_status(contract_id)

    async def get_queue_stats(self) -> QueueStats:
        return await self.queue.get_queue_stats()

    async def cleanup_jobs(self, max_age_hours: float | None = None) -> int:
        return await self.queue.cleanup_old_jobs(max_age_hours)

    async def close(self) -> None:
        await self.queue.close()

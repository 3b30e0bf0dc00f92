"""
Test fixtures for CovenantWatch tests.

Provides:
- In-memory implementations of every collaborator contract
- Fake AI / remote-queue collaborators with failure switches
- Async SQLite engine + session factory for repository tests
- Covenant / snapshot factories
"""

import asyncio
import itertools
from datetime import date, datetime, timezone
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from covenantwatch.db.engine import Base
from covenantwatch.db import models  # noqa: F401  register all models
from covenantwatch.exceptions import ExternalServiceError, NotFoundError
from covenantwatch.schemas.alerts import Alert, AlertCreate, AlertSeverity, AlertStatus
from covenantwatch.schemas.covenants import (
    BorrowerContext,
    Covenant,
    CovenantCreate,
    CovenantHealth,
    CovenantRiskContext,
    CovenantType,
    RiskAssessment,
)
from covenantwatch.schemas.events import (
    AdverseEvent,
    AdverseEventInput,
    EventRiskScore,
)
from covenantwatch.schemas.extraction import (
    ExtractedCovenant,
    ExtractionResult,
    JobPriority,
)
from covenantwatch.schemas.financials import (
    EnrichedSnapshot,
    FinancialSnapshot,
    PeriodType,
)

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ── In-memory storage ────────────────────────────────────────────────────


class InMemoryCovenantStore:
    def __init__(self):
        self.covenants: dict[str, Covenant] = {}
        self.health: dict[str, CovenantHealth] = {}
        self.created: list[CovenantCreate] = []
        self.fail_create = False

    def add(self, covenant: Covenant) -> Covenant:
        self.covenants[covenant.id] = covenant
        return covenant

    async def get_covenant(self, covenant_id: str) -> Optional[Covenant]:
        return self.covenants.get(covenant_id)

    async def get_covenants_for_borrower(self, borrower_id: str) -> list[Covenant]:
        return [c for c in self.covenants.values() if c.borrower_id == borrower_id]

    async def get_covenant_health(self, covenant_id: str) -> Optional[CovenantHealth]:
        return self.health.get(covenant_id)

    async def save_covenant_health(self, health: CovenantHealth) -> CovenantHealth:
        self.health[health.covenant_id] = health
        return health

    async def create_covenants(self, covenants: list[CovenantCreate]) -> int:
        if self.fail_create:
            raise ExternalServiceError("database", "insert failed")
        self.created.extend(covenants)
        return len(covenants)

    async def list_borrower_ids(self) -> list[str]:
        return sorted({c.borrower_id for c in self.covenants.values()})


class InMemoryFinancials:
    def __init__(self):
        self.snapshots: dict[str, list[FinancialSnapshot]] = {}

    def add(self, snapshot: FinancialSnapshot) -> FinancialSnapshot:
        self.snapshots.setdefault(snapshot.borrower_id, []).append(snapshot)
        return snapshot

    def _ordered(self, borrower_id: str) -> list[FinancialSnapshot]:
        return sorted(
            self.snapshots.get(borrower_id, []),
            key=lambda s: s.period_date,
            reverse=True,
        )

    async def get_latest_snapshot(self, borrower_id: str) -> Optional[FinancialSnapshot]:
        ordered = self._ordered(borrower_id)
        return ordered[0] if ordered else None

    async def get_historical_snapshots(
        self, borrower_id: str, count: int
    ) -> list[FinancialSnapshot]:
        return self._ordered(borrower_id)[:count]

    async def save_snapshot(self, enriched: EnrichedSnapshot) -> FinancialSnapshot:
        snapshot = enriched.snapshot
        kept = [
            s for s in self.snapshots.get(snapshot.borrower_id, [])
            if (s.period_date, s.period_type) != (snapshot.period_date, snapshot.period_type)
        ]
        self.snapshots[snapshot.borrower_id] = kept + [snapshot]
        return snapshot


class InMemoryAlertSink:
    def __init__(self):
        self.alerts: dict[str, Alert] = {}
        self._ids = itertools.count(1)

    async def create_alert(self, alert: AlertCreate) -> Alert:
        stored = Alert(
            id=f"alert-{next(self._ids)}",
            triggered_at=datetime.now(timezone.utc),
            **alert.model_dump(),
        )
        self.alerts[stored.id] = stored
        return stored

    async def list_alerts(self, status: Optional[AlertStatus] = None) -> list[Alert]:
        return [a for a in self.alerts.values() if status is None or a.status == status]

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        return self.alerts.get(alert_id)

    async def update_alert(
        self,
        alert_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        acknowledged_by: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Alert:
        alert = self.alerts.get(alert_id)
        if alert is None:
            raise NotFoundError("Alert", alert_id)
        update = {}
        if severity is not None:
            update["severity"] = severity
        if status is not None:
            update["status"] = status
            if status == AlertStatus.ACKNOWLEDGED:
                update["acknowledged_at"] = datetime.now(timezone.utc)
                update["acknowledged_by"] = acknowledged_by
            elif status == AlertStatus.RESOLVED:
                update["resolved_at"] = datetime.now(timezone.utc)
                update["resolution_notes"] = resolution_notes
        self.alerts[alert_id] = alert.model_copy(update=update)
        return self.alerts[alert_id]


class InMemoryEventStore:
    def __init__(self):
        self.events: list[AdverseEvent] = []
        self._ids = itertools.count(1)

    def add(self, event: AdverseEvent) -> AdverseEvent:
        self.events.append(event)
        return event

    async def get_events_for_borrower(self, borrower_id: str) -> list[AdverseEvent]:
        return [e for e in self.events if e.borrower_id == borrower_id]

    async def save_event(
        self, event: AdverseEventInput, risk_score: float, ai_analyzed: bool
    ) -> AdverseEvent:
        stored = AdverseEvent(
            id=f"event-{next(self._ids)}",
            risk_score=risk_score,
            ai_analyzed=ai_analyzed,
            **event.model_dump(),
        )
        self.events.append(stored)
        return stored


# ── Fake collaborators ───────────────────────────────────────────────────


class FakeNarrative:
    def __init__(self, assessment: Optional[RiskAssessment] = None, fail: bool = False):
        self.assessment = assessment or RiskAssessment(
            risk_score=3.0,
            risk_factors=["Stable leverage"],
            recommended_actions=["Continue monitoring", "Review next quarter"],
            summary="Low risk",
            confidence=0.8,
        )
        self.fail = fail
        self.calls: list[tuple[CovenantRiskContext, BorrowerContext]] = []

    async def assess_covenant_risk(
        self, covenant: CovenantRiskContext, borrower: BorrowerContext
    ) -> RiskAssessment:
        self.calls.append((covenant, borrower))
        if self.fail:
            raise ExternalServiceError("gemini", "quota exceeded")
        return self.assessment


class FakeEventScorer:
    def __init__(self, score: float = 5.0, fail: bool = False):
        self.score = score
        self.fail = fail
        self.borrowers: list[BorrowerContext] = []

    async def score_adverse_event(
        self, event: AdverseEventInput, borrower: BorrowerContext
    ) -> EventRiskScore:
        self.borrowers.append(borrower)
        if self.fail:
            raise ExternalServiceError("gemini", "timeout")
        return EventRiskScore(
            risk_score=self.score,
            impact_assessment="Rating pressure on leverage covenants",
            affected_covenants=["Leverage"],
            recommended_actions=["Call the borrower"],
        )


class FakeExtractor:
    """Records call order and peak concurrency; optionally fails N times."""

    def __init__(
        self,
        covenants: Optional[list[ExtractedCovenant]] = None,
        failures: int = 0,
        delay: float = 0.0,
    ):
        self.covenants = covenants if covenants is not None else [
            ExtractedCovenant(
                covenant_name="Maximum Leverage Ratio",
                metric_name="debt_to_ebitda",
                operator="<=",
                threshold_value=3.5,
                check_frequency="quarterly",
                confidence_score=0.9,
            )
        ]
        self.failures = failures
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def extract_covenants(self, contract_text: str) -> ExtractionResult:
        self.calls.append(contract_text)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if self.failures > 0:
                self.failures -= 1
                raise RuntimeError("model overloaded")
            return ExtractionResult(covenants=list(self.covenants), summary="ok")
        finally:
            self.in_flight -= 1


class FakeRemoteQueue:
    def __init__(self, fail: bool = False, jobs: Optional[dict] = None):
        self.fail = fail
        self.jobs = jobs or {}
        self.queued: list[tuple[str, JobPriority]] = []

    async def queue_extraction(
        self, contract_id: str, contract_text: str, priority: JobPriority
    ) -> str:
        if self.fail:
            raise ExternalServiceError("xano", "service unavailable")
        self.queued.append((contract_id, priority))
        return f"remote-{len(self.queued)}"

    async def get_job_status(self, job_id: str) -> Optional[dict]:
        return self.jobs.get(job_id)

    async def get_contract_status(self, contract_id: str) -> Optional[dict]:
        return self.jobs.get(contract_id)


# ── Fixtures ─────────────────────────────────────────────────────────────


@pytest.fixture
def covenant_store() -> InMemoryCovenantStore:
    return InMemoryCovenantStore()


@pytest.fixture
def financials() -> InMemoryFinancials:
    return InMemoryFinancials()


@pytest.fixture
def alert_sink() -> InMemoryAlertSink:
    return InMemoryAlertSink()


@pytest.fixture
def event_store() -> InMemoryEventStore:
    return InMemoryEventStore()


@pytest.fixture
def narrative() -> FakeNarrative:
    return FakeNarrative()


@pytest.fixture
def fake_extractor_cls():
    return FakeExtractor


@pytest.fixture
def fake_remote_cls():
    return FakeRemoteQueue


@pytest.fixture
def fake_scorer_cls():
    return FakeEventScorer


@pytest.fixture
def fake_narrative_cls():
    return FakeNarrative


@pytest.fixture
def make_covenant():
    def _make(
        covenant_id: str = "cov-1",
        borrower_id: str = "borrower-1",
        metric_name: Optional[str] = "debt_to_ebitda",
        operator: Optional[str] = "<=",
        threshold_value: Optional[float] = 3.0,
        covenant_type: CovenantType = CovenantType.FINANCIAL,
        covenant_name: str = "Maximum Leverage",
    ) -> Covenant:
        return Covenant(
            id=covenant_id,
            contract_id=f"contract-{borrower_id}",
            borrower_id=borrower_id,
            covenant_name=covenant_name,
            covenant_type=covenant_type,
            metric_name=metric_name,
            operator=operator,
            threshold_value=threshold_value,
            borrower_name="Acme Manufacturing",
            industry="manufacturing",
        )

    return _make


@pytest.fixture
def make_snapshot():
    def _make(
        period_date: date = date(2026, 6, 30),
        borrower_id: str = "borrower-1",
        **figures,
    ) -> FinancialSnapshot:
        return FinancialSnapshot(
            borrower_id=borrower_id,
            period_date=period_date,
            period_type=PeriodType.QUARTERLY,
            source="manual",
            **figures,
        )

    return _make


# ── Database ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    eng = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

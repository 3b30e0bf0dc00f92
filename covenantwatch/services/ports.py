"""
Collaborator contracts consumed by the services.

Storage adapters live in covenantwatch.db.repositories; the AI and remote
queue adapters in covenantwatch.services.gemini / xano. Tests substitute
in-memory fakes.
"""

from typing import Any, Optional, Protocol

from covenantwatch.schemas.alerts import Alert, AlertCreate, AlertSeverity, AlertStatus
from covenantwatch.schemas.covenants import (
    BorrowerContext,
    Covenant,
    CovenantCreate,
    CovenantHealth,
    CovenantRiskContext,
    RiskAssessment,
)
from covenantwatch.schemas.events import (
    AdverseEvent,
    AdverseEventInput,
    EventRiskScore,
)
from covenantwatch.schemas.extraction import ExtractionResult, JobPriority
from covenantwatch.schemas.financials import EnrichedSnapshot, FinancialSnapshot


# ── Storage ────────────────────────────────────────────────────────────


class FinancialDataReader(Protocol):
    async def get_latest_snapshot(self, borrower_id: str) -> Optional[FinancialSnapshot]:
        ...

    async def get_historical_snapshots(
        self, borrower_id: str, count: int
    ) -> list[FinancialSnapshot]:
        """Most recent `count` snapshots, newest first."""
        ...

    async def save_snapshot(self, enriched: EnrichedSnapshot) -> FinancialSnapshot:
        ...


class CovenantStore(Protocol):
    async def get_covenant(self, covenant_id: str) -> Optional[Covenant]:
        ...

    async def get_covenants_for_borrower(self, borrower_id: str) -> list[Covenant]:
        ...

    async def get_covenant_health(self, covenant_id: str) -> Optional[CovenantHealth]:
        ...

    async def save_covenant_health(self, health: CovenantHealth) -> CovenantHealth:
        """Overwrite the current health record for the covenant."""
        ...

    async def create_covenants(self, covenants: list[CovenantCreate]) -> int:
        ...

    async def list_borrower_ids(self) -> list[str]:
        ...


class AlertSink(Protocol):
    async def create_alert(self, alert: AlertCreate) -> Alert:
        ...

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        ...

    async def list_alerts(self, status: Optional[AlertStatus] = None) -> list[Alert]:
        ...

    async def update_alert(
        self,
        alert_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        acknowledged_by: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Alert:
        ...


class AdverseEventStore(Protocol):
    async def get_events_for_borrower(self, borrower_id: str) -> list[AdverseEvent]:
        ...

    async def save_event(
        self, event: AdverseEventInput, risk_score: float, ai_analyzed: bool
    ) -> AdverseEvent:
        ...


# ── AI collaborators ───────────────────────────────────────────────────


class RiskNarrativeService(Protocol):
    async def assess_covenant_risk(
        self, covenant: CovenantRiskContext, borrower: BorrowerContext
    ) -> RiskAssessment:
        ...


class ExtractionService(Protocol):
    async def extract_covenants(self, contract_text: str) -> ExtractionResult:
        ...


class EventRiskService(Protocol):
    async def score_adverse_event(
        self, event: AdverseEventInput, borrower: BorrowerContext
    ) -> EventRiskScore:
        ...


# ── Remote orchestration ───────────────────────────────────────────────


class RemoteExtractionQueue(Protocol):
    async def queue_extraction(
        self, contract_id: str, contract_text: str, priority: JobPriority
    ) -> str:
        """Return the remote job id. Raises ExternalServiceError when unavailable."""
        ...

    async def get_job_status(self, job_id: str) -> Optional[dict[str, Any]]:
        ...

    async def get_contract_status(self, contract_id: str) -> Optional[dict[str, Any]]:
        ...

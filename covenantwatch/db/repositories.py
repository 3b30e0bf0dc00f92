"""
SQLAlchemy adapters for the storage collaborator contracts.

Each repository owns a session factory and opens one short session per
call, so it can be shared by the API, the orchestrator's concurrent
evaluations and the scheduler. Driver/database failures surface as
ExternalServiceError("database", ...).
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from covenantwatch.db.compat import parse_uuid
from covenantwatch.db.models import (
    AdverseEventRecord,
    AlertRecord,
    BorrowerRecord,
    ContractRecord,
    CovenantHealthRecord,
    CovenantRecord,
    FinancialSnapshotRecord,
)
from covenantwatch.exceptions import ExternalServiceError, NotFoundError
from covenantwatch.schemas.alerts import Alert, AlertCreate, AlertSeverity, AlertStatus
from covenantwatch.schemas.covenants import Covenant, CovenantCreate, CovenantHealth
from covenantwatch.schemas.events import AdverseEvent, AdverseEventInput
from covenantwatch.schemas.financials import (
    RAW_FIGURES,
    EnrichedSnapshot,
    FinancialRatios,
    FinancialSnapshot,
)

logger = structlog.get_logger(__name__)

RATIO_FIELDS: tuple[str, ...] = tuple(
    name for name in FinancialRatios.model_fields if name != "data_confidence"
)


class SessionRepository:
    """Base: one transactional session per operation."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("database_error", repository=type(self).__name__, error=str(exc))
                raise ExternalServiceError("database", str(exc)) from exc
            except Exception:
                await session.rollback()
                raise


# ── Mapping helpers ──────────────────────────────────────────────────────


def _covenant(
    row: CovenantRecord,
    borrower_id: uuid.UUID,
    borrower_name: Optional[str],
    industry: Optional[str],
) -> Covenant:
    return Covenant(
        id=str(row.id),
        contract_id=str(row.contract_id),
        borrower_id=str(borrower_id),
        covenant_name=row.covenant_name,
        covenant_type=row.covenant_type,
        metric_name=row.metric_name,
        operator=row.operator,
        threshold_value=row.threshold_value,
        threshold_unit=row.threshold_unit,
        check_frequency=row.check_frequency,
        covenant_clause=row.covenant_clause,
        borrower_name=borrower_name or "Unknown",
        industry=industry,
    )


def _health(row: CovenantHealthRecord) -> CovenantHealth:
    return CovenantHealth(
        covenant_id=str(row.covenant_id),
        contract_id=str(row.contract_id),
        current_value=row.current_value,
        threshold_value=row.threshold_value,
        status=row.status,
        buffer_percentage=row.buffer_percentage,
        trend=row.trend,
        trend_confidence=row.trend_confidence,
        days_to_breach=row.days_to_breach,
        risk_score=row.risk_score,
        risk_summary=row.risk_summary,
        recommended_action=row.recommended_action,
        last_reported_date=row.last_reported_date,
        last_calculated=row.last_calculated,
    )


def _snapshot(row: FinancialSnapshotRecord) -> FinancialSnapshot:
    return FinancialSnapshot(
        borrower_id=str(row.borrower_id),
        period_date=row.period_date,
        period_type=row.period_type,
        source=row.source,
        data_confidence=row.data_confidence,
        **{name: getattr(row, name) for name in RAW_FIGURES},
    )


def _alert(row: AlertRecord) -> Alert:
    return Alert(
        id=str(row.id),
        covenant_id=str(row.covenant_id),
        contract_id=str(row.contract_id),
        alert_type=row.alert_type,
        severity=row.severity,
        title=row.title,
        description=row.description,
        trigger_metric_value=row.trigger_metric_value,
        threshold_value=row.threshold_value,
        status=row.status,
        triggered_at=row.triggered_at,
        acknowledged_at=row.acknowledged_at,
        acknowledged_by=row.acknowledged_by,
        resolved_at=row.resolved_at,
        resolution_notes=row.resolution_notes,
    )


def _event(row: AdverseEventRecord) -> AdverseEvent:
    return AdverseEvent(
        id=str(row.id),
        borrower_id=str(row.borrower_id),
        event_type=row.event_type,
        headline=row.headline,
        description=row.description,
        source_url=row.source_url,
        event_date=row.event_date,
        risk_score=row.risk_score,
        ai_analyzed=row.ai_analyzed,
    )


def _require_uuid(resource: str, identifier: str) -> uuid.UUID:
    parsed = parse_uuid(identifier)
    if parsed is None:
        raise NotFoundError(resource, identifier)
    return parsed


# ── Covenants ────────────────────────────────────────────────────────────


class SqlCovenantStore(SessionRepository):
    """CovenantStore over the borrowers/contracts/covenants/covenant_health tables."""

    def _covenant_query(self):
        return (
            select(
                CovenantRecord,
                ContractRecord.borrower_id,
                BorrowerRecord.legal_name,
                BorrowerRecord.industry,
            )
            .join(ContractRecord, CovenantRecord.contract_id == ContractRecord.id)
            .join(BorrowerRecord, ContractRecord.borrower_id == BorrowerRecord.id)
        )

    async def get_covenant(self, covenant_id: str) -> Optional[Covenant]:
        key = parse_uuid(covenant_id)
        if key is None:
            return None
        async with self.session() as session:
            result = await session.execute(
                self._covenant_query().where(CovenantRecord.id == key)
            )
            row = result.one_or_none()
            return _covenant(*row) if row is not None else None

    async def get_covenants_for_borrower(self, borrower_id: str) -> list[Covenant]:
        key = parse_uuid(borrower_id)
        if key is None:
            return []
        async with self.session() as session:
            result = await session.execute(
                self._covenant_query()
                .where(ContractRecord.borrower_id == key)
                .order_by(CovenantRecord.created_at)
            )
            return [_covenant(*row) for row in result.all()]

    async def get_covenant_health(self, covenant_id: str) -> Optional[CovenantHealth]:
        key = parse_uuid(covenant_id)
        if key is None:
            return None
        async with self.session() as session:
            result = await session.execute(
                select(CovenantHealthRecord).where(CovenantHealthRecord.covenant_id == key)
            )
            row = result.scalar_one_or_none()
            return _health(row) if row is not None else None

    async def save_covenant_health(self, health: CovenantHealth) -> CovenantHealth:
        covenant_key = _require_uuid("Covenant", health.covenant_id)
        values = health.model_dump(exclude={"covenant_id", "contract_id"})
        values["status"] = health.status.value
        values["trend"] = health.trend.value

        async with self.session() as session:
            result = await session.execute(
                select(CovenantHealthRecord).where(
                    CovenantHealthRecord.covenant_id == covenant_key
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = CovenantHealthRecord(
                    covenant_id=covenant_key,
                    contract_id=_require_uuid("Contract", health.contract_id),
                )
                session.add(row)
            for key, value in values.items():
                setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return _health(row)

    async def create_covenants(self, covenants: list[CovenantCreate]) -> int:
        if not covenants:
            return 0
        async with self.session() as session:
            for covenant in covenants:
                values = covenant.model_dump(mode="json")
                values["contract_id"] = _require_uuid("Contract", covenant.contract_id)
                session.add(CovenantRecord(**values))
            await session.flush()
        logger.info("covenants_stored", count=len(covenants))
        return len(covenants)

    async def list_borrower_ids(self) -> list[str]:
        async with self.session() as session:
            result = await session.execute(select(BorrowerRecord.id))
            return [str(v) for v in result.scalars().all()]

    # Seeding helpers for manual entry and tests

    async def create_borrower(self, legal_name: str, industry: Optional[str] = None) -> str:
        async with self.session() as session:
            row = BorrowerRecord(legal_name=legal_name, industry=industry)
            session.add(row)
            await session.flush()
            return str(row.id)

    async def create_contract(self, borrower_id: str, contract_name: str) -> str:
        async with self.session() as session:
            row = ContractRecord(
                borrower_id=_require_uuid("Borrower", borrower_id),
                contract_name=contract_name,
            )
            session.add(row)
            await session.flush()
            return str(row.id)


# ── Financial data ───────────────────────────────────────────────────────


class SqlFinancialDataReader(SessionRepository):
    """FinancialDataReader over financial_snapshots."""

    async def get_latest_snapshot(self, borrower_id: str) -> Optional[FinancialSnapshot]:
        snapshots = await self.get_historical_snapshots(borrower_id, 1)
        return snapshots[0] if snapshots else None

    async def get_historical_snapshots(
        self, borrower_id: str, count: int
    ) -> list[FinancialSnapshot]:
        key = parse_uuid(borrower_id)
        if key is None:
            return []
        async with self.session() as session:
            result = await session.execute(
                select(FinancialSnapshotRecord)
                .where(FinancialSnapshotRecord.borrower_id == key)
                .order_by(
                    FinancialSnapshotRecord.period_date.desc(),
                    FinancialSnapshotRecord.created_at.desc(),
                )
                .limit(count)
            )
            return [_snapshot(row) for row in result.scalars().all()]

    async def save_snapshot(self, enriched: EnrichedSnapshot) -> FinancialSnapshot:
        """Insert, or update the snapshot already stored for the same period."""
        snapshot = enriched.snapshot
        borrower_key = _require_uuid("Borrower", snapshot.borrower_id)

        values = {name: getattr(snapshot, name) for name in RAW_FIGURES}
        values.update({name: getattr(enriched.ratios, name) for name in RATIO_FIELDS})
        values["source"] = snapshot.source
        values["data_confidence"] = snapshot.data_confidence

        async with self.session() as session:
            result = await session.execute(
                select(FinancialSnapshotRecord).where(
                    FinancialSnapshotRecord.borrower_id == borrower_key,
                    FinancialSnapshotRecord.period_date == snapshot.period_date,
                    FinancialSnapshotRecord.period_type == snapshot.period_type.value,
                )
            )
            row = result.scalar_one_or_none()
            if row is None:
                row = FinancialSnapshotRecord(
                    borrower_id=borrower_key,
                    period_date=snapshot.period_date,
                    period_type=snapshot.period_type.value,
                )
                session.add(row)
            for key, value in values.items():
                setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return _snapshot(row)


# ── Alerts ───────────────────────────────────────────────────────────────


class SqlAlertSink(SessionRepository):
    """AlertSink over the alerts table."""

    async def create_alert(self, alert: AlertCreate) -> Alert:
        async with self.session() as session:
            row = AlertRecord(
                covenant_id=_require_uuid("Covenant", alert.covenant_id),
                contract_id=_require_uuid("Contract", alert.contract_id),
                alert_type=alert.alert_type.value,
                severity=alert.severity.value,
                title=alert.title,
                description=alert.description,
                trigger_metric_value=alert.trigger_metric_value,
                threshold_value=alert.threshold_value,
                status=AlertStatus.NEW.value,
                triggered_at=datetime.now(timezone.utc),
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return _alert(row)

    async def list_alerts(self, status: Optional[AlertStatus] = None) -> list[Alert]:
        stmt = select(AlertRecord).order_by(AlertRecord.triggered_at.desc())
        if status is not None:
            stmt = stmt.where(AlertRecord.status == status.value)
        async with self.session() as session:
            result = await session.execute(stmt)
            return [_alert(row) for row in result.scalars().all()]

    async def get_alert(self, alert_id: str) -> Optional[Alert]:
        key = parse_uuid(alert_id)
        if key is None:
            return None
        async with self.session() as session:
            row = await session.get(AlertRecord, key)
            return _alert(row) if row is not None else None

    async def update_alert(
        self,
        alert_id: str,
        severity: Optional[AlertSeverity] = None,
        status: Optional[AlertStatus] = None,
        acknowledged_by: Optional[str] = None,
        resolution_notes: Optional[str] = None,
    ) -> Alert:
        key = _require_uuid("Alert", alert_id)
        async with self.session() as session:
            row = await session.get(AlertRecord, key)
            if row is None:
                raise NotFoundError("Alert", alert_id)
            if severity is not None:
                row.severity = severity.value
            if status is not None:
                row.status = status.value
                if status == AlertStatus.ACKNOWLEDGED:
                    row.acknowledged_at = datetime.now(timezone.utc)
                    row.acknowledged_by = acknowledged_by
                elif status == AlertStatus.RESOLVED:
                    row.resolved_at = datetime.now(timezone.utc)
                    row.resolution_notes = resolution_notes
            await session.flush()
            await session.refresh(row)
            return _alert(row)


# ── Adverse events ───────────────────────────────────────────────────────


class SqlAdverseEventStore(SessionRepository):
    """AdverseEventStore over adverse_events."""

    async def get_events_for_borrower(self, borrower_id: str) -> list[AdverseEvent]:
        key = parse_uuid(borrower_id)
        if key is None:
            return []
        async with self.session() as session:
            result = await session.execute(
                select(AdverseEventRecord)
                .where(AdverseEventRecord.borrower_id == key)
                .order_by(AdverseEventRecord.event_date.desc())
            )
            return [_event(row) for row in result.scalars().all()]

    async def save_event(
        self, event: AdverseEventInput, risk_score: float, ai_analyzed: bool
    ) -> AdverseEvent:
        async with self.session() as session:
            row = AdverseEventRecord(
                borrower_id=_require_uuid("Borrower", event.borrower_id),
                event_type=event.event_type.value,
                headline=event.headline,
                description=event.description,
                source_url=event.source_url,
                event_date=event.event_date,
                risk_score=risk_score,
                ai_analyzed=ai_analyzed,
            )
            session.add(row)
            await session.flush()
            await session.refresh(row)
            return _event(row)

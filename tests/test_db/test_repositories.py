"""
Tests for the SQL repositories.

Runs against in-memory SQLite (aiosqlite) — same models as PostgreSQL.
"""

from datetime import date, datetime, timezone

import pytest
import pytest_asyncio

from covenantwatch.engine.ratios import compute_ratios
from covenantwatch.exceptions import NotFoundError
from covenantwatch.db.repositories import (
    SqlAdverseEventStore,
    SqlAlertSink,
    SqlCovenantStore,
    SqlFinancialDataReader,
)
from covenantwatch.schemas.alerts import AlertCreate, AlertSeverity, AlertStatus, AlertType
from covenantwatch.schemas.covenants import (
    ComplianceStatus,
    CovenantCreate,
    CovenantHealth,
    CovenantType,
    TrendDirection,
)
from covenantwatch.schemas.events import AdverseEventInput, AdverseEventType
from covenantwatch.schemas.financials import EnrichedSnapshot


@pytest_asyncio.fixture
async def seeded(session_factory):
    """One borrower, one contract, one leverage covenant."""
    store = SqlCovenantStore(session_factory)
    borrower_id = await store.create_borrower("Acme Manufacturing", industry="manufacturing")
    contract_id = await store.create_contract(borrower_id, "Senior Credit Facility")
    await store.create_covenants([
        CovenantCreate(
            contract_id=contract_id,
            covenant_name="Maximum Leverage",
            covenant_type=CovenantType.FINANCIAL,
            metric_name="debt_to_ebitda",
            operator="<=",
            threshold_value=3.0,
            ai_extracted=True,
        )
    ])
    covenants = await store.get_covenants_for_borrower(borrower_id)
    return store, borrower_id, contract_id, covenants[0]


def _enriched(snapshot) -> EnrichedSnapshot:
    return EnrichedSnapshot(snapshot=snapshot, ratios=compute_ratios(snapshot))


class TestCovenantStore:
    @pytest.mark.asyncio
    async def test_covenant_carries_borrower_context(self, seeded):
        store, borrower_id, contract_id, covenant = seeded

        fetched = await store.get_covenant(covenant.id)

        assert fetched is not None
        assert fetched.borrower_id == borrower_id
        assert fetched.contract_id == contract_id
        assert fetched.borrower_name == "Acme Manufacturing"
        assert fetched.industry == "manufacturing"
        assert fetched.threshold_value == 3.0
        assert await store.list_borrower_ids() == [borrower_id]

    @pytest.mark.asyncio
    async def test_malformed_ids_are_not_found(self, seeded):
        store, *_ = seeded
        assert await store.get_covenant("not-a-uuid") is None
        assert await store.get_covenants_for_borrower("not-a-uuid") == []
        assert await store.get_covenant_health("not-a-uuid") is None

    @pytest.mark.asyncio
    async def test_contract_for_unknown_borrower(self, session_factory):
        store = SqlCovenantStore(session_factory)
        with pytest.raises(NotFoundError):
            await store.create_contract("not-a-uuid", "Orphan")

    @pytest.mark.asyncio
    async def test_health_is_upserted(self, seeded):
        store, _, contract_id, covenant = seeded
        first = CovenantHealth(
            covenant_id=covenant.id,
            contract_id=contract_id,
            current_value=2.5,
            threshold_value=3.0,
            status=ComplianceStatus.COMPLIANT,
            buffer_percentage=16.67,
            last_calculated=datetime(2026, 9, 30, tzinfo=timezone.utc),
        )
        await store.save_covenant_health(first)
        second = first.model_copy(update={
            "current_value": 3.31,
            "status": ComplianceStatus.BREACHED,
            "trend": TrendDirection.DETERIORATING,
            "days_to_breach": 0,
        })
        await store.save_covenant_health(second)

        stored = await store.get_covenant_health(covenant.id)

        assert stored.status == ComplianceStatus.BREACHED
        assert stored.current_value == pytest.approx(3.31)
        assert stored.trend == TrendDirection.DETERIORATING
        assert stored.days_to_breach == 0


class TestFinancialDataReader:
    @pytest.mark.asyncio
    async def test_snapshots_newest_first(self, seeded, session_factory, make_snapshot):
        _, borrower_id, *_ = seeded
        reader = SqlFinancialDataReader(session_factory)
        for period, debt in [(date(2026, 3, 31), 25.0), (date(2026, 6, 30), 30.0), (date(2025, 12, 31), 20.0)]:
            await reader.save_snapshot(_enriched(
                make_snapshot(period_date=period, borrower_id=borrower_id, debt_total=debt, ebitda=10.0)
            ))

        history = await reader.get_historical_snapshots(borrower_id, 2)
        latest = await reader.get_latest_snapshot(borrower_id)

        assert [s.period_date for s in history] == [date(2026, 6, 30), date(2026, 3, 31)]
        assert latest.debt_total == 30.0

    @pytest.mark.asyncio
    async def test_same_period_is_replaced(self, seeded, session_factory, make_snapshot):
        _, borrower_id, *_ = seeded
        reader = SqlFinancialDataReader(session_factory)
        await reader.save_snapshot(_enriched(make_snapshot(borrower_id=borrower_id, debt_total=30.0, ebitda=10.0)))
        await reader.save_snapshot(_enriched(make_snapshot(borrower_id=borrower_id, debt_total=33.1, ebitda=10.0)))

        history = await reader.get_historical_snapshots(borrower_id, 10)

        assert len(history) == 1
        assert history[0].debt_total == 33.1


class TestAlertSink:
    @pytest.mark.asyncio
    async def test_lifecycle(self, seeded, session_factory):
        _, _, contract_id, covenant = seeded
        sink = SqlAlertSink(session_factory)

        alert = await sink.create_alert(AlertCreate(
            covenant_id=covenant.id,
            contract_id=contract_id,
            alert_type=AlertType.BREACH,
            severity=AlertSeverity.CRITICAL,
            title="COVENANT BREACH: Maximum Leverage",
            description="debt_to_ebitda is 3.31 against 3.0",
            trigger_metric_value=3.31,
            threshold_value=3.0,
        ))
        assert alert.status == AlertStatus.NEW
        assert [a.id for a in await sink.list_alerts(AlertStatus.NEW)] == [alert.id]

        acked = await sink.update_alert(
            alert.id, status=AlertStatus.ACKNOWLEDGED, acknowledged_by="analyst@bank.example"
        )
        assert acked.status == AlertStatus.ACKNOWLEDGED
        assert acked.acknowledged_at is not None
        assert acked.acknowledged_by == "analyst@bank.example"
        assert (await sink.get_alert(alert.id)).acknowledged_by == "analyst@bank.example"
        assert await sink.list_alerts(AlertStatus.NEW) == []

        resolved = await sink.update_alert(
            alert.id, status=AlertStatus.RESOLVED, resolution_notes="Waiver signed"
        )
        assert resolved.resolved_at is not None
        assert resolved.resolution_notes == "Waiver signed"

    @pytest.mark.asyncio
    async def test_unknown_alert(self, session_factory):
        sink = SqlAlertSink(session_factory)
        assert await sink.get_alert("not-a-uuid") is None
        assert await sink.get_alert("00000000-0000-0000-0000-000000000000") is None
        with pytest.raises(NotFoundError):
            await sink.update_alert("not-a-uuid", status=AlertStatus.RESOLVED)
        with pytest.raises(NotFoundError):
            await sink.update_alert("00000000-0000-0000-0000-000000000000", status=AlertStatus.RESOLVED)


class TestAdverseEventStore:
    @pytest.mark.asyncio
    async def test_save_and_list(self, seeded, session_factory):
        _, borrower_id, *_ = seeded
        store = SqlAdverseEventStore(session_factory)
        for day in (1, 15):
            await store.save_event(
                AdverseEventInput(
                    borrower_id=borrower_id,
                    event_type=AdverseEventType.CREDIT_RATING_DOWNGRADE,
                    headline=f"Downgrade {day}",
                    event_date=datetime(2026, 10, day, tzinfo=timezone.utc),
                ),
                risk_score=7.5,
                ai_analyzed=True,
            )

        events = await store.get_events_for_borrower(borrower_id)

        assert [e.headline for e in events] == ["Downgrade 15", "Downgrade 1"]
        assert events[0].ai_analyzed is True
        assert events[0].risk_score == 7.5

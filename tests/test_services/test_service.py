"""
Tests for the CovenantWatchService facade.

Covers:
- Wiring (extractor or queue required)
- Health-change hook → alert
- Stale alert escalation
- Alert lifecycle transitions
- Fleet-wide recalculation isolation
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from covenantwatch.exceptions import NotFoundError, ValidationError
from covenantwatch.schemas.alerts import (
    AlertCreate,
    AlertSeverity,
    AlertStatus,
    AlertType,
)
from covenantwatch.schemas.covenants import ComplianceStatus, CovenantHealth
from covenantwatch.service import CovenantWatchService


@pytest.fixture
def service(covenant_store, financials, alert_sink, event_store, fake_extractor_cls):
    return CovenantWatchService(
        covenants=covenant_store,
        financials=financials,
        alerts=alert_sink,
        events=event_store,
        extractor=fake_extractor_cls(),
    )


def _health(status: ComplianceStatus, value: float = 3.2) -> CovenantHealth:
    return CovenantHealth(
        covenant_id="cov-1",
        contract_id="contract-borrower-1",
        current_value=value,
        threshold_value=3.0,
        status=status,
        last_calculated=datetime(2026, 10, 1, tzinfo=timezone.utc),
    )


async def _raise_alert(alert_sink, severity=AlertSeverity.HIGH):
    return await alert_sink.create_alert(
        AlertCreate(
            covenant_id="cov-1",
            contract_id="contract-borrower-1",
            alert_type=AlertType.WARNING,
            severity=severity,
            title="Covenant Warning: Maximum Leverage",
            description="Approaching threshold",
        )
    )


def test_requires_extractor_or_queue(covenant_store, financials, alert_sink, event_store):
    with pytest.raises(ValueError):
        CovenantWatchService(
            covenants=covenant_store,
            financials=financials,
            alerts=alert_sink,
            events=event_store,
        )


class TestHealthChanged:
    @pytest.mark.asyncio
    async def test_warning_to_breached_creates_alert(self, service, covenant_store, make_covenant):
        covenant_store.add(make_covenant())

        alert = await service.on_covenant_health_changed(
            _health(ComplianceStatus.WARNING), _health(ComplianceStatus.BREACHED, 3.4)
        )

        assert alert is not None
        assert alert.alert_type == AlertType.BREACH
        assert alert.severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_unchanged_status_is_silent(self, service, covenant_store, alert_sink, make_covenant):
        covenant_store.add(make_covenant())

        alert = await service.on_covenant_health_changed(
            _health(ComplianceStatus.WARNING), _health(ComplianceStatus.WARNING)
        )

        assert alert is None
        assert alert_sink.alerts == {}

    @pytest.mark.asyncio
    async def test_unknown_covenant(self, service):
        with pytest.raises(NotFoundError):
            await service.on_covenant_health_changed(None, _health(ComplianceStatus.BREACHED))


class TestEscalation:
    @pytest.mark.asyncio
    async def test_stale_alert_is_escalated(self, service, alert_sink):
        alert = await _raise_alert(alert_sink)
        later = datetime.now(timezone.utc) + timedelta(hours=2)

        results = await service.escalate_stale_alerts(threshold_minutes=60, now=later)

        assert len(results) == 1
        assert results[0].previous_severity == AlertSeverity.HIGH
        assert results[0].new_severity == AlertSeverity.CRITICAL
        assert results[0].reason == "Unacknowledged for more than 60 minutes"
        stored = alert_sink.alerts[alert.id]
        assert stored.status == AlertStatus.ESCALATED
        assert stored.severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_fresh_and_acknowledged_alerts_are_left_alone(self, service, alert_sink):
        await _raise_alert(alert_sink)
        acked = await _raise_alert(alert_sink, AlertSeverity.LOW)
        await service.update_alert_status(acked.id, AlertStatus.ACKNOWLEDGED)

        fresh = await service.escalate_stale_alerts(threshold_minutes=60)
        assert fresh == []

        later = datetime.now(timezone.utc) + timedelta(hours=2)
        results = await service.escalate_stale_alerts(threshold_minutes=60, now=later)
        assert len(results) == 1
        assert results[0].alert_id != acked.id

    @pytest.mark.asyncio
    async def test_summary_counts(self, service, alert_sink):
        first = await _raise_alert(alert_sink)
        await _raise_alert(alert_sink, AlertSeverity.MEDIUM)
        await service.update_alert_status(first.id, AlertStatus.RESOLVED)

        summary = await service.alert_summary()

        assert summary.total == 2
        assert summary.new == 1
        assert summary.resolved == 1
        assert summary.by_severity["high"] == 1
        assert summary.by_severity["critical"] == 0


class TestAlertLifecycle:
    @pytest.mark.asyncio
    async def test_acknowledge_then_resolve_records_who_and_why(self, service, alert_sink):
        alert = await _raise_alert(alert_sink)

        acked = await service.update_alert_status(
            alert.id, AlertStatus.ACKNOWLEDGED, acknowledged_by="analyst@bank.example"
        )
        assert acked.acknowledged_by == "analyst@bank.example"
        assert acked.acknowledged_at is not None

        resolved = await service.update_alert_status(
            alert.id, AlertStatus.RESOLVED, resolution_notes="Waiver signed"
        )
        assert resolved.status == AlertStatus.RESOLVED
        assert resolved.resolution_notes == "Waiver signed"

    @pytest.mark.asyncio
    async def test_resolved_alert_cannot_be_reopened(self, service, alert_sink):
        alert = await _raise_alert(alert_sink)
        await service.update_alert_status(alert.id, AlertStatus.RESOLVED)

        with pytest.raises(ValidationError):
            await service.update_alert_status(alert.id, AlertStatus.NEW)
        assert alert_sink.alerts[alert.id].status == AlertStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_escalated_alert_can_be_acknowledged(self, service, alert_sink):
        alert = await _raise_alert(alert_sink)
        later = datetime.now(timezone.utc) + timedelta(hours=2)
        await service.escalate_stale_alerts(threshold_minutes=60, now=later)

        acked = await service.update_alert_status(alert.id, AlertStatus.ACKNOWLEDGED)

        assert acked.status == AlertStatus.ACKNOWLEDGED
        assert acked.severity == AlertSeverity.CRITICAL

    @pytest.mark.asyncio
    async def test_unknown_alert(self, service):
        with pytest.raises(NotFoundError):
            await service.update_alert_status("alert-missing", AlertStatus.ACKNOWLEDGED)


class TestRecalculateAll:
    @pytest.mark.asyncio
    async def test_every_borrower_is_recalculated(
        self, service, covenant_store, financials, make_covenant, make_snapshot
    ):
        covenant_store.add(make_covenant("cov-1", "borrower-1"))
        covenant_store.add(make_covenant("cov-2", "borrower-2"))
        financials.add(make_snapshot(borrower_id="borrower-1", debt_total=20.0, ebitda=10.0))
        financials.add(make_snapshot(borrower_id="borrower-2", debt_total=40.0, ebitda=10.0))

        results = await service.recalculate_all()

        assert [r.borrower_id for r in results] == ["borrower-1", "borrower-2"]
        assert covenant_store.health["cov-1"].status == ComplianceStatus.COMPLIANT
        assert covenant_store.health["cov-2"].status == ComplianceStatus.BREACHED

    @pytest.mark.asyncio
    async def test_failing_borrower_does_not_stop_the_rest(
        self, service, covenant_store, financials, make_covenant, make_snapshot, monkeypatch
    ):
        covenant_store.add(make_covenant("cov-1", "borrower-1"))
        covenant_store.add(make_covenant("cov-2", "borrower-2"))
        financials.add(make_snapshot(borrower_id="borrower-2", debt_total=20.0, ebitda=10.0))
        original = service.recalculate_borrower

        async def flaky(borrower_id):
            if borrower_id == "borrower-1":
                raise RuntimeError("database gone")
            return await original(borrower_id)

        monkeypatch.setattr(service, "recalculate_borrower", flaky)

        results = await service.recalculate_all()

        assert [r.borrower_id for r in results] == ["borrower-2"]

    @pytest.mark.asyncio
    async def test_missing_health(self, service):
        with pytest.raises(NotFoundError):
            await service.get_covenant_health("cov-404")


@pytest.mark.asyncio
async def test_enqueue_without_remote_runs_locally(service, covenant_store):
    result = await service.enqueue_extraction("contract-1", "Leverage shall not exceed 3.5x")

    assert result.kind == "fallback"
    await service.close()

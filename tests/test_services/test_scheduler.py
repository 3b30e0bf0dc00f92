"""
Tests for the background scheduler jobs.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from covenantwatch.main import create_app
from covenantwatch.schemas.covenants import BatchEvaluationResult
from covenantwatch.schemas.extraction import JobStatus
from covenantwatch.service import CovenantWatchService
from covenantwatch.services.extraction_queue import ExtractionJobQueue
from covenantwatch.services.scheduler import CovenantScheduler, QueueMaintenanceScheduler


@pytest.fixture
def mock_service():
    svc = MagicMock()
    svc.recalculate_all = AsyncMock(return_value=[BatchEvaluationResult(borrower_id="b-1")])
    svc.escalate_stale_alerts = AsyncMock(return_value=[])
    svc.cleanup_jobs = AsyncMock(return_value=3)
    return svc


@pytest.fixture
def service(covenant_store, financials, alert_sink, event_store, fake_extractor_cls):
    queue = ExtractionJobQueue(
        extractor=fake_extractor_cls(), covenants=covenant_store, retention_hours=0
    )
    return CovenantWatchService(
        covenants=covenant_store,
        financials=financials,
        alerts=alert_sink,
        events=event_store,
        queue=queue,
    )


class TestCovenantScheduler:
    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, mock_service):
        scheduler = CovenantScheduler(mock_service)
        scheduler.start()
        try:
            ids = {job.id for job in scheduler.scheduler.get_jobs()}
            assert ids == {"recalculate_all", "escalate_alerts"}
        finally:
            scheduler.scheduler.shutdown(wait=False)

    @pytest.mark.asyncio
    async def test_jobs_delegate_to_service(self, mock_service):
        scheduler = CovenantScheduler(mock_service)

        await scheduler.recalculate_all()
        await scheduler.escalate_alerts()

        mock_service.recalculate_all.assert_awaited_once()
        mock_service.escalate_stale_alerts.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_escalation_failure_is_contained(self, mock_service):
        mock_service.escalate_stale_alerts.side_effect = RuntimeError("db down")
        scheduler = CovenantScheduler(mock_service)

        await scheduler.escalate_alerts()


class TestQueueMaintenance:
    @pytest.mark.asyncio
    async def test_start_registers_cleanup(self, mock_service):
        maintenance = QueueMaintenanceScheduler(mock_service)
        maintenance.start()
        try:
            assert [job.id for job in maintenance.scheduler.get_jobs()] == ["cleanup_jobs"]
        finally:
            maintenance.stop()

    @pytest.mark.asyncio
    async def test_purges_the_queue_that_received_the_jobs(self, service):
        job_id = (await service.enqueue_extraction("contract-1", "text")).job_id
        await service.queue.drain()
        assert (await service.get_job_status(job_id)).status == JobStatus.COMPLETED

        # Backdate so the zero-hour window has passed
        service.queue._jobs[job_id].completed_at -= timedelta(seconds=1)
        removed = await QueueMaintenanceScheduler(service).cleanup_jobs()

        assert removed == 1
        assert await service.get_job_status(job_id) is None

    @pytest.mark.asyncio
    async def test_api_lifespan_runs_the_purge(self, service):
        app = create_app(service=service)

        async with app.router.lifespan_context(app):
            assert app.state.service is service
            assert app.state.maintenance.scheduler.get_job("cleanup_jobs") is not None
            assert app.state.maintenance.service is service

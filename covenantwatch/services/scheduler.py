"""
Covenant Schedulers.

CovenantScheduler runs in a separate process (covenantwatch-scheduler),
NOT inside the API process. Keeps long recalculations off request paths.

Jobs:
1. Recalculate every borrower (every 6 hours)
2. Escalate unacknowledged alerts (every 15 minutes)

QueueMaintenanceScheduler runs inside the API process, because the
extraction job table lives in that process's memory.

Jobs:
1. Purge finished extraction jobs (every hour)
"""

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from covenantwatch.config import settings
from covenantwatch.service import CovenantWatchService

logger = structlog.get_logger(__name__)


class CovenantScheduler:
    """Background scheduler for periodic covenant maintenance."""

    def __init__(self, service: CovenantWatchService):
        self.service = service
        self.scheduler = AsyncIOScheduler()

    def start(self):
        """Register and start all scheduled jobs."""
        self.scheduler.add_job(
            self.recalculate_all,
            IntervalTrigger(hours=settings.recalc_interval_hours),
            id="recalculate_all",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.escalate_alerts,
            IntervalTrigger(minutes=settings.escalation_interval_minutes),
            id="escalate_alerts",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("covenant_scheduler_started")

    def stop(self):
        """Gracefully stop the scheduler."""
        self.scheduler.shutdown(wait=True)
        logger.info("covenant_scheduler_stopped")

    async def recalculate_all(self):
        """Recalculate every borrower's covenants."""
        logger.info("full_recalculation_started")
        results = await self.service.recalculate_all()
        logger.info(
            "full_recalculation_completed",
            borrowers=len(results),
            evaluated=sum(r.evaluated for r in results),
            failed=sum(r.failed for r in results),
        )

    async def escalate_alerts(self):
        try:
            escalated = await self.service.escalate_stale_alerts()
        except Exception as e:
            logger.error("alert_escalation_failed", error=str(e))
            return
        if escalated:
            logger.info("stale_alerts_escalated", count=len(escalated))


class QueueMaintenanceScheduler:
    """Purges finished jobs from the extraction queue owned by this process."""

    def __init__(self, service: CovenantWatchService):
        self.service = service
        self.scheduler = AsyncIOScheduler()

    def start(self):
        self.scheduler.add_job(
            self.cleanup_jobs,
            IntervalTrigger(hours=settings.cleanup_interval_hours),
            id="cleanup_jobs",
            max_instances=1,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info("queue_maintenance_started")

    def stop(self):
        self.scheduler.shutdown(wait=False)
        logger.info("queue_maintenance_stopped")

    async def cleanup_jobs(self) -> int:
        removed = await self.service.cleanup_jobs()
        if removed:
            logger.info("extraction_jobs_purged", count=removed)
        return removed

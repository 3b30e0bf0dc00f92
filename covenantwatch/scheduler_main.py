"""
Scheduler Entry Point — runs in a separate container.

Usage:
    python -m covenantwatch.scheduler_main

This does NOT run a web server. It runs the APScheduler
background loop for recalculation and alert escalation. Extraction
jobs are purged by the API process, which owns the job queue.
"""

import asyncio
import signal

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from covenantwatch.config import settings
from covenantwatch.logging_setup import configure_logging
from covenantwatch.service import CovenantWatchService
from covenantwatch.services.scheduler import CovenantScheduler

logger = structlog.get_logger(__name__)


async def main():
    """Initialize and run the scheduler."""
    configure_logging()
    logger.info("scheduler_starting", version=settings.app_version)

    # Database
    kwargs: dict = {"echo": settings.debug}
    if not settings.async_database_url.startswith("sqlite"):
        kwargs.update(pool_size=5, max_overflow=5)
    engine = create_async_engine(settings.async_database_url, **kwargs)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    service = CovenantWatchService.from_session_factory(session_factory)
    scheduler = CovenantScheduler(service)

    # Run initial recalculation on startup
    logger.info("running_initial_recalculation")
    await scheduler.recalculate_all()

    # Start periodic scheduler
    scheduler.start()

    # Graceful shutdown handling
    stop_event = asyncio.Event()

    def _handle_signal(signum, frame):
        logger.info("shutdown_signal_received", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    logger.info("scheduler_running", msg="Waiting for jobs... Ctrl+C to stop.")

    # Block until shutdown signal
    await stop_event.wait()

    # Cleanup
    scheduler.stop()
    await service.close()
    await engine.dispose()
    logger.info("scheduler_shutdown_complete")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass

"""
CovenantWatch — FastAPI Application.

Entry point for the API server.
Run: uvicorn covenantwatch.api.app:app --host 0.0.0.0 --port 8000 --reload

Routes:
  - /api/v1/covenants/*   ← evaluate, health, trend, manual covenants
  - /api/v1/borrowers/*   ← recalculate, financial ingest, risk aggregate
  - /api/v1/events/*      ← adverse event ingest
  - /api/v1/extraction/*  ← extraction jobs and queue stats
  - /api/v1/alerts/*      ← list, summary, escalate, transition
  - GET /health           ← health check
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from covenantwatch.api.routers.alerts import router as alerts_router
from covenantwatch.api.routers.borrowers import router as borrowers_router
from covenantwatch.api.routers.covenants import router as covenants_router
from covenantwatch.api.routers.events import router as events_router
from covenantwatch.api.routers.extraction import router as extraction_router
from covenantwatch.config import settings
from covenantwatch.db.engine import close_db, get_session_factory, init_db
from covenantwatch.exceptions import CovenantWatchError
from covenantwatch.logging_setup import configure_logging
from covenantwatch.middleware.error_handler import ErrorHandlerMiddleware
from covenantwatch.service import CovenantWatchService
from covenantwatch.services.scheduler import QueueMaintenanceScheduler

logger = structlog.get_logger(__name__)


def create_app(service: Optional[CovenantWatchService] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    When a service is passed in, startup skips the database and uses it as is.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan — startup and shutdown."""
        configure_logging()
        logger.info("covenantwatch_starting", version=settings.app_version)

        if service is not None:
            app.state.service = service
        else:
            if not settings.gemini_api_key:
                logger.warning("gemini_api_key_not_set", msg="AI features will use fallback responses")
            await init_db()
            app.state.service = CovenantWatchService.from_session_factory(get_session_factory())

        # The extraction queue lives in this process, so its purge runs here too
        app.state.maintenance = QueueMaintenanceScheduler(app.state.service)
        app.state.maintenance.start()
        yield
        app.state.maintenance.stop()

        if service is None:
            await app.state.service.close()
            await close_db()
        logger.info("covenantwatch_shutdown")

    app = FastAPI(
        title=settings.app_name,
        description=(
            "Covenant compliance monitoring: per-covenant health, trend and "
            "days-to-breach, status-transition alerts, adverse-event risk "
            "aggregation and AI-assisted covenant extraction."
        ),
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_tags=[
            {"name": "health", "description": "Liveness check"},
            {"name": "covenants", "description": "Covenant evaluation, health and trend"},
            {"name": "borrowers", "description": "Borrower recalculation, financials, risk"},
            {"name": "events", "description": "Adverse event ingest"},
            {"name": "extraction", "description": "Covenant extraction jobs"},
            {"name": "alerts", "description": "Alert lifecycle and escalation"},
        ],
    )

    # Catches everything the exception handlers below do not map
    app.add_middleware(ErrorHandlerMiddleware)

    @app.exception_handler(CovenantWatchError)
    async def covenantwatch_error_handler(request: Request, exc: CovenantWatchError):
        logger.warning(
            "request_failed",
            path=request.url.path,
            code=exc.code.value,
            error=exc.message,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_response().model_dump(mode="json"),
        )

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(covenants_router)
    app.include_router(borrowers_router)
    app.include_router(events_router)
    app.include_router(extraction_router)
    app.include_router(alerts_router)

    # ── Health Check (Liveness) ────────────────────────────────────────────
    @app.get("/health", tags=["health"])
    async def health():
        """Liveness check. Does NOT check dependencies."""
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "covenantwatch",
        }

    return app


app = create_app()

"""
Covenant API Endpoints.

POST /api/v1/covenants                      — store manually entered covenants
POST /api/v1/covenants/{covenant_id}/evaluate — evaluate one covenant now
GET  /api/v1/covenants/{covenant_id}/health   — current health record
GET  /api/v1/covenants/{covenant_id}/trend    — per-period value and status
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from covenantwatch.api.deps import get_service
from covenantwatch.schemas.alerts import Alert
from covenantwatch.schemas.covenants import (
    CovenantCreate,
    CovenantHealth,
    CovenantTrendSeries,
)
from covenantwatch.service import CovenantWatchService

router = APIRouter(prefix="/api/v1/covenants", tags=["covenants"])


class CovenantCreateResponse(BaseModel):
    created: int


class EvaluationResponse(BaseModel):
    health: CovenantHealth
    alert: Optional[Alert] = None


@router.post("", response_model=CovenantCreateResponse, status_code=201)
async def create_covenants(
    body: list[CovenantCreate],
    service: CovenantWatchService = Depends(get_service),
):
    created = await service.create_covenants(body)
    return CovenantCreateResponse(created=created)


@router.post("/{covenant_id}/evaluate", response_model=EvaluationResponse)
async def evaluate_covenant(
    covenant_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    """Evaluate one covenant, persist its health and alert on a status change."""
    outcome = await service.evaluate_covenant(covenant_id)
    return EvaluationResponse(health=outcome.health, alert=outcome.alert)


@router.get("/{covenant_id}/health", response_model=CovenantHealth)
async def get_covenant_health(
    covenant_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.get_covenant_health(covenant_id)


@router.get("/{covenant_id}/trend", response_model=CovenantTrendSeries)
async def get_covenant_trend(
    covenant_id: str,
    periods: Optional[int] = Query(default=None, ge=2, le=20),
    service: CovenantWatchService = Depends(get_service),
):
    return await service.trend_series(covenant_id, periods)

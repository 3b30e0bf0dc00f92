"""
Alert API Endpoints.

GET  /api/v1/alerts                       — list alerts, optionally by status
GET  /api/v1/alerts/summary               — counts by status and severity
POST /api/v1/alerts/escalate              — escalate unacknowledged alerts
POST /api/v1/alerts/{alert_id}/status     — acknowledge / resolve an alert
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from covenantwatch.api.deps import get_service
from covenantwatch.schemas.alerts import (
    Alert,
    AlertStatus,
    AlertSummary,
    EscalationResult,
)
from covenantwatch.service import CovenantWatchService

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])


class AlertStatusUpdate(BaseModel):
    status: AlertStatus
    acknowledged_by: Optional[str] = Field(default=None, max_length=255)
    resolution_notes: Optional[str] = None


@router.get("", response_model=list[Alert])
async def list_alerts(
    status: Optional[AlertStatus] = Query(default=None),
    service: CovenantWatchService = Depends(get_service),
):
    return await service.list_alerts(status)


@router.get("/summary", response_model=AlertSummary)
async def alert_summary(service: CovenantWatchService = Depends(get_service)):
    return await service.alert_summary()


@router.post("/escalate", response_model=list[EscalationResult])
async def escalate_alerts(
    threshold_minutes: Optional[int] = Query(default=None, ge=1),
    service: CovenantWatchService = Depends(get_service),
):
    return await service.escalate_stale_alerts(threshold_minutes)


@router.post("/{alert_id}/status", response_model=Alert)
async def update_alert_status(
    alert_id: str,
    body: AlertStatusUpdate,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.update_alert_status(
        alert_id,
        body.status,
        acknowledged_by=body.acknowledged_by,
        resolution_notes=body.resolution_notes,
    )

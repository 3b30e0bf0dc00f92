"""
Adverse Event API Endpoints.

POST /api/v1/events        — score and store one event
POST /api/v1/events/batch  — ingest many; failures are reported per event
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from covenantwatch.api.deps import get_service
from covenantwatch.schemas.events import AdverseEventInput, IngestedEvent
from covenantwatch.service import CovenantWatchService

router = APIRouter(prefix="/api/v1/events", tags=["events"])


class BatchIngestRequest(BaseModel):
    events: list[AdverseEventInput] = Field(min_length=1, max_length=100)


class BatchIngestResponse(BaseModel):
    ingested: list[IngestedEvent]
    errors: list[dict[str, str]]


@router.post("", response_model=IngestedEvent, status_code=201)
async def ingest_event(
    body: AdverseEventInput,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.ingest_event(body)


@router.post("/batch", response_model=BatchIngestResponse)
async def batch_ingest_events(
    body: BatchIngestRequest,
    service: CovenantWatchService = Depends(get_service),
):
    ingested, errors = await service.batch_ingest_events(body.events)
    return BatchIngestResponse(ingested=ingested, errors=errors)

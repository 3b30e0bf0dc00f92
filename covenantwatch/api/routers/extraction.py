"""
Covenant Extraction API Endpoints.

POST   /api/v1/extraction/jobs                       — enqueue contract text
GET    /api/v1/extraction/jobs/{job_id}              — job status
GET    /api/v1/extraction/contracts/{contract_id}    — latest job for a contract
GET    /api/v1/extraction/stats                      — queue counts by status
DELETE /api/v1/extraction/jobs                       — purge finished jobs
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from covenantwatch.api.deps import get_service
from covenantwatch.exceptions import NotFoundError
from covenantwatch.schemas.extraction import (
    Dispatched,
    ExtractionJob,
    Fallback,
    JobPriority,
    QueueStats,
)
from covenantwatch.service import CovenantWatchService

router = APIRouter(prefix="/api/v1/extraction", tags=["extraction"])


class EnqueueRequest(BaseModel):
    contract_id: str = Field(min_length=1)
    contract_text: str = Field(min_length=1)
    priority: JobPriority = JobPriority.NORMAL


class CleanupResponse(BaseModel):
    removed: int


@router.post("/jobs", response_model=Dispatched | Fallback, status_code=202)
async def enqueue_extraction(
    body: EnqueueRequest,
    service: CovenantWatchService = Depends(get_service),
):
    return await service.enqueue_extraction(
        body.contract_id, body.contract_text, body.priority
    )


@router.get("/jobs/{job_id}", response_model=ExtractionJob)
async def get_job_status(
    job_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    job = await service.get_job_status(job_id)
    if job is None:
        raise NotFoundError("ExtractionJob", job_id)
    return job


@router.get("/contracts/{contract_id}", response_model=ExtractionJob)
async def get_contract_status(
    contract_id: str,
    service: CovenantWatchService = Depends(get_service),
):
    job = await service.get_contract_extraction_status(contract_id)
    if job is None:
        raise NotFoundError("ExtractionJob", contract_id)
    return job


@router.get("/stats", response_model=QueueStats)
async def get_queue_stats(service: CovenantWatchService = Depends(get_service)):
    return await service.get_queue_stats()


@router.delete("/jobs", response_model=CleanupResponse)
async def cleanup_jobs(
    max_age_hours: Optional[float] = Query(default=None, ge=0),
    service: CovenantWatchService = Depends(get_service),
):
    return CleanupResponse(removed=await service.cleanup_jobs(max_age_hours))

"""
Extraction job schemas.

A job tracks one contract-text → covenant-list extraction attempt.
"""

from datetime import datetime
from enum import StrEnum
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class JobPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


# Heap rank: lower pops first
PRIORITY_RANK: dict[JobPriority, int] = {
    JobPriority.HIGH: 0,
    JobPriority.NORMAL: 1,
    JobPriority.LOW: 2,
}


class ExtractionJob(BaseModel):
    id: str
    contract_id: str
    status: JobStatus = JobStatus.PENDING
    priority: JobPriority = JobPriority.NORMAL
    progress_percentage: int = 0
    retry_count: int = 0
    max_retries: int = 3
    extracted_covenants_count: int = 0
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    next_attempt_at: Optional[datetime] = None


class ExtractedCovenant(BaseModel):
    """A raw covenant candidate as returned by the AI extraction service."""

    covenant_name: str = ""
    covenant_type: str = "other"
    metric_name: Optional[str] = None
    operator: str = ">="
    threshold_value: float = 0.0
    threshold_unit: Optional[str] = None
    check_frequency: str = "quarterly"
    covenant_clause: Optional[str] = None
    confidence_score: float = 0.5


class ExtractionResult(BaseModel):
    covenants: list[ExtractedCovenant] = Field(default_factory=list)
    summary: str = ""
    processing_time_ms: int = 0


class QueueStats(BaseModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


# ── Dispatch outcome ──────────────────────────────────────────────────


class Dispatched(BaseModel):
    """The remote orchestrator accepted the job."""

    kind: Literal["dispatched"] = "dispatched"
    job_id: str


class Fallback(BaseModel):
    """The remote path was unavailable; the job runs in the local queue."""

    kind: Literal["fallback"] = "fallback"
    job_id: str
    reason: str


DispatchResult = Union[Dispatched, Fallback]

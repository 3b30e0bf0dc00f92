"""
Extraction Job Queue — bounded, priority-ordered, retrying job runner.

Job state machine:
    pending → processing → completed
                         → pending   (retry, after 2^retry_count × base seconds)
                         → failed    (retry_count reached max_retries)

Guarantees:
- At most max_concurrent_jobs jobs are processing at any instant.
- Admission is by priority (high > normal > low), FIFO within a priority.
- Every state change happens under one asyncio.Lock; no job starts twice.
- Retries are re-admitted with loop.call_later, never a blocking sleep.
- Readers get model_copy() snapshots, never the live job record.

Dispatch tries the remote orchestrator first and reports the outcome as a
tagged result: Dispatched (remote accepted) or Fallback (local job).
"""

import asyncio
import heapq
import itertools
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from covenantwatch.config import settings
from covenantwatch.exceptions import ExternalServiceError, RetriesExhaustedError
from covenantwatch.schemas.extraction import (
    PRIORITY_RANK,
    TERMINAL_STATUSES,
    DispatchResult,
    Dispatched,
    ExtractionJob,
    Fallback,
    JobPriority,
    JobStatus,
    QueueStats,
)
from covenantwatch.services.covenant_classifier import validate_and_classify
from covenantwatch.services.ports import (
    CovenantStore,
    ExtractionService,
    RemoteExtractionQueue,
)

logger = structlog.get_logger(__name__)

# Progress checkpoints
PROGRESS_STARTED: int = 10
PROGRESS_EXTRACTING: int = 30
PROGRESS_EXTRACTED: int = 60
PROGRESS_CLASSIFIED: int = 80
PROGRESS_DONE: int = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ExtractionJobQueue:
    """
    Single-owner job table plus priority heap.

    One instance per process; inject it wherever jobs are enqueued or read.
    """

    def __init__(
        self,
        extractor: ExtractionService,
        covenants: CovenantStore,
        remote: Optional[RemoteExtractionQueue] = None,
        max_concurrent_jobs: int | None = None,
        max_retries: int | None = None,
        retry_base_seconds: float | None = None,
        min_confidence: float | None = None,
        retention_hours: float | None = None,
    ):
        self.extractor = extractor
        self.covenants = covenants
        self.remote = remote
        self.max_concurrent_jobs = (
            max_concurrent_jobs if max_concurrent_jobs is not None else settings.max_concurrent_jobs
        )
        self.max_retries = max_retries if max_retries is not None else settings.max_retries
        self.retry_base_seconds = (
            retry_base_seconds if retry_base_seconds is not None else settings.retry_base_seconds
        )
        self.min_confidence = (
            min_confidence if min_confidence is not None else settings.min_extraction_confidence
        )
        self.retention_hours = (
            retention_hours if retention_hours is not None else settings.job_retention_hours
        )

        self._lock = asyncio.Lock()
        self._jobs: dict[str, ExtractionJob] = {}
        self._texts: dict[str, str] = {}
        self._heap: list[tuple[int, int, str]] = []
        self._sequence = itertools.count()
        self._processing: set[str] = set()
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task] = set()
        self._idle = asyncio.Event()
        self._idle.set()

    # ── Dispatch ───────────────────────────────────────────────────────

    async def enqueue(
        self,
        contract_id: str,
        contract_text: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> DispatchResult:
        """Hand the job to the remote orchestrator, or run it locally."""
        if self.remote is not None:
            try:
                remote_id = await self.remote.queue_extraction(
                    contract_id, contract_text, priority
                )
                logger.info(
                    "extraction_dispatched",
                    contract_id=contract_id,
                    job_id=remote_id,
                )
                return Dispatched(job_id=remote_id)
            except ExternalServiceError as exc:
                reason = exc.message
        else:
            reason = "remote orchestration not configured"

        job_id = await self._enqueue_local(contract_id, contract_text, priority)
        logger.info(
            "extraction_fallback_local",
            contract_id=contract_id,
            job_id=job_id,
            reason=reason,
        )
        return Fallback(job_id=job_id, reason=reason)

    async def _enqueue_local(
        self, contract_id: str, contract_text: str, priority: JobPriority
    ) -> str:
        job = ExtractionJob(
            id=f"job_{uuid.uuid4().hex[:16]}",
            contract_id=contract_id,
            priority=priority,
            max_retries=self.max_retries,
            created_at=_now(),
        )
        async with self._lock:
            self._jobs[job.id] = job
            self._texts[job.id] = contract_text
            self._push_locked(job)
            self._admit_locked()
        return job.id

    # ── Admission (lock held) ──────────────────────────────────────────

    def _push_locked(self, job: ExtractionJob) -> None:
        heapq.heappush(
            self._heap, (PRIORITY_RANK[job.priority], next(self._sequence), job.id)
        )
        self._idle.clear()

    def _admit_locked(self) -> None:
        while self._heap and len(self._processing) < self.max_concurrent_jobs:
            _, _, job_id = heapq.heappop(self._heap)
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.PENDING:
                continue

            job.status = JobStatus.PROCESSING
            job.started_at = _now()
            job.progress_percentage = PROGRESS_STARTED
            job.next_attempt_at = None
            self._processing.add(job_id)

            task = asyncio.create_task(self._run(job_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        self._refresh_idle_locked()

    def _refresh_idle_locked(self) -> None:
        if not self._processing and not self._timers and not self._heap:
            self._idle.set()
        else:
            self._idle.clear()

    # ── Processing ─────────────────────────────────────────────────────

    async def _set_progress(self, job_id: str, progress: int) -> None:
        async with self._lock:
            self._jobs[job_id].progress_percentage = progress

    async def _run(self, job_id: str) -> None:
        job = self._jobs[job_id]
        contract_id = job.contract_id
        text = self._texts[job_id]

        try:
            await self._set_progress(job_id, PROGRESS_EXTRACTING)
            result = await self.extractor.extract_covenants(text)
            await self._set_progress(job_id, PROGRESS_EXTRACTED)

            report = validate_and_classify(result.covenants, contract_id, self.min_confidence)
            await self._set_progress(job_id, PROGRESS_CLASSIFIED)

            stored = await self.covenants.create_covenants(report.accepted)
        except Exception as exc:
            await self._on_failure(job_id, exc)
        else:
            await self._on_success(job_id, stored, len(report.rejected) + report.skipped)

    async def _on_success(self, job_id: str, stored: int, dropped: int) -> None:
        async with self._lock:
            job = self._jobs[job_id]
            job.status = JobStatus.COMPLETED
            job.progress_percentage = PROGRESS_DONE
            job.extracted_covenants_count = stored
            job.completed_at = _now()
            self._processing.discard(job_id)
            self._texts.pop(job_id, None)
            self._admit_locked()

        logger.info(
            "extraction_job_completed",
            job_id=job_id,
            contract_id=job.contract_id,
            covenants_stored=stored,
            candidates_dropped=dropped,
        )

    async def _on_failure(self, job_id: str, exc: Exception) -> None:
        async with self._lock:
            job = self._jobs[job_id]
            job.retry_count += 1
            self._processing.discard(job_id)

            if job.retry_count < job.max_retries:
                delay = self.retry_base_seconds * (2 ** job.retry_count)
                job.status = JobStatus.PENDING
                job.progress_percentage = 0
                job.next_attempt_at = _now() + timedelta(seconds=delay)
                loop = asyncio.get_running_loop()
                self._timers[job_id] = loop.call_later(delay, self._schedule_readmit, job_id)
                logger.warning(
                    "extraction_job_retry_scheduled",
                    job_id=job_id,
                    retry_count=job.retry_count,
                    max_retries=job.max_retries,
                    delay=delay,
                    error=str(exc),
                )
            else:
                exhausted = RetriesExhaustedError(job_id, job.retry_count, str(exc))
                job.status = JobStatus.FAILED
                job.error_message = str(exc)
                job.completed_at = _now()
                self._texts.pop(job_id, None)
                logger.error(
                    "extraction_job_failed",
                    job_id=job_id,
                    contract_id=job.contract_id,
                    code=exhausted.code.value,
                    attempts=job.retry_count,
                    error=str(exc),
                )

            self._admit_locked()

    def _schedule_readmit(self, job_id: str) -> None:
        task = asyncio.ensure_future(self._readmit(job_id))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _readmit(self, job_id: str) -> None:
        async with self._lock:
            self._timers.pop(job_id, None)
            job = self._jobs.get(job_id)
            if job is not None and job.status == JobStatus.PENDING:
                self._push_locked(job)
            self._admit_locked()

    # ── Readers ────────────────────────────────────────────────────────

    async def get_job_status(self, job_id: str) -> Optional[ExtractionJob]:
        """Snapshot of a job; falls through to the remote orchestrator."""
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is not None:
                return job.model_copy()

        if self.remote is None:
            return None
        return self._from_remote(await self.remote.get_job_status(job_id))

    async def get_contract_status(self, contract_id: str) -> Optional[ExtractionJob]:
        """Remote status for the contract first, then the newest local job."""
        if self.remote is not None:
            remote = self._from_remote(await self.remote.get_contract_status(contract_id))
            if remote is not None:
                return remote

        async with self._lock:
            jobs = [j for j in self._jobs.values() if j.contract_id == contract_id]
            if not jobs:
                return None
            # Ties go to the last enqueued job
            return sorted(jobs, key=lambda j: j.created_at)[-1].model_copy()

    def _from_remote(self, payload: Optional[dict]) -> Optional[ExtractionJob]:
        if not payload:
            return None
        try:
            return ExtractionJob.model_validate(payload)
        except PydanticValidationError as exc:
            logger.warning("remote_job_unparseable", error=str(exc))
            return None

    async def get_queue_stats(self) -> QueueStats:
        async with self._lock:
            stats = QueueStats(total=len(self._jobs))
            for job in self._jobs.values():
                if job.status == JobStatus.PENDING:
                    stats.pending += 1
                elif job.status == JobStatus.PROCESSING:
                    stats.processing += 1
                elif job.status == JobStatus.COMPLETED:
                    stats.completed += 1
                elif job.status == JobStatus.FAILED:
                    stats.failed += 1
            return stats

    # ── Maintenance ────────────────────────────────────────────────────

    async def cleanup_old_jobs(
        self,
        max_age_hours: float | None = None,
        now: Optional[datetime] = None,
    ) -> int:
        """Purge terminal jobs older than the retention window."""
        hours = max_age_hours if max_age_hours is not None else self.retention_hours
        cutoff = (now or _now()) - timedelta(hours=hours)

        async with self._lock:
            stale = [
                job_id
                for job_id, job in self._jobs.items()
                if job.status in TERMINAL_STATUSES
                and (job.completed_at or job.created_at) < cutoff
            ]
            for job_id in stale:
                del self._jobs[job_id]

        if stale:
            logger.info("extraction_jobs_cleaned", removed=len(stale))
        return len(stale)

    async def drain(self) -> None:
        """Wait until no job is processing, queued or awaiting a retry."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel pending retries and in-flight work."""
        async with self._lock:
            for handle in self._timers.values():
                handle.cancel()
            self._timers.clear()
            tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

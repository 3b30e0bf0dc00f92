"""
Xano Client — remote covenant-extraction orchestrator.

The hosted backend can run extraction jobs itself. CovenantWatch only
dispatches to it and reads job status back; if it is down or disabled the
local ExtractionJobQueue takes the job instead.

Endpoints:
  POST /xano/covenant-extraction/queue          → {"job_id": ...}
  GET  /xano/covenant-extraction/jobs/{job_id}
  GET  /contracts/{contract_id}/covenants/extraction-status
"""

from typing import Any, Optional

import httpx
import structlog

from covenantwatch.config import settings
from covenantwatch.exceptions import ExternalServiceError
from covenantwatch.schemas.extraction import JobPriority
from covenantwatch.services.resilience import CircuitBreaker

logger = structlog.get_logger(__name__)

SERVICE_NAME = "xano"


def _unwrap(body: Any) -> Any:
    """Xano sometimes wraps payloads in {"data": ...}."""
    if isinstance(body, dict) and "data" in body and isinstance(body["data"], dict):
        return body["data"]
    return body


class XanoClient:
    """
    HTTP client for the remote orchestrator.

    Dispatch raises ExternalServiceError so the queue can fall back; status
    reads return None on failure (graceful degradation).
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        enabled: bool | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        breaker: CircuitBreaker | None = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.xano_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.xano_api_key
        self.timeout = timeout or settings.xano_timeout_seconds
        self.enabled = (enabled if enabled is not None else settings.xano_enabled) and bool(
            self.base_url
        )
        self._transport = transport
        self.breaker = breaker or CircuitBreaker(
            name=SERVICE_NAME, failure_threshold=5, recovery_timeout=30.0
        )

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            follow_redirects=True,
            headers=headers,
            transport=self._transport,
        )

    async def _get(self, path: str) -> Any:
        async with self._client() as client:
            resp = await client.get(path)
            resp.raise_for_status()
            return _unwrap(resp.json())

    async def _post(self, path: str, payload: dict[str, Any]) -> Any:
        async with self._client() as client:
            resp = await client.post(path, json=payload)
            resp.raise_for_status()
            return _unwrap(resp.json())

    async def queue_extraction(
        self,
        contract_id: str,
        contract_text: str,
        priority: JobPriority = JobPriority.NORMAL,
    ) -> str:
        if not self.enabled:
            raise ExternalServiceError(SERVICE_NAME, "remote orchestration disabled")

        payload = {
            "contract_id": contract_id,
            "contract_text": contract_text,
            "priority": priority.value,
        }
        try:
            body = await self.breaker.call(
                self._post, "/xano/covenant-extraction/queue", payload
            )
        except ExternalServiceError:
            raise
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("xano_queue_failed", contract_id=contract_id, error=str(exc))
            raise ExternalServiceError(SERVICE_NAME, f"Failed to queue extraction job: {exc}") from exc

        job_id = body.get("job_id") if isinstance(body, dict) else None
        if not job_id:
            raise ExternalServiceError(SERVICE_NAME, "Failed to queue extraction job: no job_id")

        logger.info("xano_extraction_queued", contract_id=contract_id, job_id=str(job_id))
        return str(job_id)

    async def get_job_status(self, job_id: str) -> Optional[dict[str, Any]]:
        if not self.enabled:
            return None
        try:
            body = await self._get(f"/xano/covenant-extraction/jobs/{job_id}")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("xano_unavailable", endpoint="job_status", error=str(exc))
            return None
        return body if isinstance(body, dict) else None

    async def get_contract_status(self, contract_id: str) -> Optional[dict[str, Any]]:
        if not self.enabled:
            return None
        try:
            body = await self._get(f"/contracts/{contract_id}/covenants/extraction-status")
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("xano_unavailable", endpoint="contract_status", error=str(exc))
            return None
        return body if isinstance(body, dict) else None

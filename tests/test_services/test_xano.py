"""
Tests for the remote extraction orchestrator client.
"""

import json

import httpx
import pytest

from covenantwatch.exceptions import ExternalServiceError
from covenantwatch.schemas.extraction import JobPriority
from covenantwatch.services.xano import XanoClient


def _client(handler, **kwargs) -> XanoClient:
    kwargs.setdefault("enabled", True)
    return XanoClient(
        base_url="https://xano.test/api",
        api_key="secret",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_queue_extraction():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"job_id": 42}})

    job_id = await _client(handler).queue_extraction("contract-1", "text", JobPriority.HIGH)

    assert job_id == "42"
    assert seen["path"] == "/api/xano/covenant-extraction/queue"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {"contract_id": "contract-1", "contract_text": "text", "priority": "high"}


@pytest.mark.asyncio
async def test_queue_without_job_id_fails():
    client = _client(lambda request: httpx.Response(200, json={}))
    with pytest.raises(ExternalServiceError, match="no job_id"):
        await client.queue_extraction("contract-1", "text")


@pytest.mark.asyncio
async def test_queue_http_error_fails():
    client = _client(lambda request: httpx.Response(502))
    with pytest.raises(ExternalServiceError):
        await client.queue_extraction("contract-1", "text")


@pytest.mark.asyncio
async def test_disabled_client():
    def handler(request):
        raise AssertionError("no request expected")

    client = _client(handler, enabled=False)
    with pytest.raises(ExternalServiceError, match="disabled"):
        await client.queue_extraction("contract-1", "text")
    assert await client.get_job_status("job-1") is None


def test_enabled_requires_base_url():
    assert XanoClient(base_url="", enabled=True).enabled is False


@pytest.mark.asyncio
async def test_job_status():
    def handler(request):
        assert request.url.path == "/api/xano/covenant-extraction/jobs/job-1"
        return httpx.Response(200, json={"id": "job-1", "status": "completed"})

    assert await _client(handler).get_job_status("job-1") == {"id": "job-1", "status": "completed"}


@pytest.mark.asyncio
async def test_status_failure_degrades_to_none():
    client = _client(lambda request: httpx.Response(500))
    assert await client.get_contract_status("contract-1") is None

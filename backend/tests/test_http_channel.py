"""Tests for the worker's HTTP channel to the internal API."""

import json
from datetime import datetime, timezone

import httpx
import pytest
from tenacity import wait_none

from photostory.exceptions import JobNotFoundError, ProjectNotFoundError, TransientInfraError
from photostory.schemas.render import RenderJobUpdate
from photostory.worker.channels import INTERNAL_KEY_HEADER, HttpJobChannel

JOB_ID = "7f1c3a52-6a5e-4e8e-9a43-2a3b5c0d9e11"


def _job(status: str = "processing") -> dict:
    now = datetime.now(timezone.utc).isoformat()
    return {
        "id": JOB_ID,
        "projectId": "project-1",
        "status": status,
        "progress": 0,
        "attempts": 1,
        "createdAt": now,
        "updatedAt": now,
    }


def _channel(handler, **kwargs) -> HttpJobChannel:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpJobChannel("http://api.internal", "secret", client=client, wait=wait_none(), **kwargs)


class TestHttpJobChannel:
    @pytest.mark.asyncio
    async def test_sends_shared_secret(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_job())

        job = await _channel(handler).claim(JOB_ID)

        assert job.status == "processing"
        assert seen[0].method == "POST"
        assert seen[0].url == f"http://api.internal/api/internal/render/{JOB_ID}/claim"
        assert seen[0].headers[INTERNAL_KEY_HEADER] == "secret"

    @pytest.mark.asyncio
    async def test_claim_conflict_means_not_claimable(self):
        channel = _channel(lambda request: httpx.Response(409, json={"error": {"code": "CONFLICT"}}))

        assert await channel.claim(JOB_ID) is None

    @pytest.mark.asyncio
    async def test_claim_unknown_job(self):
        with pytest.raises(JobNotFoundError):
            await _channel(lambda request: httpx.Response(404)).claim(JOB_ID)

    @pytest.mark.asyncio
    async def test_update_sends_only_set_fields(self):
        bodies = []

        def handler(request: httpx.Request) -> httpx.Response:
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"jobId": JOB_ID, "status": "processing", "progress": 40})

        result = await _channel(handler).update(JOB_ID, RenderJobUpdate(progress=40, current_stage="Rendering"))

        assert bodies == [{"progress": 40, "currentStage": "Rendering"}]
        assert result.progress == 40
        assert not result.cancelled

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(502)
            return httpx.Response(200, json=_job("failed"))

        assert await _channel(handler).is_cancelled(JOB_ID)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_unreachable_store_is_transient(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientInfraError):
            await _channel(handler, max_attempts=2).update(JOB_ID, RenderJobUpdate(progress=10))

    @pytest.mark.asyncio
    async def test_is_cancelled(self):
        assert not await _channel(lambda request: httpx.Response(200, json=_job("processing"))).is_cancelled(JOB_ID)
        assert await _channel(lambda request: httpx.Response(404)).is_cancelled(JOB_ID)

    @pytest.mark.asyncio
    async def test_get_project(self, make_project):
        document = make_project().model_dump(mode="json", by_alias=True)

        project = await _channel(lambda request: httpx.Response(200, json=document)).get_project("project-1")

        assert project.id == "project-1"
        assert len(project.photos) == 3

    @pytest.mark.asyncio
    async def test_get_unknown_project(self):
        with pytest.raises(ProjectNotFoundError):
            await _channel(lambda request: httpx.Response(404)).get_project("missing")

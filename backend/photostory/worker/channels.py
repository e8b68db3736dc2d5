"""How a worker talks to the job status store.

ServiceJobChannel calls the job service directly (worker pool inside the API
process). HttpJobChannel goes through the internal API, authenticated with
the shared secret in the X-Internal-Key header; it is what standalone worker
processes use.
"""

import logging
from typing import Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from photostory.config import get_settings
from photostory.exceptions import JobNotFoundError, ProjectNotFoundError, TransientInfraError
from photostory.schemas.project import ProjectDocument
from photostory.schemas.render import RenderJobResponse, RenderJobUpdate, RenderUpdateResult
from photostory.services.job_service import JobService
from photostory.services.project_service import ProjectService

logger = logging.getLogger(__name__)

INTERNAL_KEY_HEADER = "X-Internal-Key"


class JobChannel(Protocol):
    async def claim(self, job_id: str) -> RenderJobResponse | None: ...

    async def update(self, job_id: str, changes: RenderJobUpdate) -> RenderUpdateResult: ...

    async def is_cancelled(self, job_id: str) -> bool: ...

    async def get_project(self, project_id: str) -> ProjectDocument: ...


class ServiceJobChannel:
    def __init__(self, jobs: JobService, projects: ProjectService):
        self.jobs = jobs
        self.projects = projects

    async def claim(self, job_id: str) -> RenderJobResponse | None:
        job = await self.jobs.claim_job(job_id)
        return RenderJobResponse.from_job(job) if job is not None else None

    async def update(self, job_id: str, changes: RenderJobUpdate) -> RenderUpdateResult:
        return await self.jobs.apply_update(job_id, changes)

    async def is_cancelled(self, job_id: str) -> bool:
        return await self.jobs.is_terminal(job_id)

    async def get_project(self, project_id: str) -> ProjectDocument:
        return await self.projects.get_document(project_id)


class _RetryableResponse(Exception):
    pass


class HttpJobChannel:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        max_attempts: int = 4,
        wait: wait_base | None = None,
    ):
        settings = get_settings()
        self.base_url = (base_url or settings.internal_api_url).rstrip("/")
        self.api_key = api_key or settings.internal_api_key
        self.max_attempts = max_attempts
        self._wait = wait or wait_exponential(multiplier=0.5, min=0.5, max=8)
        self._client = client or httpx.AsyncClient(timeout=30.0)

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = {INTERNAL_KEY_HEADER: self.api_key}
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.max_attempts),
                wait=self._wait,
                retry=retry_if_exception_type((httpx.TransportError, _RetryableResponse)),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    response = await self._client.request(method, url, headers=headers, **kwargs)
                    if response.status_code >= 500:
                        raise _RetryableResponse(f"HTTP {response.status_code}: {response.text[:200]}")
        except RetryError as e:
            raise TransientInfraError(f"Status store unreachable ({method} {path}): {e.last_attempt.exception()}") from e
        return response

    async def claim(self, job_id: str) -> RenderJobResponse | None:
        response = await self._request("POST", f"/api/internal/render/{job_id}/claim")
        if response.status_code == 409:
            return None
        if response.status_code == 404:
            raise JobNotFoundError(job_id)
        response.raise_for_status()
        return RenderJobResponse.model_validate(response.json())

    async def update(self, job_id: str, changes: RenderJobUpdate) -> RenderUpdateResult:
        response = await self._request(
            "PATCH",
            f"/api/internal/render/{job_id}",
            json=changes.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        if response.status_code == 404:
            raise JobNotFoundError(job_id)
        response.raise_for_status()
        return RenderUpdateResult.model_validate(response.json())

    async def is_cancelled(self, job_id: str) -> bool:
        response = await self._request("GET", f"/api/internal/render/{job_id}")
        if response.status_code == 404:
            return True
        response.raise_for_status()
        return RenderJobResponse.model_validate(response.json()).status in ("completed", "failed")

    async def get_project(self, project_id: str) -> ProjectDocument:
        response = await self._request("GET", f"/api/internal/projects/{project_id}")
        if response.status_code == 404:
            raise ProjectNotFoundError(project_id)
        response.raise_for_status()
        return ProjectDocument.model_validate(response.json())

    async def close(self) -> None:
        await self._client.aclose()

"""Render API endpoints.

Jobs are created pending and rendered by the worker pool; clients poll
GET /api/render/{job_id} (or watch /ws/render/{job_id}) until the status is
terminal.
"""

import logging

from fastapi import APIRouter, Query, status

from photostory.api.deps import Jobs
from photostory.schemas.render import RenderJobCreated, RenderJobList, RenderJobResponse, RenderRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/render",
    response_model=RenderJobCreated,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "A render job is already active; body carries its jobId"}},
)
async def create_render_job(render_request: RenderRequest, jobs: Jobs) -> RenderJobCreated:
    """
    Queue a render for a project.

    Returns 409 with the existing jobId when the project already has a pending
    or processing job, 404 for an unknown project and 400 when the project
    has no photos or an invalid timeline.
    """
    job = await jobs.create_job(render_request)
    return RenderJobCreated(job_id=str(job.id), status=job.status)


@router.get("/render", response_model=RenderJobList)
async def list_render_jobs(
    jobs: Jobs,
    project_id: str = Query(alias="projectId", min_length=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> RenderJobList:
    """Most recent render jobs of a project, newest first."""
    items = await jobs.list_jobs(project_id, limit=limit)
    return RenderJobList(jobs=[RenderJobResponse.from_job(j) for j in items], total=len(items))


@router.get("/render/{job_id}", response_model=RenderJobResponse)
async def get_render_job(job_id: str, jobs: Jobs) -> RenderJobResponse:
    """Poll a render job."""
    job = await jobs.get_job(job_id)
    return RenderJobResponse.from_job(job)


@router.delete("/render/{job_id}", response_model=RenderJobResponse)
async def cancel_render_job(job_id: str, jobs: Jobs) -> RenderJobResponse:
    """Cancel a job. Completed jobs cannot be cancelled (400)."""
    job = await jobs.cancel_job(job_id)
    return RenderJobResponse.from_job(job)

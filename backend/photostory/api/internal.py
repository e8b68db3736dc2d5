"""Internal worker -> status store channel.

Every route requires the shared secret in X-Internal-Key. Not part of the
user-facing API surface.
"""

from fastapi import APIRouter, HTTPException, status

from photostory.api.deps import InternalAuth, Jobs, Projects
from photostory.schemas.project import ProjectDocument
from photostory.schemas.render import RenderJobResponse, RenderJobUpdate, RenderUpdateResult

router = APIRouter(dependencies=[InternalAuth])


@router.post("/render/{job_id}/claim", response_model=RenderJobResponse)
async def claim_render_job(job_id: str, jobs: Jobs) -> RenderJobResponse:
    """Move a pending job to processing. 409 if the job is not pending."""
    job = await jobs.claim_job(job_id)
    if job is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Job is not pending")
    return RenderJobResponse.from_job(job)


@router.patch("/render/{job_id}", response_model=RenderUpdateResult)
async def update_render_job(job_id: str, changes: RenderJobUpdate, jobs: Jobs) -> RenderUpdateResult:
    """Progress or terminal update from a worker."""
    return await jobs.apply_update(job_id, changes)


@router.get("/render/{job_id}", response_model=RenderJobResponse)
async def get_render_job(job_id: str, jobs: Jobs) -> RenderJobResponse:
    job = await jobs.get_job(job_id)
    return RenderJobResponse.from_job(job)


@router.get("/projects/{project_id}", response_model=ProjectDocument, response_model_by_alias=True)
async def get_project_document(project_id: str, projects: Projects) -> ProjectDocument:
    return await projects.get_document(project_id)

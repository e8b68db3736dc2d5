from datetime import datetime
from typing import Literal

from pydantic import Field

from photostory.schemas.project import Quality, Resolution, VideoFormat
from photostory.schemas.timeline import CamelModel

JobStatus = Literal["pending", "processing", "completed", "failed"]


class RenderSettings(CamelModel):
    resolution: Resolution = "1080p"
    format: VideoFormat = "mp4"
    quality: Quality = "standard"


class RenderRequest(CamelModel):
    project_id: str = Field(min_length=1, max_length=64)
    settings: RenderSettings = Field(default_factory=RenderSettings)


class RenderJobCreated(CamelModel):
    job_id: str
    status: JobStatus = "pending"


class RenderJobResponse(CamelModel):
    id: str
    project_id: str
    status: JobStatus
    progress: int
    current_stage: str | None = None
    settings: RenderSettings | None = None
    output_url: str | None = None
    output_size: int | None = None
    error: str | None = None
    attempts: int = 0
    created_at: datetime
    updated_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_job(cls, job) -> "RenderJobResponse":
        return cls(
            id=str(job.id),
            project_id=job.project_id,
            status=job.status,
            progress=job.progress,
            current_stage=job.current_stage,
            settings=RenderSettings.model_validate(job.settings) if job.settings else None,
            output_url=job.output_url,
            output_size=job.output_size,
            error=job.error,
            attempts=job.attempts,
            created_at=job.created_at,
            updated_at=job.updated_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )


class RenderJobList(CamelModel):
    jobs: list[RenderJobResponse]
    total: int


class RenderJobUpdate(CamelModel):
    """Worker -> status store update. Unset fields are left unchanged."""

    status: JobStatus | None = None
    progress: int | None = Field(default=None, ge=0, le=100)
    current_stage: str | None = None
    output_url: str | None = None
    output_key: str | None = None
    output_size: int | None = Field(default=None, ge=0)
    error: str | None = None
    attempts: int | None = Field(default=None, ge=0)


class RenderUpdateResult(CamelModel):
    """Response to a worker update: the job's status after applying it."""

    job_id: str
    status: JobStatus
    progress: int
    cancelled: bool = False


class RenderProgress(CamelModel):
    """Push-channel message."""

    job_id: str
    status: JobStatus
    progress: int
    stage: str | None = None
    output_url: str | None = None
    error: str | None = None

"""Render job store and state machine.

    pending --claim--> processing --success--> completed
       |                   |  ^
       |                   |  +-- transient error, attempts left (back to pending)
       +------cancel-------+--failure / cancel / watchdog--> failed

Terminal jobs never change again: late worker updates for a cancelled or
timed-out job are ignored, so a cancelled job can never gain an output URL.
At most one pending/processing job exists per project; the partial unique
index enforces it and a duplicate create raises ConflictError carrying the
existing job id.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

import pydantic
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from photostory.config import get_settings
from photostory.exceptions import (
    ConflictError,
    InvalidTimelineError,
    JobAlreadyCompletedError,
    JobNotFoundError,
    NoPhotosError,
    TransientInfraError,
    ValidationError,
)
from photostory.models.render_job import ACTIVE_STATUSES, RenderJob
from photostory.queue.base import JobQueue
from photostory.schemas.project import ProjectDocument
from photostory.schemas.render import RenderJobUpdate, RenderProgress, RenderRequest, RenderUpdateResult
from photostory.services.project_service import ProjectService, ProjectStatusSink, load_project

logger = logging.getLogger(__name__)

CANCELLED = "cancelled"
TIMED_OUT = "timed out"

# (from, to) pairs a worker update may perform
ALLOWED_TRANSITIONS = {
    ("pending", "processing"),
    ("pending", "failed"),
    ("processing", "pending"),
    ("processing", "completed"),
    ("processing", "failed"),
}

JobListener = Callable[[RenderProgress], Awaitable[None]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_job_id(job_id: str | uuid.UUID) -> uuid.UUID:
    if isinstance(job_id, uuid.UUID):
        return job_id
    try:
        return uuid.UUID(str(job_id))
    except ValueError:
        raise JobNotFoundError(str(job_id)) from None


def validate_renderable(document: ProjectDocument) -> None:
    """Reject projects the pipeline cannot render. No job is created on failure."""
    if document.timeline is not None and document.timeline.tracks:
        document.timeline.validate_structure()
        if document.timeline.photo_count == 0:
            raise NoPhotosError()
    elif not document.photos:
        raise NoPhotosError()


def progress_message(job: RenderJob) -> RenderProgress:
    return RenderProgress(
        job_id=str(job.id),
        status=job.status,
        progress=job.progress,
        stage=job.current_stage,
        output_url=job.output_url,
        error=job.error,
    )


class JobService:
    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        queue: JobQueue,
        *,
        sink: ProjectStatusSink | None = None,
        listener: JobListener | None = None,
    ):
        self.session_maker = session_maker
        self.queue = queue
        self.sink = sink or ProjectService(session_maker)
        self.listener = listener

    async def _notify(self, job: RenderJob) -> None:
        if self.listener is not None:
            await self.listener(progress_message(job))

    async def _get(self, session: AsyncSession, job_id: str | uuid.UUID) -> RenderJob:
        job = await session.get(RenderJob, _parse_job_id(job_id))
        if job is None:
            raise JobNotFoundError(str(job_id))
        return job

    async def _active_job(self, session: AsyncSession, project_id: str) -> RenderJob | None:
        result = await session.execute(
            select(RenderJob)
            .where(RenderJob.project_id == project_id, RenderJob.status.in_(ACTIVE_STATUSES))
            .order_by(RenderJob.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # User-facing operations
    # ------------------------------------------------------------------

    async def create_job(self, request: RenderRequest) -> RenderJob:
        """
        Create and enqueue a render job.

        Raises:
            ProjectNotFoundError: Unknown project
            ValidationError: Project has no photos or an invalid timeline
            ConflictError: A job is already active for the project
        """
        async with self.session_maker() as session:
            project = await load_project(session, request.project_id)
            try:
                document = project.to_document()
            except pydantic.ValidationError as e:
                raise InvalidTimelineError(f"Project document is invalid: {e.error_count()} errors") from e
            validate_renderable(document)

            existing = await self._active_job(session, request.project_id)
            if existing is not None:
                raise ConflictError(str(existing.id))

            job = RenderJob(
                project_id=request.project_id,
                status="pending",
                progress=0,
                current_stage="Queued",
                settings=request.settings.model_dump(mode="json"),
                attempts=0,
            )
            session.add(job)
            try:
                await session.commit()
            except IntegrityError:
                # Lost the race against a concurrent create for the same project
                await session.rollback()
                existing = await self._active_job(session, request.project_id)
                if existing is None:
                    raise
                raise ConflictError(str(existing.id)) from None

        job_id = str(job.id)
        # Project status first: a fast worker may finish the job right after enqueue
        await self.sink.set_status(job.project_id, "processing")
        try:
            await self.queue.enqueue(job_id, job.project_id)
        except TransientInfraError as e:
            logger.error(f"[JOBS] Could not enqueue job {job_id}: {e}")
            await self._finish(job_id, "failed", error=e.message)
            await self.sink.set_status(job.project_id, "failed")
            raise

        logger.info(f"[JOBS] Created job {job_id} for project {job.project_id}")
        await self._notify(job)
        return job

    async def get_job(self, job_id: str | uuid.UUID) -> RenderJob:
        async with self.session_maker() as session:
            return await self._get(session, job_id)

    async def list_jobs(self, project_id: str, *, limit: int = 50) -> list[RenderJob]:
        async with self.session_maker() as session:
            result = await session.execute(
                select(RenderJob)
                .where(RenderJob.project_id == project_id)
                .order_by(RenderJob.created_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def cancel_job(self, job_id: str | uuid.UUID) -> RenderJob:
        """
        Cancel a job: failed("cancelled") and the project back to draft.

        Cancelling an already failed job is a no-op. The cancel only lands
        while the job is still active, so it never overwrites a completion
        that committed first.

        Raises:
            JobNotFoundError: Unknown job
            JobAlreadyCompletedError: The job already completed
        """
        async with self.session_maker() as session:
            job = await self._get(session, job_id)
            if job.status == "completed":
                raise JobAlreadyCompletedError()
            if job.status == "failed":
                return job

            result = await session.execute(
                update(RenderJob)
                .where(RenderJob.id == job.id, RenderJob.status.in_(ACTIVE_STATUSES))
                .values(status="failed", error=CANCELLED, current_stage="Cancelled", completed_at=_now())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            await session.refresh(job)
            if result.rowcount != 1:
                logger.info(f"[JOBS] Job {job.id} went {job.status} before the cancel landed")
                if job.status == "completed":
                    raise JobAlreadyCompletedError()
                return job

            # Only reset the project when no newer job has become active
            other_active = await self._active_job(session, job.project_id)

        logger.info(f"[JOBS] Cancelled job {job.id}")
        if other_active is None:
            await self.sink.set_status(job.project_id, "draft")
        else:
            logger.warning(
                f"[JOBS] Project {job.project_id} has another active job {other_active.id}; status left unchanged"
            )
        await self._notify(job)
        return job

    # ------------------------------------------------------------------
    # Worker-facing operations
    # ------------------------------------------------------------------

    async def claim_job(self, job_id: str | uuid.UUID) -> RenderJob | None:
        """Atomically move a pending job to processing. None if it was not pending."""
        job_uuid = _parse_job_id(job_id)
        async with self.session_maker() as session:
            now = _now()
            result = await session.execute(
                update(RenderJob)
                .where(RenderJob.id == job_uuid, RenderJob.status == "pending")
                .values(
                    status="processing",
                    attempts=RenderJob.attempts + 1,
                    started_at=func.coalesce(RenderJob.started_at, now),
                    current_stage="Starting render",
                    updated_at=now,
                )
            )
            await session.commit()
            if result.rowcount != 1:
                return None
            job = await self._get(session, job_uuid)
        await self._notify(job)
        return job

    async def apply_update(self, job_id: str | uuid.UUID, changes: RenderJobUpdate) -> RenderUpdateResult:
        """
        Apply a worker update.

        Updates to terminal jobs are ignored; the result tells the worker the
        job was cancelled so it can stop and discard its output.

        Raises:
            JobNotFoundError: Unknown job
            ValidationError: Illegal transition or a completion without output URL
        """
        async with self.session_maker() as session:
            job = await self._get(session, job_id)
            if job.is_terminal:
                logger.info(f"[JOBS] Ignoring update for terminal job {job.id} ({job.status})")
                return self._result(job)

            target = changes.status or job.status
            if target != job.status and (job.status, target) not in ALLOWED_TRANSITIONS:
                raise ValidationError(f"Invalid job transition {job.status} -> {target}")
            if target == "completed" and not changes.output_url:
                raise ValidationError("A completed job requires an outputUrl")
            if changes.output_url and target != "completed":
                raise ValidationError("outputUrl is only accepted with status completed")

            now = _now()
            values: dict = {"status": target}
            if changes.progress is not None:
                values["progress"] = case(
                    (RenderJob.progress < changes.progress, changes.progress), else_=RenderJob.progress
                )
            if changes.current_stage is not None:
                values["current_stage"] = changes.current_stage
            if changes.attempts is not None:
                values["attempts"] = changes.attempts
            if changes.error is not None:
                values["error"] = changes.error
            if target == "processing" and job.started_at is None:
                values["started_at"] = now
            if target == "completed":
                values.update(
                    progress=100,
                    output_url=changes.output_url,
                    output_key=changes.output_key,
                    output_size=changes.output_size,
                    error=None,
                    current_stage="Complete",
                )
            if target in ("completed", "failed"):
                values["completed_at"] = now

            # Compare-and-set on the status read above; a cancel or the
            # watchdog committing in between wins
            result = await session.execute(
                update(RenderJob)
                .where(RenderJob.id == job.id, RenderJob.status == job.status)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            await session.refresh(job)
            if result.rowcount != 1:
                logger.info(f"[JOBS] Job {job.id} changed to {job.status} under the update; ignored")
                return self._result(job)

        if target == "completed":
            await self.sink.set_status(job.project_id, "completed", job.output_url)
        elif target == "failed":
            logger.error(f"[JOBS] Job {job.id} failed: {job.error}")
            await self.sink.set_status(job.project_id, "failed")
        await self._notify(job)
        return self._result(job)

    async def is_terminal(self, job_id: str | uuid.UUID) -> bool:
        async with self.session_maker() as session:
            job = await self._get(session, job_id)
            return job.is_terminal

    async def _finish(self, job_id: str, status: str, *, error: str | None = None) -> None:
        async with self.session_maker() as session:
            job = await self._get(session, job_id)
            job.status = status
            job.error = error
            job.completed_at = _now()
            await session.commit()

    @staticmethod
    def _result(job: RenderJob) -> RenderUpdateResult:
        return RenderUpdateResult(
            job_id=str(job.id),
            status=job.status,
            progress=job.progress,
            cancelled=job.status == "failed",
        )

    # ------------------------------------------------------------------
    # Watchdog
    # ------------------------------------------------------------------

    async def expire_stale_jobs(self, now: datetime | None = None) -> list[str]:
        """Fail jobs stuck pending or processing past their budget. Returns expired job ids."""
        settings = get_settings()
        now = now or _now()
        pending_cutoff = now - timedelta(seconds=settings.render_pending_timeout_seconds)
        processing_cutoff = now - timedelta(seconds=settings.render_max_wall_clock_seconds)

        async with self.session_maker() as session:
            result = await session.execute(
                select(RenderJob).where(
                    ((RenderJob.status == "pending") & (RenderJob.created_at < pending_cutoff))
                    | ((RenderJob.status == "processing") & (RenderJob.started_at < processing_cutoff))
                )
            )
            stale = []
            for job in result.scalars().all():
                expired = await session.execute(
                    update(RenderJob)
                    .where(RenderJob.id == job.id, RenderJob.status == job.status)
                    .values(status="failed", error=TIMED_OUT, current_stage="Timed out", completed_at=now)
                    .execution_options(synchronize_session=False)
                )
                if expired.rowcount == 1:
                    stale.append(job)
            await session.commit()
            for job in stale:
                await session.refresh(job)

        for job in stale:
            logger.warning(f"[WATCHDOG] Job {job.id} exceeded its time budget; marked failed")
            await self.sink.set_status(job.project_id, "failed")
            await self._notify(job)
        return [str(job.id) for job in stale]

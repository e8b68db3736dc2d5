"""Tests for the render job store and state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from photostory.exceptions import (
    ConflictError,
    InvalidTimelineError,
    JobAlreadyCompletedError,
    JobNotFoundError,
    NoPhotosError,
    ProjectNotFoundError,
    ValidationError,
)
from photostory.schemas.render import RenderJobUpdate, RenderProgress, RenderRequest, RenderSettings
from photostory.schemas.timeline import Clip, Timeline, Track
from photostory.services.job_service import JobService
from photostory.worker.watchdog import Watchdog


def _request(project_id: str = "project-1", **settings) -> RenderRequest:
    return RenderRequest(project_id=project_id, settings=RenderSettings(**settings))


async def _complete(job_service: JobService, job_id: str, url: str = "http://testserver/out.mp4") -> None:
    await job_service.claim_job(job_id)
    await job_service.apply_update(job_id, RenderJobUpdate(status="completed", output_url=url))


class TestCreateJob:
    @pytest.mark.asyncio
    async def test_create_job_is_pending_and_enqueued(self, job_service, project_service, queue, saved_project):
        job = await job_service.create_job(_request(resolution="720p"))

        assert job.status == "pending"
        assert job.progress == 0
        assert job.settings["resolution"] == "720p"
        assert (await queue.stats())["scheduled"] == 1

        project = await project_service.get_document(saved_project.id)
        assert project.status == "processing"

    @pytest.mark.asyncio
    async def test_second_create_conflicts_with_existing_job_id(self, job_service, saved_project):
        first = await job_service.create_job(_request())

        with pytest.raises(ConflictError) as exc_info:
            await job_service.create_job(_request())

        assert exc_info.value.job_id == str(first.id)
        assert exc_info.value.to_error_info().job_id == str(first.id)

    @pytest.mark.asyncio
    async def test_new_job_allowed_after_cancel(self, job_service, saved_project):
        first = await job_service.create_job(_request())
        await job_service.cancel_job(first.id)

        second = await job_service.create_job(_request())

        assert second.id != first.id
        assert second.status == "pending"

    @pytest.mark.asyncio
    async def test_unknown_project(self, job_service):
        with pytest.raises(ProjectNotFoundError):
            await job_service.create_job(_request("missing"))

    @pytest.mark.asyncio
    async def test_project_without_photos_is_rejected(self, job_service, project_service, queue, make_project):
        await project_service.save_document(make_project("empty", photo_count=0))

        with pytest.raises(NoPhotosError):
            await job_service.create_job(_request("empty"))

        assert await job_service.list_jobs("empty") == []
        assert (await queue.stats())["scheduled"] == 0

    @pytest.mark.asyncio
    async def test_overlapping_clips_are_rejected(self, job_service, project_service, make_project):
        timeline = Timeline(
            tracks=[
                Track(
                    id="photos",
                    type="photo",
                    clips=[
                        Clip(id="a", start_time=0, end_time=3, resource_id="a.jpg"),
                        Clip(id="b", start_time=2, end_time=5, resource_id="b.jpg"),
                    ],
                )
            ]
        )
        await project_service.save_document(make_project("overlap", timeline=timeline))

        with pytest.raises(InvalidTimelineError) as exc_info:
            await job_service.create_job(_request("overlap"))

        assert exc_info.value.location.clip_id == "b"
        assert await job_service.list_jobs("overlap") == []

    @pytest.mark.asyncio
    async def test_listener_sees_created_job(self, session_maker, queue, project_service, saved_project):
        seen: list[RenderProgress] = []

        async def listener(update: RenderProgress) -> None:
            seen.append(update)

        service = JobService(session_maker, queue, sink=project_service, listener=listener)
        job = await service.create_job(_request())

        assert [m.job_id for m in seen] == [str(job.id)]
        assert seen[0].status == "pending"


class TestCancelJob:
    @pytest.mark.asyncio
    async def test_cancel_pending_job(self, job_service, project_service, saved_project):
        job = await job_service.create_job(_request())

        cancelled = await job_service.cancel_job(str(job.id))

        assert cancelled.status == "failed"
        assert cancelled.error == "cancelled"
        project = await project_service.get_document(saved_project.id)
        assert project.status == "draft"

    @pytest.mark.asyncio
    async def test_cancel_processing_job(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        cancelled = await job_service.cancel_job(job.id)

        assert cancelled.status == "failed"
        assert await job_service.is_terminal(job.id)

    @pytest.mark.asyncio
    async def test_cancel_completed_job_is_rejected(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await _complete(job_service, str(job.id))

        with pytest.raises(JobAlreadyCompletedError):
            await job_service.cancel_job(job.id)

        assert (await job_service.get_job(job.id)).status == "completed"

    @pytest.mark.asyncio
    async def test_cancel_failed_job_is_a_noop(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        await job_service.apply_update(job.id, RenderJobUpdate(status="failed", error="Encoder failed"))

        result = await job_service.cancel_job(job.id)

        assert result.status == "failed"
        assert result.error == "Encoder failed"

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, job_service):
        with pytest.raises(JobNotFoundError):
            await job_service.cancel_job("00000000-0000-0000-0000-000000000000")

    @pytest.mark.asyncio
    async def test_malformed_job_id_is_not_found(self, job_service):
        with pytest.raises(JobNotFoundError):
            await job_service.get_job("not-a-uuid")


class TestWorkerUpdates:
    @pytest.mark.asyncio
    async def test_claim_only_once(self, job_service, saved_project):
        job = await job_service.create_job(_request())

        first = await job_service.claim_job(job.id)
        second = await job_service.claim_job(job.id)

        assert first is not None
        assert first.status == "processing"
        assert first.attempts == 1
        assert first.started_at is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_progress_never_goes_backwards(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        await job_service.apply_update(job.id, RenderJobUpdate(progress=50))
        result = await job_service.apply_update(job.id, RenderJobUpdate(progress=30))

        assert result.progress == 50

    @pytest.mark.asyncio
    async def test_completion_publishes_output_url(self, job_service, project_service, saved_project):
        job = await job_service.create_job(_request())
        await _complete(job_service, str(job.id), "http://testserver/final.mp4")

        stored = await job_service.get_job(job.id)
        assert stored.status == "completed"
        assert stored.progress == 100
        assert stored.output_url == "http://testserver/final.mp4"
        assert stored.completed_at is not None

        project = await project_service.get_document(saved_project.id)
        assert project.status == "completed"

    @pytest.mark.asyncio
    async def test_completion_requires_output_url(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        with pytest.raises(ValidationError):
            await job_service.apply_update(job.id, RenderJobUpdate(status="completed"))

    @pytest.mark.asyncio
    async def test_pending_cannot_jump_to_completed(self, job_service, saved_project):
        job = await job_service.create_job(_request())

        with pytest.raises(ValidationError):
            await job_service.apply_update(
                job.id, RenderJobUpdate(status="completed", output_url="http://testserver/x.mp4")
            )

    @pytest.mark.asyncio
    async def test_late_completion_after_cancel_is_ignored(self, job_service, project_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        await job_service.cancel_job(job.id)

        result = await job_service.apply_update(
            job.id, RenderJobUpdate(status="completed", output_url="http://testserver/late.mp4")
        )

        assert result.cancelled is True
        assert result.status == "failed"
        stored = await job_service.get_job(job.id)
        assert stored.output_url is None
        assert stored.error == "cancelled"
        project = await project_service.get_document(saved_project.id)
        assert project.status == "draft"
        assert project.status != "completed"

    @pytest.mark.asyncio
    async def test_failure_marks_project_failed(self, job_service, project_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        await job_service.apply_update(job.id, RenderJobUpdate(status="failed", error="Asset could not be decoded"))

        stored = await job_service.get_job(job.id)
        assert stored.error == "Asset could not be decoded"
        project = await project_service.get_document(saved_project.id)
        assert project.status == "failed"

    @pytest.mark.asyncio
    async def test_retry_returns_job_to_pending(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        result = await job_service.apply_update(job.id, RenderJobUpdate(status="pending", error="Storage down"))
        reclaimed = await job_service.claim_job(job.id)

        assert result.status == "pending"
        assert reclaimed is not None
        assert reclaimed.attempts == 2


class TestWatchdog:
    @pytest.mark.asyncio
    async def test_expire_stale_jobs(self, job_service, project_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)

        later = datetime.now(timezone.utc) + timedelta(hours=3)
        expired = await job_service.expire_stale_jobs(later)

        assert expired == [str(job.id)]
        stored = await job_service.get_job(job.id)
        assert stored.status == "failed"
        assert stored.error == "timed out"
        project = await project_service.get_document(saved_project.id)
        assert project.status == "failed"

    @pytest.mark.asyncio
    async def test_fresh_jobs_are_left_alone(self, job_service, saved_project):
        job = await job_service.create_job(_request())

        watchdog = Watchdog(job_service, interval=60)
        expired = await watchdog.sweep()

        assert expired == []
        assert (await job_service.get_job(job.id)).status == "pending"

    @pytest.mark.asyncio
    async def test_late_update_after_timeout_is_ignored(self, job_service, saved_project):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        await job_service.expire_stale_jobs(datetime.now(timezone.utc) + timedelta(hours=3))

        result = await job_service.apply_update(job.id, RenderJobUpdate(progress=80))

        assert result.cancelled is True
        assert (await job_service.get_job(job.id)).progress < 80


def _interleave(monkeypatch, action):
    """Run ``action`` right after the next job read, before that caller writes."""
    original = JobService._get

    async def read_then_act(self, session, job_id):
        job = await original(self, session, job_id)
        monkeypatch.setattr(JobService, "_get", original)
        await action()
        return job

    monkeypatch.setattr(JobService, "_get", read_then_act)


class TestConcurrentTransitions:
    @pytest.mark.asyncio
    async def test_cancel_between_read_and_completion_wins(
        self, job_service, project_service, saved_project, monkeypatch
    ):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        _interleave(monkeypatch, lambda: job_service.cancel_job(job.id))

        result = await job_service.apply_update(
            job.id, RenderJobUpdate(status="completed", progress=100, output_url="http://testserver/out.mp4")
        )

        assert result.cancelled is True
        stored = await job_service.get_job(job.id)
        assert stored.status == "failed"
        assert stored.error == "cancelled"
        assert stored.output_url is None
        project = await project_service.get_document(saved_project.id)
        assert project.status == "draft"

    @pytest.mark.asyncio
    async def test_completion_between_read_and_cancel_wins(self, job_service, saved_project, monkeypatch):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        _interleave(
            monkeypatch,
            lambda: job_service.apply_update(
                job.id, RenderJobUpdate(status="completed", output_url="http://testserver/out.mp4")
            ),
        )

        with pytest.raises(JobAlreadyCompletedError):
            await job_service.cancel_job(job.id)

        stored = await job_service.get_job(job.id)
        assert stored.status == "completed"
        assert stored.error is None
        assert stored.output_url == "http://testserver/out.mp4"

    @pytest.mark.asyncio
    async def test_watchdog_between_read_and_progress_wins(self, job_service, saved_project, monkeypatch):
        job = await job_service.create_job(_request())
        await job_service.claim_job(job.id)
        later = datetime.now(timezone.utc) + timedelta(hours=3)
        _interleave(monkeypatch, lambda: job_service.expire_stale_jobs(later))

        result = await job_service.apply_update(job.id, RenderJobUpdate(progress=60))

        assert result.cancelled is True
        stored = await job_service.get_job(job.id)
        assert stored.status == "failed"
        assert stored.error == "timed out"
        assert stored.progress < 60

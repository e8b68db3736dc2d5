"""Tests for render progress pushed over WebSocket.

Job changes made through the job service reach every socket watching the
job, carrying the same state a poll of GET /api/render/{job_id} returns.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi import WebSocket

from photostory.api.websocket import RenderProgressNotifier, WebSocketManager, create_message
from photostory.schemas.render import RenderJobUpdate, RenderProgress, RenderRequest
from photostory.services.job_service import JobService, progress_message

OUTPUT_URL = "http://testserver/storage/files/renders/out.mp4"


def _pushed(websocket) -> list[dict]:
    return [call.args[0] for call in websocket.send_json.await_args_list]


@pytest.fixture
def manager():
    return WebSocketManager()


@pytest.fixture
def jobs(session_maker, queue, project_service, manager) -> JobService:
    return JobService(session_maker, queue, sink=project_service, listener=RenderProgressNotifier(manager))


@pytest.fixture
async def watched_job(jobs, manager, saved_project):
    """A freshly created job with one socket watching it."""
    job = await jobs.create_job(RenderRequest(project_id=saved_project.id))
    websocket = AsyncMock(spec=WebSocket)
    await manager.connect(websocket, str(job.id))
    return job, websocket


class TestJobChangesReachWatchers:
    @pytest.mark.asyncio
    async def test_render_lifecycle_pushes_progress_then_complete(self, jobs, watched_job):
        job, websocket = watched_job

        await jobs.claim_job(job.id)
        await jobs.apply_update(job.id, RenderJobUpdate(progress=40, current_stage="Rendering frames"))
        await jobs.apply_update(job.id, RenderJobUpdate(status="completed", output_url=OUTPUT_URL))

        messages = _pushed(websocket)
        assert [m["type"] for m in messages] == ["progress", "progress", "complete"]
        assert [m["status"] for m in messages] == ["processing", "processing", "completed"]
        assert [m["progress"] for m in messages] == [0, 40, 100]
        assert messages[1]["stage"] == "Rendering frames"
        assert messages[-1]["outputUrl"] == OUTPUT_URL
        assert {m["jobId"] for m in messages} == {str(job.id)}

    @pytest.mark.asyncio
    async def test_pushed_state_matches_polled_state(self, jobs, watched_job):
        job, websocket = watched_job

        await jobs.claim_job(job.id)
        await jobs.apply_update(job.id, RenderJobUpdate(progress=65, current_stage="Encoding"))

        polled = progress_message(await jobs.get_job(job.id))
        assert _pushed(websocket)[-1] == create_message(polled)

    @pytest.mark.asyncio
    async def test_cancel_pushes_cancelled(self, jobs, watched_job):
        job, websocket = watched_job

        await jobs.cancel_job(job.id)

        (message,) = _pushed(websocket)
        assert message["type"] == "cancelled"
        assert message["status"] == "failed"
        assert message["error"] == "cancelled"

    @pytest.mark.asyncio
    async def test_worker_failure_pushes_error(self, jobs, watched_job):
        job, websocket = watched_job

        await jobs.claim_job(job.id)
        await jobs.apply_update(job.id, RenderJobUpdate(status="failed", error="Encoder failed"))

        message = _pushed(websocket)[-1]
        assert message["type"] == "error"
        assert message["error"] == "Encoder failed"

    @pytest.mark.asyncio
    async def test_timeout_pushes_error(self, jobs, watched_job):
        job, websocket = watched_job
        await jobs.claim_job(job.id)

        await jobs.expire_stale_jobs(datetime.now(timezone.utc) + timedelta(hours=3))

        message = _pushed(websocket)[-1]
        assert message["type"] == "error"
        assert message["error"] == "timed out"

    @pytest.mark.asyncio
    async def test_updates_after_cancel_push_nothing(self, jobs, watched_job):
        job, websocket = watched_job
        await jobs.cancel_job(job.id)

        result = await jobs.apply_update(job.id, RenderJobUpdate(progress=80))

        assert result.cancelled is True
        assert len(_pushed(websocket)) == 1

    @pytest.mark.asyncio
    async def test_watchers_of_other_jobs_hear_nothing(self, jobs, manager, watched_job):
        job, _ = watched_job
        bystander = AsyncMock(spec=WebSocket)
        await manager.connect(bystander, "some-other-job")

        await jobs.claim_job(job.id)

        bystander.send_json.assert_not_awaited()


class TestWatcherLifecycle:
    @pytest.mark.asyncio
    async def test_every_watcher_of_a_job_hears_each_change(self, jobs, manager, watched_job):
        job, first = watched_job
        second = AsyncMock(spec=WebSocket)
        await manager.connect(second, str(job.id))

        await jobs.claim_job(job.id)

        assert _pushed(first) == _pushed(second)
        assert manager.get_connection_count(str(job.id)) == 2

    @pytest.mark.asyncio
    async def test_broken_socket_is_dropped_without_failing_the_update(self, jobs, manager, watched_job):
        job, healthy = watched_job
        broken = AsyncMock(spec=WebSocket)
        broken.send_json.side_effect = RuntimeError("socket closed")
        await manager.connect(broken, str(job.id))

        claimed = await jobs.claim_job(job.id)

        assert claimed.status == "processing"
        assert _pushed(healthy)[-1]["status"] == "processing"
        assert manager.get_connection_count(str(job.id)) == 1

    @pytest.mark.asyncio
    async def test_last_watcher_leaving_forgets_the_job(self, manager):
        websocket = AsyncMock(spec=WebSocket)
        await manager.connect(websocket, "job-1")

        manager.disconnect(websocket, "job-1")
        manager.disconnect(websocket, "job-1")

        assert manager.get_connection_count("job-1") == 0
        await manager.broadcast("job-1", {"type": "progress"})
        websocket.send_json.assert_not_awaited()


class TestMessageKinds:
    @pytest.mark.parametrize(
        "status,error,kind",
        [
            ("pending", None, "progress"),
            ("processing", None, "progress"),
            ("completed", None, "complete"),
            ("failed", "cancelled", "cancelled"),
            ("failed", "timed out", "error"),
        ],
    )
    def test_kind_follows_status(self, status, error, kind):
        message = create_message(RenderProgress(job_id="job-1", status=status, progress=10, error=error))

        assert message["type"] == kind
        assert message["jobId"] == "job-1"
        assert "outputUrl" in message

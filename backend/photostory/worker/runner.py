"""Render worker pool.

A fixed number of job slots pull from the queue. Each claimed job occupies
one slot for its whole life: fetch assets, render and encode, upload, then
report. Job starts are additionally limited per rolling window.

Failure handling per job:
- TransientInfraError: back to pending and redelivered after an exponential
  backoff, until the attempt budget is spent; then failed.
- JobCancelledError: the job went terminal under us (cancel or watchdog);
  the partial output is dropped and nothing is reported.
- Anything else: failed with the error message, never retried.
"""

import asyncio
import logging
import os
from typing import Any, Callable

from photostory.config import get_settings
from photostory.exceptions import JobCancelledError, PhotoStoryError, TransientInfraError
from photostory.queue.base import JobQueue, QueueMessage
from photostory.render.composition import StoryComposition
from photostory.render.pipeline import RenderPipeline
from photostory.schemas.render import RenderJobResponse, RenderJobUpdate
from photostory.services.asset_fetcher import AssetFetcher
from photostory.services.storage_service import StorageService, content_type_for, output_key
from photostory.services.theme_catalog import ThemeCatalog
from photostory.worker.backoff import compute_backoff
from photostory.worker.channels import JobChannel
from photostory.worker.rate_limiter import StartRateLimiter

logger = logging.getLogger(__name__)

PipelineFactory = Callable[..., RenderPipeline]


class RenderWorker:
    def __init__(
        self,
        queue: JobQueue,
        channel: JobChannel,
        themes: ThemeCatalog,
        storage: StorageService,
        fetcher: AssetFetcher,
        *,
        concurrency: int | None = None,
        rate_limiter: StartRateLimiter | None = None,
        max_attempts: int | None = None,
        backoff_base: float | None = None,
        backoff_max: float | None = None,
        poll_interval: float | None = None,
        pipeline_factory: PipelineFactory = RenderPipeline.for_project,
    ):
        settings = get_settings()
        self.queue = queue
        self.channel = channel
        self.themes = themes
        self.storage = storage
        self.fetcher = fetcher
        self.concurrency = concurrency or settings.render_concurrency
        self.rate_limiter = rate_limiter or StartRateLimiter(
            settings.render_rate_limit_max, settings.render_rate_limit_window_seconds
        )
        self.max_attempts = max_attempts or settings.render_max_attempts
        self.backoff_base = backoff_base if backoff_base is not None else settings.render_backoff_base_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.render_backoff_max_seconds
        self.poll_interval = poll_interval or settings.render_poll_interval_seconds
        self.pipeline_factory = pipeline_factory

        self._slots = asyncio.Semaphore(self.concurrency)
        self._tasks: set[asyncio.Task] = set()
        self._running = False

    @property
    def active_jobs(self) -> int:
        return len(self._tasks)

    def backoff_for(self, attempt: int) -> float:
        return compute_backoff(attempt, self.backoff_base, self.backoff_max)

    # ------------------------------------------------------------------
    # Pool loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Pull and process jobs until stop() is called."""
        self._running = True
        logger.info(f"[WORKER] Started with {self.concurrency} slots")
        while self._running:
            await self._slots.acquire()
            try:
                message = await self.queue.dequeue(timeout=self.poll_interval)
            except TransientInfraError as e:
                self._slots.release()
                logger.warning(f"[WORKER] Queue unavailable: {e}")
                await asyncio.sleep(self.poll_interval)
                continue
            if message is None:
                self._slots.release()
                continue

            await self.rate_limiter.acquire()
            task = asyncio.create_task(self._process_in_slot(message))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def stop(self) -> None:
        """Stop pulling new jobs and wait for running ones to finish."""
        self._running = False
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        logger.info("[WORKER] Stopped")

    async def _process_in_slot(self, message: QueueMessage) -> None:
        try:
            await self.process(message)
        except Exception:
            logger.exception(f"[WORKER] Unhandled error for job {message.job_id}")
        finally:
            self._slots.release()

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------

    async def process(self, message: QueueMessage) -> str:
        """Run one delivery of a job. Returns the outcome for logging and tests."""
        job = await self.channel.claim(message.job_id)
        if job is None:
            # Already cancelled, finished, or claimed by another delivery
            logger.info(f"[WORKER] Job {message.job_id} is not pending; dropping message")
            await self.queue.ack(message)
            return "skipped"

        logger.info(f"[WORKER] Job {job.id} attempt {message.attempt}/{self.max_attempts}")
        pipeline: RenderPipeline | None = None
        try:
            project = await self.channel.get_project(job.project_id)
            theme = self.themes.get(project.theme_id)
            job_settings: dict[str, Any] = job.settings.model_dump() if job.settings else {}
            pipeline = self.pipeline_factory(job.id, project, job_settings)
            pipeline.set_progress_callback(lambda progress, stage: self._report_progress(job.id, progress, stage))

            await self._report_progress(job.id, 2, "Downloading assets")
            composition = StoryComposition(project, theme)
            assets = await self.fetcher.fetch_all(composition.resource_ids(), os.path.join(pipeline.work_dir, "assets"))

            output_path = await pipeline.render(
                project, theme, assets, cancel_check=lambda: self.channel.is_cancelled(job.id)
            )
            if await self.channel.is_cancelled(job.id):
                raise JobCancelledError()

            await self._publish(job, pipeline, output_path)
            await self.queue.ack(message)
            return "completed"

        except JobCancelledError:
            logger.info(f"[WORKER] Job {job.id} cancelled; output discarded")
            await self.queue.ack(message)
            return "cancelled"

        except TransientInfraError as e:
            if message.attempt < self.max_attempts:
                delay = self.backoff_for(message.attempt)
                logger.warning(f"[WORKER] Job {job.id} attempt {message.attempt} hit a transient error: {e}. Retrying in {delay:.1f}s")
                await self.channel.update(
                    job.id,
                    RenderJobUpdate(status="pending", error=e.message, current_stage=f"Retrying in {delay:.0f}s"),
                )
                await self.queue.nack(message, delay=delay)
                return "retrying"
            logger.error(f"[WORKER] Job {job.id} failed after {message.attempt} attempts: {e}")
            await self._fail(job.id, e.message)
            await self.queue.ack(message)
            return "failed"

        except PhotoStoryError as e:
            logger.exception(f"[WORKER] Job {job.id} failed: {e.message}")
            await self._fail(job.id, e.message)
            await self.queue.ack(message)
            return "failed"

        except Exception as e:
            logger.exception(f"[WORKER] Job {job.id} failed unexpectedly")
            await self._fail(job.id, str(e) or e.__class__.__name__)
            await self.queue.ack(message)
            return "failed"

        finally:
            if pipeline is not None:
                pipeline.cleanup()

    async def _publish(self, job: RenderJobResponse, pipeline: RenderPipeline, output_path: str) -> None:
        """Upload the finished file and record its URL; undo the upload if the job was cancelled meanwhile."""
        await self._report_progress(job.id, 90, "Uploading")
        key = output_key(job.project_id, job.id, pipeline.format)
        url = await self.storage.upload_file(output_path, key, content_type_for(pipeline.format))
        result = await self.channel.update(
            job.id,
            RenderJobUpdate(
                status="completed",
                progress=100,
                output_url=url,
                output_key=key,
                output_size=os.path.getsize(output_path),
            ),
        )
        if result.status != "completed":
            self.storage.delete_file(key)
            raise JobCancelledError()
        logger.info(f"[WORKER] Job {job.id} completed: {url}")

    async def _report_progress(self, job_id: str, progress: int, stage: str) -> None:
        result = await self.channel.update(job_id, RenderJobUpdate(progress=progress, current_stage=stage))
        if result.cancelled:
            raise JobCancelledError()

    async def _fail(self, job_id: str, error: str) -> None:
        try:
            await self.channel.update(job_id, RenderJobUpdate(status="failed", error=error))
        except TransientInfraError:
            # The watchdog will fail the job once its time budget runs out
            logger.exception(f"[WORKER] Could not record failure for job {job_id}")

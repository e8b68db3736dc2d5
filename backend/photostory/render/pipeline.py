"""
Main render pipeline.

This module drives one render from a project document to an encoded file:
1. Resolve the composition (intro, photo timeline, outro)
2. Decode photo assets (corrupt files fail before encoding starts)
3. Mix audio (BGM, narration, audio tracks)
4. Resolve, rasterize and stream every frame into the encoder, in order
5. Finalize the encode

Frame work runs in a thread via asyncio.to_thread so other jobs on the same
event loop keep making progress. Cancellation is checked between frame
batches; an aborted or failed encode removes its partial output.
"""

import asyncio
import logging
import os
import shutil
import tempfile
from typing import Any, Callable, Optional

from photostory.config import get_settings
from photostory.exceptions import JobCancelledError, RenderError
from photostory.render.audio_mixer import AudioMixer, build_audio_tracks
from photostory.render.composition import StoryComposition
from photostory.render.encoder import EncoderConfig, FFmpegEncoder
from photostory.render.rasterizer import FrameRasterizer, ImageStore
from photostory.render.timing import output_dimensions
from photostory.schemas.project import ProjectDocument
from photostory.schemas.theme import Theme

logger = logging.getLogger(__name__)

# Progress bands: 0-10 preparing, 10-90 frames, 90-100 upload (reported by the worker)
PROGRESS_FRAMES_START = 10
PROGRESS_FRAMES_SPAN = 80


class RenderPipeline:
    """Renders one project to a video file."""

    def __init__(
        self,
        job_id: str,
        project_id: str,
        *,
        resolution: str = "1080p",
        format: str = "mp4",
        quality: str = "standard",
        aspect_ratio: str = "16:9",
        fps: Optional[int] = None,
        encoder_factory: Callable[[EncoderConfig, str], Any] = FFmpegEncoder,
        mixer: Optional[AudioMixer] = None,
    ):
        settings = get_settings()
        self.job_id = job_id
        self.project_id = project_id
        self.width, self.height = output_dimensions(resolution, aspect_ratio)
        self.fps = fps or settings.render_fps
        self.format = format
        self.quality = quality
        self.encoder_factory = encoder_factory
        self.mixer = mixer or AudioMixer()
        self.frames_per_batch = max(1, settings.render_progress_every_frames)
        self.ffmpeg_path = settings.ffmpeg_path
        self.ffmpeg_threads = settings.render_ffmpeg_threads
        self.audio_bitrate = settings.render_audio_bitrate

        self.work_dir = tempfile.mkdtemp(prefix=f"photostory_render_{job_id}_")
        self.output_dir = os.path.join(self.work_dir, "output")
        os.makedirs(self.output_dir, exist_ok=True)

        self._progress_callback: Any = None
        self._cancel_check: Optional[Callable[[], Any]] = None

    @classmethod
    def for_project(cls, job_id: str, project: ProjectDocument, job_settings: dict[str, Any], **kwargs) -> "RenderPipeline":
        """Pipeline using the job's settings, falling back to the project's."""
        return cls(
            job_id,
            project.id,
            resolution=job_settings.get("resolution") or project.settings.resolution,
            format=job_settings.get("format") or project.settings.format,
            quality=job_settings.get("quality") or project.settings.quality,
            aspect_ratio=project.settings.aspect_ratio,
            fps=project.settings.fps,
            **kwargs,
        )

    @property
    def output_path(self) -> str:
        return os.path.join(self.output_dir, f"{self.job_id}.{self.format}")

    def set_progress_callback(self, callback: Any) -> None:
        """Set callback for progress updates: callback(progress, stage), sync or async."""
        self._progress_callback = callback

    async def _update_progress(self, progress: int, stage: str) -> None:
        if self._progress_callback:
            result = self._progress_callback(progress, stage)
            if asyncio.iscoroutine(result):
                await result

    async def _is_cancelled(self) -> bool:
        """Check if render has been cancelled."""
        if self._cancel_check is None:
            return False
        result = self._cancel_check()
        if asyncio.iscoroutine(result):
            return await result
        return result

    async def render(
        self,
        project: ProjectDocument,
        theme: Theme,
        assets: dict[str, str],  # resource_id -> local file path
        cancel_check: Optional[Callable[[], Any]] = None,
    ) -> str:
        """
        Execute the full render pipeline.

        Args:
            project: Project document to render
            theme: Theme resolved for the project
            assets: Map of resource ids to local file paths
            cancel_check: Optional callable (sync or async) returning True if cancelled

        Returns:
            Path to the rendered video inside the pipeline's work directory

        Raises:
            JobCancelledError: If the job was cancelled between frame batches
            RenderError: Corrupt asset or encoder failure
        """
        self._cancel_check = cancel_check
        await self._update_progress(5, "Preparing render")

        composition = StoryComposition(project, theme)
        if composition.duration <= 0:
            raise RenderError("Video duration must be greater than 0")

        photo_ids = set(composition.photo_resource_ids)
        for track in composition.timeline.tracks:
            if track.is_visual:
                photo_ids.update(c.resource_id for c in track.clips if c.resource_id)
        images = ImageStore(
            {rid: path for rid, path in assets.items() if rid in photo_ids},
            max_size=(self.width * 2, self.height * 2),
        )
        await asyncio.to_thread(images.preload)

        if await self._is_cancelled():
            raise JobCancelledError()

        audio_path = await self._mix_audio(composition, assets)

        if await self._is_cancelled():
            raise JobCancelledError()

        await self._update_progress(PROGRESS_FRAMES_START, "Rendering frames")
        rasterizer = FrameRasterizer(self.width, self.height, theme, images)
        encoder = self.encoder_factory(
            EncoderConfig(
                width=self.width,
                height=self.height,
                fps=self.fps,
                format=self.format,
                quality=self.quality,
                audio_path=audio_path,
                ffmpeg_path=self.ffmpeg_path,
                threads=self.ffmpeg_threads,
                audio_bitrate=self.audio_bitrate,
            ),
            self.output_path,
        )

        total_frames = composition.frame_count(self.fps)
        logger.info(
            f"[RENDER] Job {self.job_id}: {total_frames} frames at {self.width}x{self.height}@{self.fps} "
            f"({composition.duration:.2f}s, {self.format}/{self.quality})"
        )

        await asyncio.to_thread(encoder.start)
        try:
            for batch_start in range(0, total_frames, self.frames_per_batch):
                if await self._is_cancelled():
                    raise JobCancelledError()
                batch_end = min(batch_start + self.frames_per_batch, total_frames)
                await asyncio.to_thread(self._render_batch, composition, rasterizer, encoder, batch_start, batch_end)
                await self._update_progress(
                    PROGRESS_FRAMES_START + int(PROGRESS_FRAMES_SPAN * batch_end / total_frames),
                    "Rendering frames",
                )
            await asyncio.to_thread(encoder.finish)
        except BaseException:
            encoder.abort()
            raise

        return self.output_path

    def _render_batch(
        self,
        composition: StoryComposition,
        rasterizer: FrameRasterizer,
        encoder: Any,
        start: int,
        end: int,
    ) -> None:
        for frame in range(start, end):
            state = composition.at(frame, self.fps)
            encoder.write_frame(rasterizer.render_bytes(state))

    async def _mix_audio(self, composition: StoryComposition, assets: dict[str, str]) -> str | None:
        tracks = build_audio_tracks(composition, assets)
        if not tracks:
            return None
        audio_path = os.path.join(self.work_dir, "audio.wav")
        duration_ms = int(round(composition.duration * 1000))
        return await asyncio.to_thread(self.mixer.mix_tracks, tracks, audio_path, duration_ms)

    def cleanup(self) -> None:
        """Remove the work directory, including any rendered output."""
        shutil.rmtree(self.work_dir, ignore_errors=True)

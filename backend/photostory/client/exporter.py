"""Client-side preview/export renderer.

A self-contained alternative to the server pipeline for quick previews. It
loads the photos, paints a simplified story frame by frame and streams the
frames into a local encoder.

States:
    idle -> preparing -> recording -> processing -> done
                 \\            \\            \\
                  +------------+------------+--> error

cancel() returns to idle and discards the output; stop() ends recording
early and keeps what was recorded. From done or error, reset() goes back to
idle so the export can be started again.
"""

import asyncio
import logging
import os
import tempfile
from typing import Awaitable, Callable, Literal

from PIL import Image, ImageOps

from photostory.client.encoder import LocalStreamingEncoder, StreamingEncoder
from photostory.client.painter import PreviewPainter
from photostory.client.scene import PreviewTiming, canvas_size, preview_frame
from photostory.config import get_settings
from photostory.exceptions import PhotoStoryError
from photostory.render.encoder import EncoderConfig
from photostory.render.rasterizer import placeholder_image
from photostory.render.timing import frame_count
from photostory.schemas.project import Photo, ProjectDocument
from photostory.services.asset_fetcher import AssetFetcher

logger = logging.getLogger(__name__)

ExportState = Literal["idle", "preparing", "recording", "processing", "done", "error"]

LOADING_SPAN = 30
FRAMES_START = 30
FRAMES_SPAN = 65

ImageLoader = Callable[[Photo], Awaitable[Image.Image]]
EncoderFactory = Callable[[int, int, int, str], StreamingEncoder]
StateListener = Callable[[ExportState, int], None]


def default_encoder_factory(width: int, height: int, fps: int, output_path: str) -> StreamingEncoder:
    settings = get_settings()
    config = EncoderConfig(
        width=width,
        height=height,
        fps=fps,
        format="webm",
        quality="draft",
        ffmpeg_path=settings.ffmpeg_path,
        threads=settings.render_ffmpeg_threads,
    )
    return LocalStreamingEncoder(config, output_path)


class PreviewExporter:
    def __init__(
        self,
        project: ProjectDocument,
        *,
        output_path: str | None = None,
        fps: int = 30,
        timing: PreviewTiming | None = None,
        image_loader: ImageLoader | None = None,
        fetcher: AssetFetcher | None = None,
        encoder_factory: EncoderFactory = default_encoder_factory,
        on_change: StateListener | None = None,
    ):
        self.project = project
        self.fps = fps
        self.timing = timing or PreviewTiming.for_project(project)
        self.output_path = output_path or os.path.join(tempfile.gettempdir(), f"photostory-{project.id}.webm")
        self.image_loader = image_loader or self._fetch_image
        self.fetcher = fetcher
        self.encoder_factory = encoder_factory
        self.on_change = on_change
        self.width, self.height = canvas_size(project.settings.aspect_ratio)

        self.state: ExportState = "idle"
        self.progress = 0
        self.error_message: str | None = None
        self.result_path: str | None = None
        self.failed_photos: list[str] = []

        self._encoder: StreamingEncoder | None = None
        self._stop_requested = False
        self._cancel_requested = False
        self._asset_dir: tempfile.TemporaryDirectory | None = None

    @property
    def photos(self) -> list[Photo]:
        return self.project.ordered_photos

    @property
    def duration(self) -> float:
        return self.timing.total(len(self.photos))

    @property
    def total_frames(self) -> int:
        return frame_count(self.duration, self.fps)

    def _set(self, state: ExportState, progress: int | None = None) -> None:
        self.state = state
        if progress is not None:
            self.progress = progress
        if self.on_change is not None:
            self.on_change(self.state, self.progress)

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    async def start(self) -> str | None:
        """Run the export. Returns the output path, or None if cancelled or failed."""
        if self.state != "idle":
            raise RuntimeError(f"Export can only start from idle (state: {self.state})")

        self._stop_requested = False
        self._cancel_requested = False
        self.error_message = None
        self.result_path = None
        self.failed_photos = []

        if not self.photos:
            self.error_message = "Project has no photos"
            self._set("error", 0)
            return None

        try:
            self._set("preparing", 0)
            images = await self._load_images()
            if self._cancel_requested:
                self._set("idle", 0)
                return None

            self._set("recording", LOADING_SPAN)
            self._encoder = self.encoder_factory(self.width, self.height, self.fps, self.output_path)
            await self._encoder.start()
            await self._record(images)
            if self._cancel_requested:
                self._set("idle", 0)
                return None

            self._set("processing")
            output = await self._encoder.finish()
            if self._cancel_requested:
                os.remove(output)
                self._set("idle", 0)
                return None
            self.result_path = output
            self._set("done", 100)
            return self.result_path
        except (PhotoStoryError, OSError) as e:
            logger.error(f"[EXPORT] Export of {self.project.id} failed: {e}")
            self.error_message = str(e)
            self._set("error")
            return None
        finally:
            await self._release()

    def stop(self) -> None:
        """Finish early with the frames recorded so far."""
        if self.state in ("preparing", "recording"):
            self._stop_requested = True

    def cancel(self) -> None:
        """Abort and discard the output."""
        if self.state in ("preparing", "recording", "processing"):
            self._cancel_requested = True

    def reset(self) -> None:
        if self.state in ("preparing", "recording", "processing"):
            raise RuntimeError("Cannot reset a running export")
        self.progress = 0
        self.error_message = None
        self._set("idle")

    # ------------------------------------------------------------------
    # Work
    # ------------------------------------------------------------------

    async def _load_images(self) -> list[Image.Image]:
        images: list[Image.Image] = []
        photos = self.photos
        for i, photo in enumerate(photos):
            if self._cancel_requested:
                break
            try:
                images.append(await self.image_loader(photo))
            except (PhotoStoryError, OSError) as e:
                logger.warning(f"[EXPORT] Failed to load photo {photo.id}: {e}")
                self.failed_photos.append(photo.id)
                images.append(placeholder_image())
            self._set("preparing", int((i + 1) / len(photos) * LOADING_SPAN))
        return images

    async def _record(self, images: list[Image.Image]) -> None:
        painter = PreviewPainter(
            self.width,
            self.height,
            title=self.project.title or self.project.intro.title,
            message=self.project.outro.message,
        )
        total = self.total_frames
        for frame_index in range(total):
            if self._cancel_requested or self._stop_requested:
                logger.info(f"[EXPORT] Recording ended at frame {frame_index}/{total}")
                return
            frame = preview_frame(frame_index / self.fps, len(images), self.timing)
            await self._encoder.write_frame(painter.paint_bytes(frame, images))
            progress = FRAMES_START + int((frame_index + 1) / total * FRAMES_SPAN)
            if progress != self.progress:
                self._set("recording", progress)
            # Let stop/cancel and other tasks run between frames
            await asyncio.sleep(0)

    async def _fetch_image(self, photo: Photo) -> Image.Image:
        if self.fetcher is None:
            self.fetcher = AssetFetcher()
        if self._asset_dir is None:
            self._asset_dir = tempfile.TemporaryDirectory(prefix="photostory-export-")
        path = await self.fetcher.fetch(photo.resource_id, self._asset_dir.name)
        with Image.open(path) as opened:
            return ImageOps.exif_transpose(opened).convert("RGB")

    async def _release(self) -> None:
        if self._encoder is not None:
            encoder = self._encoder
            self._encoder = None
            await encoder.close()
        if self._asset_dir is not None:
            self._asset_dir.cleanup()
            self._asset_dir = None

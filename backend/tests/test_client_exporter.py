"""Tests for the client-side preview exporter."""

import os

import pytest
from PIL import Image

from photostory.client.exporter import PreviewExporter
from photostory.client.painter import PreviewPainter, contain_size
from photostory.client.scene import PreviewFrame, PreviewTiming
from photostory.exceptions import EncoderError

TIMING = PreviewTiming(intro_seconds=0.5, per_photo_seconds=0.5, outro_seconds=0.5, fade_seconds=0.1)


class RecordingEncoder:
    """StreamingEncoder that keeps frame sizes instead of running ffmpeg."""

    def __init__(self, width: int, height: int, fps: int, output_path: str, *, fail_on_finish: bool = False):
        self.frame_size = width * height * 3
        self.output_path = output_path
        self.fail_on_finish = fail_on_finish
        self.frames = 0
        self.closed = False

    async def start(self) -> None:
        pass

    async def write_frame(self, frame: bytes) -> None:
        assert len(frame) == self.frame_size
        self.frames += 1

    async def finish(self) -> str:
        if self.fail_on_finish:
            raise EncoderError("Encoding failed (exit 1)")
        with open(self.output_path, "wb") as f:
            f.write(b"webm")
        return self.output_path

    async def close(self) -> None:
        self.closed = True


async def _solid_image(photo) -> Image.Image:
    return Image.new("RGB", (64, 48), "#0984E3")


@pytest.fixture
def encoders() -> list[RecordingEncoder]:
    return []


@pytest.fixture
def exporter_for(make_project, tmp_path, encoders):
    def _make(photo_count: int = 3, *, fail_on_finish: bool = False, image_loader=_solid_image, on_change=None):
        def factory(width, height, fps, output_path):
            encoder = RecordingEncoder(width, height, fps, output_path, fail_on_finish=fail_on_finish)
            encoders.append(encoder)
            return encoder

        return PreviewExporter(
            make_project(photo_count=photo_count),
            output_path=str(tmp_path / "preview.webm"),
            fps=10,
            timing=TIMING,
            image_loader=image_loader,
            encoder_factory=factory,
            on_change=on_change,
        )

    return _make


class TestExport:
    @pytest.mark.asyncio
    async def test_export_reaches_done(self, exporter_for, encoders):
        states = []
        exporter = exporter_for(on_change=lambda state, progress: states.append((state, progress)))

        result = await exporter.start()

        assert result == exporter.output_path
        assert os.path.exists(result)
        assert exporter.state == "done"
        assert exporter.progress == 100
        assert encoders[0].frames == exporter.total_frames == 25
        assert encoders[0].closed

        order = [s for s, _ in states]
        assert order[0] == "preparing"
        assert order.index("recording") < order.index("processing") < order.index("done")
        progress = [p for _, p in states]
        assert progress == sorted(progress)

    def test_canvas_follows_aspect_ratio(self, exporter_for):
        exporter = exporter_for()

        assert (exporter.width, exporter.height) == (1280, 720)

    @pytest.mark.asyncio
    async def test_failed_photo_gets_placeholder(self, exporter_for):
        async def loader(photo):
            if photo.id == "photo-1":
                raise OSError("cannot identify image file")
            return await _solid_image(photo)

        exporter = exporter_for(image_loader=loader)

        assert await exporter.start() is not None
        assert exporter.state == "done"
        assert exporter.failed_photos == ["photo-1"]

    @pytest.mark.asyncio
    async def test_no_photos_is_an_error(self, exporter_for, encoders):
        exporter = exporter_for(photo_count=0)

        assert await exporter.start() is None
        assert exporter.state == "error"
        assert exporter.error_message == "Project has no photos"
        assert encoders == []

    @pytest.mark.asyncio
    async def test_encoder_failure_and_restart(self, exporter_for):
        exporter = exporter_for(fail_on_finish=True)

        assert await exporter.start() is None
        assert exporter.state == "error"
        assert "Encoding failed" in exporter.error_message

        with pytest.raises(RuntimeError):
            await exporter.start()

        exporter.reset()
        assert exporter.state == "idle"
        assert exporter.progress == 0

    @pytest.mark.asyncio
    async def test_cancel_returns_to_idle(self, exporter_for, encoders):
        exporter = None

        def on_change(state, progress):
            if state == "recording" and progress > 40:
                exporter.cancel()

        exporter = exporter_for(on_change=on_change)

        assert await exporter.start() is None
        assert exporter.state == "idle"
        assert exporter.progress == 0
        assert not os.path.exists(exporter.output_path)
        assert encoders[0].frames < exporter.total_frames
        assert encoders[0].closed

    @pytest.mark.asyncio
    async def test_stop_keeps_recorded_frames(self, exporter_for, encoders):
        exporter = None

        def on_change(state, progress):
            if state == "recording" and progress > 40:
                exporter.stop()

        exporter = exporter_for(on_change=on_change)

        assert await exporter.start() == exporter.output_path
        assert exporter.state == "done"
        assert 0 < encoders[0].frames < exporter.total_frames


class TestPainter:
    def test_contain_size(self):
        assert contain_size((200, 100), (100, 100)) == (100, 50)
        assert contain_size((100, 200), (100, 100)) == (50, 100)
        assert contain_size((100, 100), (200, 100), scale=1.1) == (110, 110)

    @pytest.mark.parametrize(
        "frame",
        [
            PreviewFrame("intro", 0.5, alpha=1.0),
            PreviewFrame("photos", 0.5, photo_index=0, scale=1.02, alpha=0.5),
            PreviewFrame("outro", 1.0),
        ],
    )
    def test_frames_have_canvas_size(self, frame):
        painter = PreviewPainter(320, 180, title="Trip", message="Bye")

        image = painter.paint(frame, [Image.new("RGB", (64, 48), "red")])

        assert image.size == (320, 180)
        assert len(painter.paint_bytes(frame, [Image.new("RGB", (64, 48), "red")])) == 320 * 180 * 3

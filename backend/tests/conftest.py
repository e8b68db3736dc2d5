"""
Pytest fixtures for photostory backend tests.

Everything runs against an in-memory SQLite database, the in-process queue
and local storage under tmp_path. Photos are small images generated with
Pillow, so no test data directory is needed.

Tests that shell out to ffmpeg are marked with @pytest.mark.requires_ffmpeg
and skipped when the binary is not on PATH.
"""

import os
import shutil
from pathlib import Path

import pytest
from PIL import Image

from photostory.config import Settings
from photostory.models.database import create_engine_for, create_session_maker, init_db
from photostory.queue.memory import InMemoryJobQueue
from photostory.schemas.project import IntroConfig, OutroConfig, Photo, ProjectDocument, ProjectSettings
from photostory.services.job_service import JobService
from photostory.services.project_service import ProjectService
from photostory.services.storage_service import LocalStorageService
from photostory.services.theme_catalog import StaticThemeCatalog

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PHOTO_COLORS = ["#E17055", "#00B894", "#0984E3", "#FDCB6E", "#6C5CE7"]


def pytest_collection_modifyitems(config, items):
    if shutil.which("ffmpeg"):
        return
    skip = pytest.mark.skip(reason="ffmpeg not available")
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(skip)


class FakeClock:
    """Monotonic clock the test advances by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeEncoder:
    """In-memory stand-in for FFmpegEncoder with the same call sequence."""

    instances: list["FakeEncoder"] = []

    def __init__(self, config, output_path: str):
        self.config = config
        self.output_path = output_path
        self.frames: list[int] = []
        self.started = False
        self.finished = False
        self.aborted = False
        FakeEncoder.instances.append(self)

    def start(self) -> None:
        self.started = True

    def write_frame(self, frame: bytes) -> None:
        assert len(frame) == self.config.frame_size
        self.frames.append(len(frame))

    def finish(self) -> str:
        with open(self.output_path, "wb") as f:
            f.write(b"\x00" * 1024)
        self.finished = True
        return self.output_path

    def abort(self) -> None:
        self.aborted = True
        if os.path.exists(self.output_path) and not self.finished:
            os.remove(self.output_path)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def reset_fake_encoders():
    FakeEncoder.instances.clear()
    yield
    FakeEncoder.instances.clear()


@pytest.fixture
def photo_dir(tmp_path: Path) -> Path:
    """Directory with a handful of small solid-colour JPEGs."""
    directory = tmp_path / "photos"
    directory.mkdir()
    for i, color in enumerate(PHOTO_COLORS):
        Image.new("RGB", (160, 120), color).save(directory / f"photo{i}.jpg", "JPEG")
    return directory


@pytest.fixture
def make_project(photo_dir: Path):
    """Factory for project documents whose photos point at local image files."""

    def _make(project_id: str = "project-1", photo_count: int = 3, **overrides) -> ProjectDocument:
        photos = [
            Photo(id=f"photo-{i}", resource_id=str(photo_dir / f"photo{i % len(PHOTO_COLORS)}.jpg"), order=i)
            for i in range(photo_count)
        ]
        data = {
            "id": project_id,
            "title": "Summer Trip",
            "theme_id": "default",
            "photos": photos,
            "intro": IntroConfig(title="Summer Trip", subtitle="2026", duration=1.0),
            "outro": OutroConfig(message="Thanks for watching", duration=1.0),
            "settings": ProjectSettings(fps=24, resolution="720p", photo_duration=1.0),
        }
        data.update(overrides)
        return ProjectDocument(**data)

    return _make


@pytest.fixture
async def engine():
    engine = create_engine_for(TEST_DATABASE_URL)
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture
def queue(fake_clock) -> InMemoryJobQueue:
    return InMemoryJobQueue(visibility_timeout=600.0, clock=fake_clock)


@pytest.fixture
def project_service(session_maker) -> ProjectService:
    return ProjectService(session_maker)


@pytest.fixture
def job_service(session_maker, queue, project_service) -> JobService:
    return JobService(session_maker, queue, sink=project_service)


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorageService:
    settings = Settings(
        local_storage_path=str(tmp_path / "storage"),
        local_storage_base_url="http://testserver/storage/files",
    )
    return LocalStorageService(settings)


@pytest.fixture
def themes() -> StaticThemeCatalog:
    return StaticThemeCatalog()


@pytest.fixture
async def saved_project(project_service, make_project) -> ProjectDocument:
    return await project_service.save_document(make_project())

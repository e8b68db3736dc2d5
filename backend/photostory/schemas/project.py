"""Project aggregate as seen by the render pipeline.

The project itself is owned elsewhere; rendering only reads this document
and reports back through the project status sink.
"""

from typing import Literal

from pydantic import Field, field_validator

from photostory.schemas.timeline import (
    CamelModel,
    KenBurnsConfig,
    PhotoFilters,
    TextOverlay,
    Timeline,
)

ProjectStatus = Literal["draft", "editing", "processing", "completed", "failed"]
AspectRatio = Literal["16:9", "9:16", "1:1", "4:3"]
Resolution = Literal["720p", "1080p", "4k"]
VideoFormat = Literal["mp4", "webm", "mov"]
Quality = Literal["draft", "standard", "high"]
ParticleType = Literal[
    "confetti", "hearts", "stars", "bubbles", "snow", "petals", "sparkle", "firefly",
    "fireworks", "balloons",
]


class ProjectSettings(CamelModel):
    aspect_ratio: AspectRatio = "16:9"
    fps: int = 30
    resolution: Resolution = "1080p"
    format: VideoFormat = "mp4"
    quality: Quality = "standard"
    photo_duration: float = Field(default=4.0, gt=0.0, le=60.0)
    transition_duration: float | None = Field(default=None, ge=0.0, le=10.0)

    @field_validator("fps")
    @classmethod
    def validate_fps(cls, v: int) -> int:
        if v not in (24, 25, 30, 60):
            raise ValueError(f"Unsupported fps: {v}")
        return v


class Range(CamelModel):
    min: float
    max: float


class ParticleConfig(CamelModel):
    type: ParticleType = "confetti"
    count: int = Field(default=50, ge=0, le=500)
    size: Range = Field(default_factory=lambda: Range(min=6, max=14))
    speed: Range = Field(default_factory=lambda: Range(min=1, max=3))
    colors: list[str] = Field(
        default_factory=lambda: ["#FF6B6B", "#4ECDC4", "#FFE66D", "#95E1D3", "#DDA0DD"]
    )
    direction: Literal["up", "down", "left", "right", "random"] = "down"
    seed: int = 42


class Photo(CamelModel):
    id: str
    resource_id: str
    order: int = 0
    duration: float | None = Field(default=None, gt=0.0)
    effect: str | None = None
    transition: str | None = None
    transition_duration: float | None = Field(default=None, ge=0.0)
    ken_burns: KenBurnsConfig | None = None
    filters: PhotoFilters | None = None
    text_overlay: TextOverlay | None = None


class IntroConfig(CamelModel):
    style: str | None = None
    title: str = ""
    subtitle: str | None = None
    date: str | None = None
    duration: float = Field(default=5.0, ge=0.0, le=30.0)
    particles: ParticleConfig | None = None


class OutroConfig(CamelModel):
    style: str | None = None
    message: str = ""
    sub_message: str | None = None
    credits: list[str] = Field(default_factory=list)
    show_photos: bool = True
    duration: float = Field(default=5.0, ge=0.0, le=30.0)
    particles: ParticleConfig | None = None


class AudioConfig(CamelModel):
    """Background music spanning the whole video."""

    bgm_resource_id: str | None = None
    volume: float = Field(default=0.5, ge=0.0, le=2.0)
    fade_in: float = Field(default=2.0, ge=0.0)
    fade_out: float = Field(default=2.0, ge=0.0)


class NarrationSegment(CamelModel):
    resource_id: str
    start_time: float = Field(ge=0.0)
    end_time: float = Field(ge=0.0)
    text: str | None = None


class NarrationConfig(CamelModel):
    segments: list[NarrationSegment] = Field(default_factory=list)
    volume: float = Field(default=1.0, ge=0.0, le=2.0)


class Subtitle(CamelModel):
    text: str
    start_time: float = Field(ge=0.0)
    end_time: float = Field(ge=0.0)


class ProjectDocument(CamelModel):
    id: str
    title: str = ""
    theme_id: str = "default"
    status: ProjectStatus = "draft"
    settings: ProjectSettings = Field(default_factory=ProjectSettings)
    photos: list[Photo] = Field(default_factory=list)
    timeline: Timeline | None = None
    audio: AudioConfig | None = None
    narration: NarrationConfig | None = None
    subtitles: list[Subtitle] = Field(default_factory=list)
    intro: IntroConfig = Field(default_factory=IntroConfig)
    outro: OutroConfig = Field(default_factory=OutroConfig)

    @property
    def ordered_photos(self) -> list[Photo]:
        return sorted(self.photos, key=lambda p: p.order)

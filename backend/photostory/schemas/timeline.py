"""Timeline model: tracks of time-bounded clips.

Pure data. Structural invariants are checked by ``Timeline.validate_structure``
when a render is requested, so the resolver can assume a well-formed timeline.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from photostory.exceptions import InvalidTimelineError
from photostory.utils.interpolation import get_easing_function

TrackType = Literal["photo", "audio", "narration", "subtitle", "overlay"]

VISUAL_TRACK_TYPES: tuple[str, ...] = ("photo", "overlay")
AUDIO_TRACK_TYPES: tuple[str, ...] = ("audio", "narration")

# Boundaries closer than this are treated as touching
TIME_EPSILON = 1e-6


class CamelModel(BaseModel):
    """Accepts both snake_case and camelCase input; serializes as camelCase."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


class FocalPoint(CamelModel):
    x: float = Field(default=0.5, ge=0.0, le=1.0)
    y: float = Field(default=0.5, ge=0.0, le=1.0)


class KenBurnsConfig(CamelModel):
    """Slow pan/zoom over a still image. Scales below 1 would expose the frame edge."""

    start_scale: float = Field(default=1.0, ge=1.0)
    end_scale: float = Field(default=1.1, ge=1.0)
    start_position: FocalPoint = Field(default_factory=FocalPoint)
    end_position: FocalPoint = Field(default_factory=FocalPoint)
    easing: str = "ease_in_out"

    @field_validator("easing")
    @classmethod
    def validate_easing(cls, v: str) -> str:
        get_easing_function(v)
        return v


class PhotoFilters(CamelModel):
    """CSS-like filter values. Percentages use 100 as identity."""

    brightness: float = Field(default=100, ge=0, le=300)
    contrast: float = Field(default=100, ge=0, le=300)
    saturation: float = Field(default=100, ge=0, le=300)
    blur: float = Field(default=0, ge=0, le=50)
    grayscale: float = Field(default=0, ge=0, le=100)
    sepia: float = Field(default=0, ge=0, le=100)
    hue: float = Field(default=0, ge=-360, le=360)
    vignette: float = Field(default=0, ge=0, le=100)

    @property
    def is_identity(self) -> bool:
        return self == PhotoFilters()


class TextOverlay(CamelModel):
    text: str
    position: Literal["top", "center", "bottom"] = "bottom"
    font_size: int = Field(default=48, ge=8, le=400)
    font_family: str | None = None
    color: str = "#FFFFFF"
    background_color: str | None = None


class TransitionSpec(CamelModel):
    """How a clip enters from its predecessor. Duration in seconds."""

    type: str = "fade"
    duration: float = Field(default=1.0, ge=0.0, le=10.0)


class ClipProperties(CamelModel):
    # Visual clips
    effect: str | None = None  # Ken Burns preset id
    transition: TransitionSpec | None = None
    ken_burns: KenBurnsConfig | None = None
    filters: PhotoFilters | None = None
    text_overlay: TextOverlay | None = None

    # Audio / narration clips
    volume: float = Field(default=1.0, ge=0.0, le=2.0)
    fade_in: float = Field(default=0.0, ge=0.0)
    fade_out: float = Field(default=0.0, ge=0.0)
    source_offset: float = Field(default=0.0, ge=0.0)

    # Subtitle clips
    text: str | None = None


class Clip(CamelModel):
    id: str
    start_time: float = Field(ge=0.0)
    end_time: float = Field(ge=0.0)
    resource_id: str | None = None
    properties: ClipProperties = Field(default_factory=ClipProperties)

    @property
    def duration(self) -> float:
        return self.end_time - self.start_time

    def contains(self, t: float) -> bool:
        """Half-open [start, end) membership."""
        return self.start_time <= t < self.end_time


class Track(CamelModel):
    id: str
    type: TrackType
    clips: list[Clip] = Field(default_factory=list)
    muted: bool = False
    volume: float = Field(default=1.0, ge=0.0, le=2.0)

    @property
    def is_visual(self) -> bool:
        return self.type in VISUAL_TRACK_TYPES

    @property
    def is_audio(self) -> bool:
        return self.type in AUDIO_TRACK_TYPES

    @property
    def end_time(self) -> float:
        return self.clips[-1].end_time if self.clips else 0.0


class Timeline(CamelModel):
    tracks: list[Track] = Field(default_factory=list)

    @property
    def duration(self) -> float:
        """Seconds until the last clip of any track ends."""
        return max((track.end_time for track in self.tracks), default=0.0)

    def tracks_of(self, *types: str) -> list[Track]:
        return [track for track in self.tracks if track.type in types]

    @property
    def photo_count(self) -> int:
        return sum(len(track.clips) for track in self.tracks_of("photo"))

    def validate_structure(self) -> "Timeline":
        """Check clip invariants.

        Raises:
            InvalidTimelineError: zero-length or inverted clips, overlapping or
                out-of-order clips, or visual clips without a resource.
        """
        for track_index, track in enumerate(self.tracks):
            previous: Clip | None = None
            for clip in track.clips:
                if clip.end_time - clip.start_time <= TIME_EPSILON:
                    raise InvalidTimelineError(
                        f"Clip '{clip.id}' has zero or negative length "
                        f"({clip.start_time}s to {clip.end_time}s)",
                        clip_id=clip.id,
                        track_index=track_index,
                    )
                if track.is_visual or track.is_audio:
                    if not clip.resource_id:
                        raise InvalidTimelineError(
                            f"Clip '{clip.id}' on {track.type} track has no resourceId",
                            clip_id=clip.id,
                            track_index=track_index,
                        )
                if track.type == "subtitle" and not clip.properties.text:
                    raise InvalidTimelineError(
                        f"Subtitle clip '{clip.id}' has no text",
                        clip_id=clip.id,
                        track_index=track_index,
                    )
                if previous is not None and clip.start_time < previous.end_time - TIME_EPSILON:
                    raise InvalidTimelineError(
                        f"Clip '{clip.id}' overlaps or precedes '{previous.id}' "
                        f"in track '{track.id}'",
                        clip_id=clip.id,
                        track_index=track_index,
                    )
                previous = clip
        return self

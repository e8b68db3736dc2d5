"""Simplified three-phase story state for quick previews.

No transitions, no themes: an intro card, each photo with a slight zoom and
a short fade in and out, then an outro card. The length comes from the same
story timing the server pipeline uses.
"""

from dataclasses import dataclass
from typing import Literal

from photostory.render.timing import photo_seconds, story_section_seconds, total_duration_seconds
from photostory.schemas.project import ProjectDocument

PreviewPhase = Literal["intro", "photos", "outro"]

CANVAS_SIZES: dict[str, tuple[int, int]] = {
    "16:9": (1280, 720),
    "9:16": (720, 1280),
    "1:1": (1080, 1080),
    "4:3": (1280, 960),
}

KEN_BURNS_ZOOM = 0.05


@dataclass(frozen=True)
class PreviewTiming:
    intro_seconds: float = 3.0
    per_photo_seconds: float = 4.0
    outro_seconds: float = 3.0
    fade_seconds: float = 0.5
    # Per-photo overrides in story order; photos past the end use per_photo_seconds
    photo_seconds: tuple[float, ...] = ()

    @classmethod
    def for_project(cls, project: ProjectDocument, fade_seconds: float = 0.5) -> "PreviewTiming":
        """Timing whose total matches the server render of ``project``."""
        if project.timeline is not None and project.timeline.tracks:
            # Explicit timelines: spread the photo section evenly over the photos
            count = len(project.photos)
            section = story_section_seconds(project)
            return cls(
                intro_seconds=project.intro.duration,
                per_photo_seconds=section / count if count else project.settings.photo_duration,
                outro_seconds=project.outro.duration,
                fade_seconds=fade_seconds,
            )
        return cls(
            intro_seconds=project.intro.duration,
            per_photo_seconds=project.settings.photo_duration,
            outro_seconds=project.outro.duration,
            fade_seconds=fade_seconds,
            photo_seconds=tuple(photo_seconds(project)),
        )

    def spans(self, photo_count: int) -> list[float]:
        return [
            self.photo_seconds[i] if i < len(self.photo_seconds) else self.per_photo_seconds
            for i in range(photo_count)
        ]

    def total(self, photo_count: int) -> float:
        if not self.photo_seconds:
            return total_duration_seconds(self.intro_seconds, photo_count, self.per_photo_seconds, self.outro_seconds)
        return self.intro_seconds + sum(self.spans(photo_count)) + self.outro_seconds


@dataclass(frozen=True)
class PreviewFrame:
    phase: PreviewPhase
    progress: float  # 0..1 within the phase (within the photo for "photos")
    photo_index: int = -1
    scale: float = 1.0
    alpha: float = 1.0


def canvas_size(aspect_ratio: str) -> tuple[int, int]:
    return CANVAS_SIZES.get(aspect_ratio, CANVAS_SIZES["4:3"])


def preview_frame(t: float, photo_count: int, timing: PreviewTiming | None = None) -> PreviewFrame:
    """Preview state at playback time t (seconds)."""
    timing = timing or PreviewTiming()
    if t < timing.intro_seconds:
        progress = t / timing.intro_seconds if timing.intro_seconds > 0 else 1.0
        # Title fades in over the first half of the intro
        return PreviewFrame("intro", progress, alpha=min(1.0, progress * 2))

    spans = timing.spans(photo_count)
    photos_end = timing.intro_seconds + sum(spans)
    if t < photos_end:
        elapsed = t - timing.intro_seconds
        index = 0
        start = 0.0
        while index < photo_count - 1 and elapsed >= start + spans[index]:
            start += spans[index]
            index += 1
        span = spans[index]
        in_photo = elapsed - start
        p = min(1.0, in_photo / span)

        alpha = 1.0
        fade = min(timing.fade_seconds, span / 2)
        if fade > 0:
            if in_photo < fade:
                alpha = in_photo / fade
            elif in_photo > span - fade:
                alpha = (span - in_photo) / fade
        return PreviewFrame(
            "photos",
            p,
            photo_index=index,
            scale=1.0 + p * KEN_BURNS_ZOOM,
            alpha=max(0.0, min(1.0, alpha)),
        )

    progress = (t - photos_end) / timing.outro_seconds if timing.outro_seconds > 0 else 1.0
    progress = min(1.0, progress)
    return PreviewFrame("outro", progress, alpha=progress * 2 if progress < 0.5 else 1.0)

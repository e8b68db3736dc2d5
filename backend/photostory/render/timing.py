"""Story timing shared by the server pipeline and the client exporter.

Both renderers derive the video length from the same formula so a project
always has one duration regardless of where it is rendered:

    total = intro + photo_count * per_photo + outro

Per-photo duration overrides replace the product with a sum, and an
explicit timeline contributes the end of its photo clips.
"""

import math

from photostory.schemas.project import ProjectDocument
from photostory.schemas.theme import Theme
from photostory.schemas.timeline import Clip, ClipProperties, Timeline, Track, TransitionSpec

RESOLUTIONS: dict[str, tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4k": (3840, 2160),
}


def total_duration_seconds(
    intro_seconds: float,
    photo_count: int,
    per_photo_seconds: float,
    outro_seconds: float,
) -> float:
    return intro_seconds + photo_count * per_photo_seconds + outro_seconds


def frame_count(duration_seconds: float, fps: int) -> int:
    """Number of frames needed to cover duration_seconds."""
    return max(0, math.ceil(duration_seconds * fps - 1e-9))


def output_dimensions(resolution: str, aspect_ratio: str) -> tuple[int, int]:
    """Pixel size for a resolution preset adjusted to an aspect ratio.

    The preset width is kept; 9:16 swaps the axes. Both sides are rounded
    down to even numbers for yuv420p encoders.
    """
    width, height = RESOLUTIONS.get(resolution, RESOLUTIONS["1080p"])
    if aspect_ratio == "9:16":
        width, height = height, width
    elif aspect_ratio == "1:1":
        height = width
    elif aspect_ratio == "4:3":
        height = int(width * 0.75)
    return width - width % 2, height - height % 2


def build_story_timeline(project: ProjectDocument, theme: Theme) -> Timeline:
    """Timeline for the photo section of a project.

    An explicit project timeline wins. Otherwise photos are laid end to end
    using each photo's duration or the project's per-photo duration, with the
    theme's default transition and Ken Burns effect filling unset properties.
    """
    if project.timeline is not None and project.timeline.tracks:
        return project.timeline

    settings = project.settings
    transition_seconds = (
        settings.transition_duration
        if settings.transition_duration is not None
        else theme.default_transition_duration
    )

    photo_clips: list[Clip] = []
    cursor = 0.0
    for photo, duration in zip(project.ordered_photos, photo_seconds(project)):
        photo_clips.append(
            Clip(
                id=photo.id,
                start_time=cursor,
                end_time=cursor + duration,
                resource_id=photo.resource_id,
                properties=ClipProperties(
                    effect=photo.effect or theme.default_effect,
                    transition=TransitionSpec(
                        type=photo.transition or theme.default_transition,
                        duration=(
                            photo.transition_duration
                            if photo.transition_duration is not None
                            else transition_seconds
                        ),
                    ),
                    ken_burns=photo.ken_burns,
                    filters=photo.filters,
                    text_overlay=photo.text_overlay,
                ),
            )
        )
        cursor += duration

    tracks = [Track(id="photos", type="photo", clips=photo_clips)]

    if project.narration and project.narration.segments:
        segments = sorted(project.narration.segments, key=lambda s: s.start_time)
        tracks.append(
            Track(
                id="narration",
                type="narration",
                volume=project.narration.volume,
                clips=[
                    Clip(
                        id=f"narration-{i}",
                        start_time=seg.start_time,
                        end_time=seg.end_time,
                        resource_id=seg.resource_id,
                        properties=ClipProperties(text=seg.text),
                    )
                    for i, seg in enumerate(segments)
                ],
            )
        )

    if project.subtitles:
        subtitles = sorted(project.subtitles, key=lambda s: s.start_time)
        tracks.append(
            Track(
                id="subtitles",
                type="subtitle",
                clips=[
                    Clip(
                        id=f"subtitle-{i}",
                        start_time=sub.start_time,
                        end_time=sub.end_time,
                        properties=ClipProperties(text=sub.text),
                    )
                    for i, sub in enumerate(subtitles)
                ],
            )
        )

    return Timeline(tracks=tracks)


def photo_seconds(project: ProjectDocument) -> list[float]:
    """On-screen seconds of each photo, in story order."""
    return [photo.duration or project.settings.photo_duration for photo in project.ordered_photos]


def photo_section_seconds(timeline: Timeline) -> float:
    """Where the last photo clip ends.

    Narration or subtitle clips running past this point are cut off by the
    outro; they never lengthen the video.
    """
    return max((track.end_time for track in timeline.tracks_of("photo")), default=0.0)


def story_section_seconds(project: ProjectDocument) -> float:
    if project.timeline is not None and project.timeline.tracks:
        return photo_section_seconds(project.timeline)
    return sum(photo_seconds(project))


def story_duration(project: ProjectDocument) -> float:
    """Total seconds of a project's video, whichever renderer produces it."""
    return project.intro.duration + story_section_seconds(project) + project.outro.duration

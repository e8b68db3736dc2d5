"""Whole-video composition: intro, photo timeline, outro.

The photo timeline starts at zero; the composition shifts it by the intro
length and appends the outro. Background music spans the whole video.
"""

from dataclasses import dataclass
from typing import Literal

from photostory.render.animations import SequenceState, resolve_intro, resolve_outro
from photostory.render.resolver import AudioState, RenderState, fade_envelope, resolve_at
from photostory.render.timing import build_story_timeline, frame_count, photo_section_seconds
from photostory.schemas.project import ProjectDocument
from photostory.schemas.theme import Theme

Phase = Literal["intro", "photos", "outro"]


@dataclass(frozen=True)
class FrameState:
    frame: int
    time: float
    phase: Phase
    sequence: SequenceState | None = None
    story: RenderState | None = None
    audio: tuple[AudioState, ...] = ()
    is_terminal: bool = False


class StoryComposition:
    """Per-render view of a project with precomputed timing."""

    def __init__(self, project: ProjectDocument, theme: Theme):
        self.project = project
        self.theme = theme
        self.timeline = build_story_timeline(project, theme)
        self.intro_duration = project.intro.duration
        self.story_duration = photo_section_seconds(self.timeline)
        self.outro_duration = project.outro.duration
        self.duration = self.intro_duration + self.story_duration + self.outro_duration
        self.photo_resource_ids = [p.resource_id for p in project.ordered_photos]

    @property
    def story_start(self) -> float:
        return self.intro_duration

    @property
    def outro_start(self) -> float:
        return self.intro_duration + self.story_duration

    def frame_count(self, fps: int) -> int:
        return frame_count(self.duration, fps)

    def resource_ids(self) -> set[str]:
        """Every resource a full render needs."""
        ids = set(self.photo_resource_ids)
        for track in self.timeline.tracks:
            ids.update(c.resource_id for c in track.clips if c.resource_id)
        audio = self.project.audio
        if audio and audio.bgm_resource_id:
            ids.add(audio.bgm_resource_id)
        return ids

    def _bgm(self, t: float) -> tuple[AudioState, ...]:
        audio = self.project.audio
        if audio is None or not audio.bgm_resource_id:
            return ()
        gain = fade_envelope(t, self.duration, audio.fade_in, audio.fade_out)
        return (
            AudioState(
                track_id="bgm",
                track_type="audio",
                clip_id="bgm",
                resource_id=audio.bgm_resource_id,
                source_time=t,
                volume=audio.volume * gain,
            ),
        )

    def at_time(self, t: float, *, frame: int = 0) -> FrameState:
        t = max(0.0, t)
        if t >= self.duration:
            return self._terminal(frame, t)

        if t < self.intro_duration:
            sequence = resolve_intro(t, self.project.intro, self.theme, self.photo_resource_ids)
            return FrameState(frame=frame, time=t, phase="intro", sequence=sequence, audio=self._bgm(t))

        if t < self.outro_start:
            story = resolve_at(t - self.story_start, self.timeline, self.theme, frame=frame)
            return FrameState(
                frame=frame,
                time=t,
                phase="photos",
                story=story,
                audio=self._bgm(t) + story.audio,
            )

        sequence = resolve_outro(t - self.outro_start, self.project.outro, self.theme, self.photo_resource_ids)
        return FrameState(frame=frame, time=t, phase="outro", sequence=sequence, audio=self._bgm(t))

    def at(self, frame: int, fps: int) -> FrameState:
        frame = max(0, frame)
        return self.at_time(frame / fps, frame=frame)

    def _terminal(self, frame: int, t: float) -> FrameState:
        if self.outro_duration > 0:
            sequence = resolve_outro(self.outro_duration, self.project.outro, self.theme, self.photo_resource_ids)
            return FrameState(frame=frame, time=t, phase="outro", sequence=sequence, is_terminal=True)
        if self.story_duration > 0:
            story = resolve_at(self.story_duration, self.timeline, self.theme, frame=frame)
            return FrameState(frame=frame, time=t, phase="photos", story=story, is_terminal=True)
        sequence = resolve_intro(self.intro_duration, self.project.intro, self.theme, self.photo_resource_ids)
        return FrameState(frame=frame, time=t, phase="intro", sequence=sequence, is_terminal=True)


def resolve_composition(frame: int, fps: int, project: ProjectDocument, theme: Theme) -> FrameState:
    """Resolved state of the full video at a frame index."""
    return StoryComposition(project, theme).at(frame, fps)

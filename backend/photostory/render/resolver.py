"""Frame state resolver.

``resolve(frame, fps, timeline, theme)`` is a pure function from a frame index
to everything needed to draw and mix that frame: visible layers with their
Ken Burns crop and transition style, active audio clips with volumes, and
subtitles. No retained scene graph; the rasterizer consumes the result.

Out-of-range frames never raise: negative frames clamp to frame 0 and frames
past the end return the frozen final state of the last visual clip.
"""

import bisect
from dataclasses import dataclass, field

from photostory.render.transitions import (
    StylePatch,
    TransitionDirection,
    apply_transition,
    normalize_transition_id,
)
from photostory.schemas.theme import Theme
from photostory.schemas.timeline import (
    TIME_EPSILON,
    Clip,
    FocalPoint,
    KenBurnsConfig,
    PhotoFilters,
    Timeline,
    Track,
    TransitionSpec,
)
from photostory.utils.interpolation import (
    clamp,
    ease_out,
    get_easing_function,
    interpolate,
    lerp,
)

TEXT_OVERLAY_FADE_SECONDS = 0.5
TEXT_OVERLAY_RISE_PX = 20.0
SUBTITLE_FADE_SECONDS = 0.3
SUBTITLE_RISE_PX = 20.0
PHOTO_FADE_IN_SECONDS = 0.5


def _preset(start_scale, end_scale, start, end) -> KenBurnsConfig:
    return KenBurnsConfig(
        start_scale=start_scale,
        end_scale=end_scale,
        start_position=FocalPoint(x=start[0], y=start[1]),
        end_position=FocalPoint(x=end[0], y=end[1]),
    )


KEN_BURNS_PRESETS: dict[str, KenBurnsConfig] = {
    "kenburns-zoom-in": _preset(1.0, 1.15, (0.5, 0.5), (0.5, 0.5)),
    "kenburns-zoom-out": _preset(1.15, 1.0, (0.5, 0.5), (0.5, 0.5)),
    "kenburns-pan-left": _preset(1.1, 1.1, (0.6, 0.5), (0.4, 0.5)),
    "kenburns-pan-right": _preset(1.1, 1.1, (0.4, 0.5), (0.6, 0.5)),
    "kenburns-pan-up": _preset(1.1, 1.1, (0.5, 0.6), (0.5, 0.4)),
    "kenburns-pan-down": _preset(1.1, 1.1, (0.5, 0.4), (0.5, 0.6)),
    "kenburns-diagonal-tl": _preset(1.15, 1.0, (0.6, 0.6), (0.4, 0.4)),
    "kenburns-diagonal-tr": _preset(1.15, 1.0, (0.4, 0.6), (0.6, 0.4)),
    "kenburns-diagonal-bl": _preset(1.15, 1.0, (0.6, 0.4), (0.4, 0.6)),
    "kenburns-diagonal-br": _preset(1.15, 1.0, (0.4, 0.4), (0.6, 0.6)),
}
DEFAULT_KEN_BURNS = _preset(1.0, 1.1, (0.5, 0.5), (0.5, 0.5))
STATIC_KEN_BURNS = _preset(1.0, 1.0, (0.5, 0.5), (0.5, 0.5))


def ken_burns_for_effect(effect: str | None) -> KenBurnsConfig:
    """Preset lookup. "static"/"none" disable motion; unknown ids get a gentle zoom."""
    if effect in ("static", "none"):
        return STATIC_KEN_BURNS
    if effect:
        for preset_id, preset in KEN_BURNS_PRESETS.items():
            # Effects like "kenburns-zoom-in+vignette" still match their preset
            if effect.startswith(preset_id):
                return preset
    return DEFAULT_KEN_BURNS


# =============================================================================
# Resolved state
# =============================================================================


@dataclass(frozen=True)
class KenBurnsTransform:
    """Zoom and pan for one frame.

    crop is the visible window in normalized image coordinates
    (left, top, right, bottom), always inside [0, 1].
    """

    scale: float
    focal_x: float
    focal_y: float
    crop: tuple[float, float, float, float]

    @property
    def translate_x(self) -> float:
        """Horizontal shift of the image in percent of the frame width."""
        center = (self.crop[0] + self.crop[2]) / 2
        return (0.5 - center) * self.scale * 100

    @property
    def translate_y(self) -> float:
        center = (self.crop[1] + self.crop[3]) / 2
        return (0.5 - center) * self.scale * 100


@dataclass(frozen=True)
class TextOverlayState:
    text: str
    position: str
    font_size: int
    color: str
    background_color: str | None
    opacity: float
    offset_y: float  # px, positive is down


@dataclass(frozen=True)
class LayerState:
    track_id: str
    track_type: str
    clip_id: str
    resource_id: str | None
    local_progress: float
    ken_burns: KenBurnsTransform | None
    style: StylePatch = field(default_factory=StylePatch)
    filters: PhotoFilters | None = None
    vignette: bool = False
    text_overlay: TextOverlayState | None = None
    transition_id: str | None = None
    direction: TransitionDirection | None = None
    transition_progress: float | None = None


@dataclass(frozen=True)
class AudioState:
    track_id: str
    track_type: str
    clip_id: str
    resource_id: str | None
    source_time: float  # seconds into the source media
    volume: float


@dataclass(frozen=True)
class SubtitleState:
    clip_id: str
    text: str
    opacity: float
    offset_y: float


@dataclass(frozen=True)
class RenderState:
    frame: int
    time: float
    layers: tuple[LayerState, ...] = ()
    audio: tuple[AudioState, ...] = ()
    subtitles: tuple[SubtitleState, ...] = ()
    is_terminal: bool = False


# =============================================================================
# Helpers
# =============================================================================


def local_progress(clip: Clip, t: float) -> float:
    """Position of t inside clip, clamped to [0, 1]."""
    span = clip.end_time - clip.start_time
    if span <= 0:
        return 1.0
    return clamp((t - clip.start_time) / span)


def resolve_ken_burns(config: KenBurnsConfig, progress: float) -> KenBurnsTransform:
    """Scale and focal point at progress, as a crop window that never leaves the image."""
    eased = get_easing_function(config.easing)(clamp(progress))
    scale = max(1.0, lerp(config.start_scale, config.end_scale, eased))
    focal_x = lerp(config.start_position.x, config.end_position.x, eased)
    focal_y = lerp(config.start_position.y, config.end_position.y, eased)

    window = 1.0 / scale
    left = clamp(focal_x - window / 2, 0.0, 1.0 - window)
    top = clamp(focal_y - window / 2, 0.0, 1.0 - window)
    return KenBurnsTransform(
        scale=scale,
        focal_x=focal_x,
        focal_y=focal_y,
        crop=(left, top, left + window, top + window),
    )


def fade_envelope(local_t: float, duration: float, fade_in: float, fade_out: float) -> float:
    gain = 1.0
    if fade_in > 0:
        gain = min(gain, clamp(local_t / fade_in))
    if fade_out > 0:
        gain = min(gain, clamp((duration - local_t) / fade_out))
    return gain


def _in_out_opacity(local_t: float, duration: float, fade: float) -> float:
    fade = min(fade, duration / 4)
    if fade <= 0:
        return 1.0
    return interpolate(local_t, [0, fade, duration - fade, duration], [0, 1, 1, 0])


def _text_overlay_state(clip: Clip, local_t: float) -> TextOverlayState | None:
    overlay = clip.properties.text_overlay
    if overlay is None:
        return None
    fade = min(TEXT_OVERLAY_FADE_SECONDS, clip.duration / 4)
    offset = (
        interpolate(local_t, [0, fade], [TEXT_OVERLAY_RISE_PX, 0], easing=ease_out)
        if fade > 0
        else 0.0
    )
    return TextOverlayState(
        text=overlay.text,
        position=overlay.position,
        font_size=overlay.font_size,
        color=overlay.color,
        background_color=overlay.background_color,
        opacity=_in_out_opacity(local_t, clip.duration, TEXT_OVERLAY_FADE_SECONDS),
        offset_y=offset,
    )


def _transition_for(clip: Clip, theme: Theme) -> TransitionSpec:
    if clip.properties.transition is not None:
        return clip.properties.transition
    return TransitionSpec(type=theme.default_transition, duration=theme.default_transition_duration)


def _transition_window(
    outgoing: Clip, incoming: Clip, theme: Theme
) -> tuple[str, float, float] | None:
    """(transition id, window start, window length) for a clip boundary, if any.

    Only time-adjacent clips blend. The window is centred on the boundary and
    never longer than either clip.
    """
    if abs(incoming.start_time - outgoing.end_time) > TIME_EPSILON:
        return None
    spec = _transition_for(incoming, theme)
    transition_id = normalize_transition_id(spec.type)
    length = min(spec.duration, outgoing.duration, incoming.duration)
    if transition_id == "none" or length <= TIME_EPSILON:
        return None
    return transition_id, incoming.start_time - length / 2, length


def _find_clip_index(track: Track, t: float) -> int | None:
    starts = [clip.start_time for clip in track.clips]
    idx = bisect.bisect_right(starts, t) - 1
    if idx >= 0 and track.clips[idx].contains(t):
        return idx
    return None


def _visual_layer(
    track: Track,
    clip: Clip,
    t: float,
    theme: Theme,
    *,
    style: StylePatch | None = None,
    transition_id: str | None = None,
    direction: TransitionDirection | None = None,
    transition_progress: float | None = None,
) -> LayerState:
    progress = local_progress(clip, t)
    local_t = clamp(t - clip.start_time, 0.0, clip.duration)
    effect = clip.properties.effect or (theme.default_effect if track.type == "photo" else None)

    ken_burns = None
    if track.type == "photo":
        config = clip.properties.ken_burns or ken_burns_for_effect(effect)
        ken_burns = resolve_ken_burns(config, progress)

    filters = clip.properties.filters
    vignette = bool((effect and "vignette" in effect) or (filters and filters.vignette > 0))

    return LayerState(
        track_id=track.id,
        track_type=track.type,
        clip_id=clip.id,
        resource_id=clip.resource_id,
        local_progress=progress,
        ken_burns=ken_burns,
        style=style or StylePatch(),
        filters=filters,
        vignette=vignette,
        text_overlay=_text_overlay_state(clip, local_t),
        transition_id=transition_id,
        direction=direction,
        transition_progress=transition_progress,
    )


def _resolve_visual_track(track: Track, t: float, theme: Theme) -> list[LayerState]:
    clips = track.clips
    if not clips:
        return []

    idx = _find_clip_index(track, t)
    candidates: list[tuple[int, int]] = []
    if idx is not None:
        if idx > 0:
            candidates.append((idx - 1, idx))
        if idx + 1 < len(clips):
            candidates.append((idx, idx + 1))

    for out_idx, in_idx in candidates:
        window = _transition_window(clips[out_idx], clips[in_idx], theme)
        if window is None:
            continue
        transition_id, start, length = window
        if start <= t < start + length:
            p = clamp((t - start) / length)
            outgoing = _visual_layer(
                track, clips[out_idx], t, theme,
                style=apply_transition(transition_id, p, TransitionDirection.OUT),
                transition_id=transition_id,
                direction=TransitionDirection.OUT,
                transition_progress=p,
            )
            incoming = _visual_layer(
                track, clips[in_idx], t, theme,
                style=apply_transition(transition_id, p, TransitionDirection.IN),
                transition_id=transition_id,
                direction=TransitionDirection.IN,
                transition_progress=p,
            )
            # Incoming draws on top
            return [outgoing, incoming]

    if idx is None:
        return []

    clip = clips[idx]
    style = None
    # Photos not blended in by a transition fade up from the background
    if track.type == "photo" and (idx == 0 or _transition_window(clips[idx - 1], clip, theme) is None):
        fade = min(PHOTO_FADE_IN_SECONDS, clip.duration / 4)
        if fade > 0 and t - clip.start_time < fade:
            style = StylePatch(opacity=clamp((t - clip.start_time) / fade))
    return [_visual_layer(track, clip, t, theme, style=style)]


def _resolve_audio_track(track: Track, t: float) -> list[AudioState]:
    if track.muted:
        return []
    idx = _find_clip_index(track, t)
    if idx is None:
        return []
    clip = track.clips[idx]
    props = clip.properties
    local_t = t - clip.start_time
    gain = fade_envelope(local_t, clip.duration, props.fade_in, props.fade_out)
    return [
        AudioState(
            track_id=track.id,
            track_type=track.type,
            clip_id=clip.id,
            resource_id=clip.resource_id,
            source_time=props.source_offset + local_t,
            volume=track.volume * props.volume * gain,
        )
    ]


def _resolve_subtitle_track(track: Track, t: float) -> list[SubtitleState]:
    idx = _find_clip_index(track, t)
    if idx is None:
        return []
    clip = track.clips[idx]
    local_t = t - clip.start_time
    fade = min(SUBTITLE_FADE_SECONDS, clip.duration / 4)
    offset = interpolate(local_t, [0, fade], [SUBTITLE_RISE_PX, 0], easing=ease_out) if fade > 0 else 0.0
    return [
        SubtitleState(
            clip_id=clip.id,
            text=clip.properties.text or "",
            opacity=_in_out_opacity(local_t, clip.duration, SUBTITLE_FADE_SECONDS),
            offset_y=offset,
        )
    ]


def _terminal_state(frame: int, t: float, timeline: Timeline, theme: Theme) -> RenderState:
    """Frozen last frame: the last visual track's last clip at progress 1."""
    for track in reversed(timeline.tracks):
        if track.is_visual and track.clips:
            clip = track.clips[-1]
            layer = _visual_layer(track, clip, clip.end_time, theme)
            return RenderState(frame=frame, time=t, layers=(layer,), is_terminal=True)
    return RenderState(frame=frame, time=t, is_terminal=True)


# =============================================================================
# Public API
# =============================================================================


def resolve_at(t: float, timeline: Timeline, theme: Theme, *, frame: int = 0) -> RenderState:
    """Resolve the timeline at an absolute time in seconds."""
    t = max(0.0, t)
    duration = timeline.duration
    if t >= duration:
        return _terminal_state(frame, t, timeline, theme)

    layers: list[LayerState] = []
    audio: list[AudioState] = []
    subtitles: list[SubtitleState] = []
    for track in timeline.tracks:
        if track.is_visual:
            layers.extend(_resolve_visual_track(track, t, theme))
        elif track.is_audio:
            audio.extend(_resolve_audio_track(track, t))
        elif track.type == "subtitle":
            subtitles.extend(_resolve_subtitle_track(track, t))

    return RenderState(
        frame=frame,
        time=t,
        layers=tuple(layers),
        audio=tuple(audio),
        subtitles=tuple(subtitles),
    )


def resolve(frame: int, fps: int, timeline: Timeline, theme: Theme) -> RenderState:
    """Resolved visual/audio state of the timeline at a frame index."""
    frame = max(0, frame)
    return resolve_at(frame / fps, timeline, theme, frame=frame)

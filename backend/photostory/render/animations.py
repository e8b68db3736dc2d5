"""Intro and outro sequences.

Each variant is a pure function of the offset (seconds) into its sequence and
produces a SequenceState: positioned text/photo/shape elements, container
motion, overlays and particles. Text is keyed to fixed delay checkpoints so
every variant reveals content in the same order:

    intro:  title 0.5s, subtitle 1.5s, date 2.5s
    outro:  message 0.5s, sub-message 1.5s

Theme categories restrict which variants may be used; an unknown or
disallowed variant id resolves to the category's first entry.
"""

import json
import math
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Callable, Sequence

from photostory.render.particles import ParticleState, ParticleSystem
from photostory.schemas.project import IntroConfig, OutroConfig, ParticleConfig, Range
from photostory.schemas.theme import Theme, ThemeColors
from photostory.utils.interpolation import (
    back,
    clamp,
    ease_in,
    ease_in_out,
    ease_out,
    lerp,
    linear,
    spring,
)

TITLE_DELAY = 0.5
SUBTITLE_DELAY = 1.5
DATE_DELAY = 2.5
MESSAGE_DELAY = 0.5
SUB_MESSAGE_DELAY = 1.5

APPEAR_SECONDS = 1.0
INTRO_EXIT_SECONDS = 0.5
OUTRO_ENTER_SECONDS = 0.5
OUTRO_EXIT_SECONDS = 1.0

DEFAULT_INTRO = "fade-zoom"
DEFAULT_OUTRO = "fade-out"

THEME_INTRO_MAPPING: dict[str, list[str]] = {
    "graduation": ["cinematic", "typewriter", "photo-stack", "elegant-fade"],
    "wedding": ["elegant-fade", "particles", "curtain", "floating"],
    "birthday": ["bounce", "explosion", "particles", "neon-glow"],
    "baby": ["floating", "particles", "wave", "elegant-fade"],
    "travel": ["dynamic-zoom", "slide-up", "photo-stack", "cinematic"],
    "business": ["slide-up", "reveal", "typewriter", "cinematic"],
    "memorial": ["elegant-fade", "fade-zoom", "floating", "cinematic"],
    "sports": ["dynamic-zoom", "explosion", "glitch", "split"],
    "holiday": ["particles", "bounce", "wave", "explosion"],
}

THEME_OUTRO_MAPPING: dict[str, list[str]] = {
    "graduation": ["scroll-credits", "photo-collage", "timeline", "fireworks"],
    "wedding": ["heart-gather", "polaroid-stack", "flower-bloom", "fade-out"],
    "birthday": ["confetti", "balloon", "fireworks", "photo-collage"],
    "baby": ["memories", "polaroid-stack", "heart-gather", "fade-out"],
    "travel": ["photo-collage", "mosaic", "flying-photos", "timeline"],
    "business": ["fade-out", "zoom-out", "scroll-credits", "thank-you"],
    "memorial": ["fade-out", "memories", "timeline", "sunset"],
    "sports": ["fireworks", "photo-collage", "confetti", "zoom-out"],
    "holiday": ["confetti", "fireworks", "photo-collage", "wave-goodbye"],
}


# =============================================================================
# State
# =============================================================================


@dataclass(frozen=True)
class ElementState:
    """One drawable element of a sequence.

    x/y are the element centre in percent of the frame; translate_* are
    pixels at a 1080p reference height. reveal is the visible fraction for
    wipe-in text (typewriter, handwriting). Photo elements carry a
    resource_id and a width in percent of the frame width.
    """

    name: str
    text: str | None = None
    resource_id: str | None = None
    opacity: float = 1.0
    x: float = 50.0
    y: float = 50.0
    width: float | None = None
    translate_x: float = 0.0
    translate_y: float = 0.0
    scale: float = 1.0
    rotate: float = 0.0
    rotate_y: float = 0.0
    letter_spacing: float = 0.0
    reveal: float = 1.0
    glow: float = 0.0
    blur: float = 0.0


@dataclass(frozen=True)
class SequenceState:
    kind: str
    variant: str
    offset: float
    duration: float
    background_color: str
    elements: tuple[ElementState, ...] = ()
    particles: tuple[ParticleState, ...] = ()
    container_scale: float = 1.0
    container_rotate_y: float = 0.0
    letterbox: float = 0.0
    curtain_open: float = 1.0
    tint: str | None = None
    tint_opacity: float = 0.0
    overlay_color: str | None = None
    overlay_opacity: float = 0.0

    def element(self, name: str) -> ElementState | None:
        for el in self.elements:
            if el.name == name:
                return el
        return None


@dataclass(frozen=True)
class SequenceContent:
    """Text and photos a sequence may show."""

    title: str = ""
    subtitle: str | None = None
    date: str | None = None
    message: str = ""
    sub_message: str | None = None
    credits: tuple[str, ...] = ()
    photo_resource_ids: tuple[str, ...] = ()

    @classmethod
    def for_intro(cls, intro: IntroConfig, photo_resource_ids: Sequence[str] = ()) -> "SequenceContent":
        return cls(
            title=intro.title,
            subtitle=intro.subtitle,
            date=intro.date,
            photo_resource_ids=tuple(photo_resource_ids),
        )

    @classmethod
    def for_outro(cls, outro: OutroConfig, photo_resource_ids: Sequence[str] = ()) -> "SequenceContent":
        return cls(
            message=outro.message,
            sub_message=outro.sub_message,
            credits=tuple(outro.credits),
            photo_resource_ids=tuple(photo_resource_ids) if outro.show_photos else (),
        )


@dataclass(frozen=True)
class _Ctx:
    t: float
    duration: float
    content: SequenceContent
    colors: ThemeColors

    @property
    def progress(self) -> float:
        return clamp(self.t / self.duration) if self.duration > 0 else 1.0


@dataclass
class _Frame:
    elements: list[ElementState] = field(default_factory=list)
    container_scale: float = 1.0
    container_rotate_y: float = 0.0
    letterbox: float = 0.0
    curtain_open: float = 1.0
    tint: str | None = None
    tint_opacity: float = 0.0


# =============================================================================
# Helpers
# =============================================================================


def _appear(t: float, delay: float, length: float = APPEAR_SECONDS, easing: Callable[[float], float] = linear) -> float:
    """0 until delay, then eased progress to 1 over length seconds."""
    if t <= delay:
        return 0.0
    if length <= 0:
        return 1.0
    return easing(clamp((t - delay) / length))


def _fade_out(t: float, end: float, length: float) -> float:
    if length <= 0:
        return 1.0 if t < end else 0.0
    return clamp((end - t) / length)


def _text(name: str, text: str | None, **state) -> list[ElementState]:
    if not text:
        return []
    state["opacity"] = clamp(state.get("opacity", 1.0))
    return [ElementState(name=name, text=text, **state)]


def _shape(name: str, **state) -> ElementState:
    state["opacity"] = clamp(state.get("opacity", 1.0))
    return ElementState(name=name, **state)


def _photo(name: str, resource_id: str, **state) -> ElementState:
    state["opacity"] = clamp(state.get("opacity", 1.0))
    return ElementState(name=name, resource_id=resource_id, **state)


def _intro_text(ctx: _Ctx, title: dict | None = None, subtitle: dict | None = None, date: dict | None = None) -> list[ElementState]:
    t, c = ctx.t, ctx.content
    return [
        *_text("title", c.title, **{"y": 45.0, "opacity": _appear(t, TITLE_DELAY), **(title or {})}),
        *_text("subtitle", c.subtitle, **{"y": 57.0, "opacity": _appear(t, SUBTITLE_DELAY), **(subtitle or {})}),
        *_text("date", c.date, **{"y": 65.0, "opacity": _appear(t, DATE_DELAY), **(date or {})}),
    ]


def _outro_text(ctx: _Ctx, message: dict | None = None, sub_message: dict | None = None) -> list[ElementState]:
    t, c = ctx.t, ctx.content
    return [
        *_text("message", c.message, **{"y": 45.0, "opacity": _appear(t, MESSAGE_DELAY), **(message or {})}),
        *_text(
            "sub_message",
            c.sub_message,
            **{"y": 57.0, "opacity": _appear(t, SUB_MESSAGE_DELAY), **(sub_message or {})},
        ),
    ]


def _celebration_text(ctx: _Ctx) -> list[ElementState]:
    """Message pops in after the particles get going."""
    t = ctx.t
    delay = MESSAGE_DELAY + 0.5
    pop = _appear(t, delay, easing=back(1.5))
    return _outro_text(
        ctx,
        message={"opacity": _appear(t, delay), "scale": lerp(0.8, 1.0, pop)},
        sub_message={"opacity": _appear(t, SUB_MESSAGE_DELAY + 0.5)},
    )


# =============================================================================
# Intro variants
# =============================================================================


def _intro_fade_zoom(ctx: _Ctx) -> _Frame:
    p = _appear(ctx.t, TITLE_DELAY)
    return _Frame(_intro_text(ctx, title={"opacity": p, "scale": lerp(0.8, 1.0, p)}))


def _intro_slide_up(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={"translate_y": 50 * (1 - _appear(t, TITLE_DELAY, easing=ease_out))},
            subtitle={"translate_y": 30 * (1 - _appear(t, SUBTITLE_DELAY, easing=ease_out))},
        )
    )


def _intro_particles(ctx: _Ctx) -> _Frame:
    return _Frame(_intro_text(ctx))


def _intro_typewriter(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={"opacity": 1.0 if t > TITLE_DELAY else 0.0, "reveal": _appear(t, TITLE_DELAY, 2.0)},
            subtitle={"opacity": _appear(t, SUBTITLE_DELAY + 1.0)},
        )
    )


def _intro_cinematic(ctx: _Ctx) -> _Frame:
    t = ctx.t
    title_p = _appear(t, TITLE_DELAY + 0.5)
    lines = _appear(t, 0.0, 1.5)
    return _Frame(
        [
            _shape("line_top", y=35.0, width=lerp(0, 30, lines), opacity=0.5 * lines),
            _shape("line_bottom", y=72.0, width=lerp(0, 30, lines), opacity=0.5 * lines),
            *_intro_text(
                ctx,
                title={"opacity": title_p, "letter_spacing": lerp(20, 5, title_p)},
                subtitle={"opacity": _appear(t, SUBTITLE_DELAY + 1.0)},
                date={"opacity": _appear(t, DATE_DELAY + 0.5)},
            ),
        ],
        container_scale=lerp(1.1, 1.0, ctx.progress),
        letterbox=0.12,
    )


def _intro_bounce(ctx: _Ctx) -> _Frame:
    t = ctx.t
    scale = spring(t - TITLE_DELAY, damping=12, stiffness=100, mass=0.5)
    return _Frame(_intro_text(ctx, title={"opacity": 1.0 if t > TITLE_DELAY else 0.0, "scale": scale}))


def _intro_split(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={"translate_x": -300 * (1 - _appear(t, TITLE_DELAY, easing=ease_out))},
            subtitle={"translate_x": 300 * (1 - _appear(t, SUBTITLE_DELAY, easing=ease_out))},
        )
    )


def _intro_reveal(ctx: _Ctx) -> _Frame:
    t = ctx.t
    reveal = _appear(t, TITLE_DELAY, easing=ease_in_out)
    return _Frame(
        _intro_text(
            ctx,
            title={
                "opacity": 1.0 if t > TITLE_DELAY else 0.0,
                "reveal": reveal,
                "translate_y": (1 - reveal) * 40,
            },
        )
    )


def _intro_glitch(ctx: _Ctx) -> _Frame:
    t = ctx.t
    p = _appear(t, TITLE_DELAY, 0.6)
    flicker = p if p >= 1 else p * (0.6 + 0.4 * abs(math.sin(t * 31)))
    return _Frame(
        _intro_text(
            ctx,
            title={
                "opacity": flicker,
                "translate_x": math.sin(t * 53) * 12 * (1 - p),
                "blur": (1 - p) * 4,
            },
        )
    )


def _intro_wave(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={"translate_y": math.sin((t - TITLE_DELAY) * 2 * math.pi * 0.5) * 8},
            subtitle={"translate_y": math.sin((t - SUBTITLE_DELAY) * 2 * math.pi * 0.5) * 5},
        )
    )


def _intro_spiral(ctx: _Ctx) -> _Frame:
    t = ctx.t
    p = _appear(t, TITLE_DELAY, 1.2, easing=ease_out)
    return _Frame(
        _intro_text(
            ctx,
            title={"opacity": _appear(t, TITLE_DELAY, 0.6), "rotate": (1 - p) * 360, "scale": p},
        )
    )


def _intro_explosion(ctx: _Ctx) -> _Frame:
    t = ctx.t
    p = _appear(t, TITLE_DELAY, 0.8, easing=back(1.5))
    return _Frame(
        _intro_text(ctx, title={"opacity": _appear(t, TITLE_DELAY, 0.3), "scale": lerp(3.0, 1.0, p)})
    )


def _intro_elegant_fade(ctx: _Ctx) -> _Frame:
    t = ctx.t
    title_p = _appear(t, TITLE_DELAY, 1.5, easing=ease_in_out)
    lines = 0.4 * _appear(t, 0.0, 1.5)
    return _Frame(
        [
            _shape("line_top", y=38.0, width=20.0, opacity=lines),
            _shape("line_bottom", y=70.0, width=20.0, opacity=lines),
            *_intro_text(
                ctx,
                title={"opacity": title_p, "letter_spacing": lerp(8, 2, title_p)},
                subtitle={"opacity": _appear(t, SUBTITLE_DELAY, 1.5, easing=ease_in_out)},
                date={"opacity": _appear(t, DATE_DELAY, 1.5, easing=ease_in_out)},
            ),
        ]
    )


def _intro_dynamic_zoom(ctx: _Ctx) -> _Frame:
    t = ctx.t
    p = _appear(t, TITLE_DELAY, 0.5, easing=ease_out)
    return _Frame(
        _intro_text(
            ctx,
            title={"opacity": _appear(t, TITLE_DELAY, 0.5), "scale": lerp(2.0, 1.0, p), "blur": (1 - p) * 6},
        ),
        container_scale=lerp(1.3, 1.0, _appear(t, 0.0, 1.5, easing=ease_out)),
    )


def _intro_floating(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={"translate_y": math.sin(t * math.pi * 0.8) * 8},
            subtitle={"translate_y": math.sin(t * math.pi * 0.8 + 0.6) * 6},
        )
    )


def _intro_neon_glow(ctx: _Ctx) -> _Frame:
    t = ctx.t
    p = _appear(t, TITLE_DELAY, 0.8)
    return _Frame(
        _intro_text(ctx, title={"opacity": p, "glow": p * (0.85 + 0.15 * math.sin(t * 12))})
    )


def _intro_handwriting(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _intro_text(
            ctx,
            title={
                "opacity": 1.0 if t > TITLE_DELAY else 0.0,
                "reveal": _appear(t, TITLE_DELAY, 2.5, easing=ease_in_out),
            },
        )
    )


def _intro_photo_stack(ctx: _Ctx) -> _Frame:
    t = ctx.t
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:4]):
        delay = 0.3 * i
        p = _appear(t, delay, 0.6, easing=back(1.5))
        photos.append(
            _photo(
                f"photo_{i}",
                resource_id,
                x=50 + (i - 1.5) * 6,
                width=30.0,
                rotate=(i - 1.5) * 6,
                scale=lerp(1.3, 1.0, p),
                opacity=0.35 * _appear(t, delay, 0.3),
            )
        )
    return _Frame([*photos, *_intro_text(ctx)])


def _intro_curtain(ctx: _Ctx) -> _Frame:
    return _Frame(_intro_text(ctx), curtain_open=_appear(ctx.t, 0.0, 1.5, easing=ease_in_out))


_PUZZLE_OFFSETS = [(-400.0, -250.0), (400.0, -250.0), (-400.0, 250.0), (400.0, 250.0)]


def _intro_puzzle(ctx: _Ctx) -> _Frame:
    t = ctx.t
    pieces = []
    for i, (dx, dy) in enumerate(_PUZZLE_OFFSETS):
        p = _appear(t, 0.15 * i, 0.8, easing=ease_out)
        pieces.append(
            _shape(
                f"piece_{i}",
                x=40.0 + 20.0 * (i % 2),
                y=40.0 + 20.0 * (i // 2),
                width=20.0,
                translate_x=dx * (1 - p),
                translate_y=dy * (1 - p),
                opacity=0.6 * p,
            )
        )
    return _Frame([*pieces, *_intro_text(ctx)])


INTRO_VARIANTS: dict[str, Callable[[_Ctx], _Frame]] = {
    "fade-zoom": _intro_fade_zoom,
    "slide-up": _intro_slide_up,
    "particles": _intro_particles,
    "typewriter": _intro_typewriter,
    "cinematic": _intro_cinematic,
    "bounce": _intro_bounce,
    "split": _intro_split,
    "reveal": _intro_reveal,
    "glitch": _intro_glitch,
    "wave": _intro_wave,
    "spiral": _intro_spiral,
    "explosion": _intro_explosion,
    "elegant-fade": _intro_elegant_fade,
    "dynamic-zoom": _intro_dynamic_zoom,
    "floating": _intro_floating,
    "neon-glow": _intro_neon_glow,
    "handwriting": _intro_handwriting,
    "photo-stack": _intro_photo_stack,
    "curtain": _intro_curtain,
    "puzzle": _intro_puzzle,
}


# =============================================================================
# Outro variants
# =============================================================================


def _outro_fade_out(ctx: _Ctx) -> _Frame:
    t, d = ctx.t, ctx.duration
    return _Frame(
        _outro_text(
            ctx,
            message={"opacity": min(_appear(t, MESSAGE_DELAY), _fade_out(t, d, 1.0))},
            sub_message={"opacity": min(_appear(t, SUB_MESSAGE_DELAY), _fade_out(t, d, 1.0))},
        )
    )


def _outro_zoom_out(ctx: _Ctx) -> _Frame:
    return _Frame(_outro_text(ctx), container_scale=lerp(1.2, 1.0, ease_out(ctx.progress)))


def _outro_scroll_credits(ctx: _Ctx) -> _Frame:
    credits = "\n".join(ctx.content.credits)
    return _Frame(
        [
            *_outro_text(ctx, message={"y": 20.0}, sub_message={"y": 28.0}),
            *_text("credits", credits, y=lerp(100.0, -50.0, ctx.progress)),
        ]
    )


_COLLAGE_POSITIONS = [
    (10, 10, -5, 0.4),
    (60, 5, 5, 0.35),
    (5, 55, -8, 0.35),
    (55, 60, 8, 0.4),
    (30, 30, 0, 0.3),
    (70, 35, -3, 0.3),
]


def _outro_photo_collage(ctx: _Ctx) -> _Frame:
    t = ctx.t
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[: len(_COLLAGE_POSITIONS)]):
        left, top, rotation, size = _COLLAGE_POSITIONS[i]
        photos.append(
            _photo(
                f"photo_{i}",
                resource_id,
                x=left + size * 50,
                y=top + size * 50,
                width=size * 100,
                rotate=rotation,
                opacity=0.3 * _appear(t, 0.2 * i, 0.5),
            )
        )
    return _Frame([*photos, *_outro_text(ctx)])


def _outro_heart_gather(ctx: _Ctx) -> _Frame:
    return _Frame(_celebration_text(ctx))


def _outro_fireworks(ctx: _Ctx) -> _Frame:
    return _Frame(_celebration_text(ctx))


def _outro_thank_you(ctx: _Ctx) -> _Frame:
    t = ctx.t
    return _Frame(
        _outro_text(
            ctx,
            message={
                "opacity": _appear(t, MESSAGE_DELAY, 0.5),
                "scale": lerp(0.5, 1.0, spring(t - MESSAGE_DELAY, damping=10, stiffness=120)),
            },
        )
    )


def _outro_memories(ctx: _Ctx) -> _Frame:
    t = ctx.t
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:5]):
        start = 0.8 * i
        opacity = 0.3 * min(_appear(t, start, 0.4), _fade_out(t, start + 1.6, 0.4))
        photos.append(_photo(f"photo_{i}", resource_id, width=45.0, opacity=opacity))
    return _Frame([*photos, *_outro_text(ctx)], tint="#704214", tint_opacity=0.15)


def _outro_flying_photos(ctx: _Ctx) -> _Frame:
    t = ctx.t
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:6]):
        p = clamp((t - 0.25 * i) / 2.5)
        visible = 0.0 < p < 1.0
        photos.append(
            _photo(
                f"photo_{i}",
                resource_id,
                x=lerp(-20.0, 120.0, p),
                y=20.0 + (i % 3) * 25.0,
                width=20.0,
                rotate=-10.0 + (i * 7) % 20,
                opacity=0.5 if visible else 0.0,
            )
        )
    return _Frame([*photos, *_outro_text(ctx)])


def _outro_mosaic(ctx: _Ctx) -> _Frame:
    t = ctx.t
    tiles = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:6]):
        p = _appear(t, 0.1 * i, 0.4, easing=ease_out)
        tiles.append(
            _photo(
                f"photo_{i}",
                resource_id,
                x=(i % 3) * 33.3 + 16.7,
                y=(i // 3) * 50.0 + 25.0,
                width=33.3,
                scale=lerp(0.6, 1.0, p),
                opacity=0.35 * p,
            )
        )
    return _Frame([*tiles, *_outro_text(ctx)])


def _outro_polaroid_stack(ctx: _Ctx) -> _Frame:
    t = ctx.t
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:4]):
        p = _appear(t, 0.3 * i, 0.8, easing=back(1.5))
        photos.append(
            _photo(
                f"photo_{i}",
                resource_id,
                width=28.0,
                rotate=(i - 1.5) * 8,
                translate_y=(1 - p) * 50,
                scale=max(0.0, p),
                opacity=p,
            )
        )
    return _Frame([*photos, *_outro_text(ctx, message={"y": 82.0}, sub_message={"y": 90.0})])


def _outro_ribbon(ctx: _Ctx) -> _Frame:
    ribbon = _shape("ribbon", y=45.0, width=100.0, reveal=_appear(ctx.t, 0.0, 1.0, easing=ease_in_out), opacity=0.8)
    return _Frame([ribbon, *_outro_text(ctx)])


def _outro_confetti(ctx: _Ctx) -> _Frame:
    return _Frame(_celebration_text(ctx))


def _outro_sunset(ctx: _Ctx) -> _Frame:
    return _Frame(_outro_text(ctx), tint="#FF7E5F", tint_opacity=0.35 * ctx.progress)


def _outro_book_close(ctx: _Ctx) -> _Frame:
    closing = _appear(ctx.t, ctx.duration - 1.2, 1.0, easing=ease_in)
    return _Frame(_outro_text(ctx), container_rotate_y=90.0 * closing)


def _outro_timeline(ctx: _Ctx) -> _Frame:
    t = ctx.t
    line = _shape("timeline_line", y=75.0, width=80.0, reveal=_appear(t, 0.0, 1.5), opacity=0.6)
    photos = []
    for i, resource_id in enumerate(ctx.content.photo_resource_ids[:5]):
        photos.append(
            _photo(
                f"photo_{i}",
                resource_id,
                x=15.0 + i * 22.0 - ctx.progress * 20.0,
                y=75.0,
                width=18.0,
                opacity=0.8 * _appear(t, 0.2 * i, 0.5),
            )
        )
    return _Frame([line, *photos, *_outro_text(ctx, message={"y": 35.0}, sub_message={"y": 45.0})])


def _outro_balloon(ctx: _Ctx) -> _Frame:
    rise = _appear(ctx.t, MESSAGE_DELAY, easing=ease_out)
    return _Frame(_outro_text(ctx, message={"translate_y": (1 - rise) * 40}))


def _outro_flower_bloom(ctx: _Ctx) -> _Frame:
    bloom = _appear(ctx.t, 0.0, 1.2, easing=back(1.5))
    return _Frame([_shape("flower", y=28.0, width=12.0, scale=bloom, opacity=clamp(bloom)), *_outro_text(ctx)])


def _outro_wave_goodbye(ctx: _Ctx) -> _Frame:
    t = ctx.t
    waving = 1.0 if t > MESSAGE_DELAY else 0.0
    hand = _shape("hand", y=28.0, width=8.0, rotate=math.sin(t * 2 * math.pi * 1.5) * 20 * waving, opacity=_appear(t, 0.0, 0.5))
    return _Frame([hand, *_outro_text(ctx)])


def _outro_film_reel(ctx: _Ctx) -> _Frame:
    frames = [
        _photo(f"photo_{i}", resource_id, x=10.0 + i * 22.0 - ctx.progress * 40.0, width=20.0, opacity=0.4)
        for i, resource_id in enumerate(ctx.content.photo_resource_ids[:6])
    ]
    return _Frame([*frames, *_outro_text(ctx)], tint="#3A3A3A", tint_opacity=0.2)


OUTRO_VARIANTS: dict[str, Callable[[_Ctx], _Frame]] = {
    "fade-out": _outro_fade_out,
    "zoom-out": _outro_zoom_out,
    "scroll-credits": _outro_scroll_credits,
    "photo-collage": _outro_photo_collage,
    "heart-gather": _outro_heart_gather,
    "fireworks": _outro_fireworks,
    "thank-you": _outro_thank_you,
    "memories": _outro_memories,
    "flying-photos": _outro_flying_photos,
    "mosaic": _outro_mosaic,
    "polaroid-stack": _outro_polaroid_stack,
    "ribbon": _outro_ribbon,
    "confetti": _outro_confetti,
    "sunset": _outro_sunset,
    "book-close": _outro_book_close,
    "timeline": _outro_timeline,
    "balloon": _outro_balloon,
    "flower-bloom": _outro_flower_bloom,
    "wave-goodbye": _outro_wave_goodbye,
    "film-reel": _outro_film_reel,
}


# =============================================================================
# Particles per variant
# =============================================================================

_CELEBRATION_COLORS = ["#FF6B6B", "#4ECDC4", "#FFE66D", "#95E1D3", "#DDA0DD"]

VARIANT_PARTICLES: dict[tuple[str, str], tuple[ParticleConfig, str]] = {
    ("intro", "particles"): (
        ParticleConfig(type="sparkle", count=50, direction="up", size=Range(min=4, max=12), speed=Range(min=0.5, max=1.5)),
        "drift",
    ),
    ("intro", "explosion"): (ParticleConfig(type="fireworks", count=36, colors=_CELEBRATION_COLORS), "burst"),
    ("intro", "floating"): (
        ParticleConfig(type="bubbles", count=30, direction="up", size=Range(min=10, max=30), speed=Range(min=0.3, max=1.0)),
        "drift",
    ),
    ("intro", "neon-glow"): (ParticleConfig(type="sparkle", count=30, direction="random", speed=Range(min=0.1, max=0.4)), "drift"),
    ("outro", "heart-gather"): (
        ParticleConfig(type="hearts", count=20, size=Range(min=20, max=50), colors=["#FF6B6B", "#FD79A8", "#E84393"]),
        "gather",
    ),
    ("outro", "fireworks"): (ParticleConfig(type="fireworks", count=60, colors=_CELEBRATION_COLORS), "burst"),
    ("outro", "confetti"): (
        ParticleConfig(
            type="confetti",
            count=60,
            size=Range(min=8, max=20),
            speed=Range(min=2, max=6),
            colors=[*_CELEBRATION_COLORS, "#74B9FF"],
        ),
        "drift",
    ),
    ("outro", "balloon"): (
        ParticleConfig(type="balloons", count=25, direction="up", size=Range(min=30, max=60), speed=Range(min=1, max=2)),
        "drift",
    ),
    ("outro", "flower-bloom"): (
        ParticleConfig(type="petals", count=40, colors=["#FFB7C5", "#FFC0CB", "#FFFFFF"], speed=Range(min=0.8, max=1.6)),
        "drift",
    ),
    ("outro", "sunset"): (
        ParticleConfig(type="firefly", count=30, colors=["#FFE66D", "#FFD27F"], size=Range(min=3, max=6)),
        "drift",
    ),
    ("outro", "memories"): (
        ParticleConfig(type="snow", count=80, colors=["#FFFFFF"], size=Range(min=2, max=6), speed=Range(min=0.3, max=0.8)),
        "drift",
    ),
}


@lru_cache(maxsize=64)
def _particle_system(config_json: str, motion: str | None) -> ParticleSystem:
    return ParticleSystem(ParticleConfig.model_validate(json.loads(config_json)), motion=motion)


def particle_system_for(kind: str, variant: str, override: ParticleConfig | None = None) -> ParticleSystem | None:
    """Particle system for a sequence; an explicit project config wins over the variant default."""
    default = VARIANT_PARTICLES.get((kind, variant))
    if override is not None:
        motion = default[1] if default and default[0].type == override.type else None
        return _particle_system(override.model_dump_json(), motion)
    if default is None:
        return None
    config, motion = default
    return _particle_system(config.model_dump_json(), motion)


# =============================================================================
# Variant selection
# =============================================================================


def normalize_variant_id(variant_id: str | None) -> str:
    if not variant_id:
        return ""
    return variant_id.strip().lower().replace("_", "-")


def _select(requested: str | None, allowed: Sequence[str], known: dict, default: str) -> str:
    allowed = [v for v in (normalize_variant_id(a) for a in allowed) if v in known]
    if not allowed:
        allowed = [default, *(v for v in known if v != default)]
    wanted = normalize_variant_id(requested)
    return wanted if wanted in allowed else allowed[0]


def intro_variants_for(theme: Theme) -> list[str]:
    """Ordered intro variants a theme permits."""
    return list(theme.intro_variants or THEME_INTRO_MAPPING.get(theme.category, []))


def outro_variants_for(theme: Theme) -> list[str]:
    return list(theme.outro_variants or THEME_OUTRO_MAPPING.get(theme.category, []))


def select_intro_variant(requested: str | None, theme: Theme) -> str:
    return _select(requested, intro_variants_for(theme), INTRO_VARIANTS, DEFAULT_INTRO)


def select_outro_variant(requested: str | None, theme: Theme) -> str:
    return _select(requested, outro_variants_for(theme), OUTRO_VARIANTS, DEFAULT_OUTRO)


# =============================================================================
# Public API
# =============================================================================


def _to_state(kind: str, variant: str, ctx: _Ctx, frame: _Frame, particles: ParticleSystem | None) -> SequenceState:
    return SequenceState(
        kind=kind,
        variant=variant,
        offset=ctx.t,
        duration=ctx.duration,
        background_color=ctx.colors.background,
        elements=tuple(frame.elements),
        particles=particles.at(ctx.t) if particles is not None else (),
        container_scale=frame.container_scale,
        container_rotate_y=frame.container_rotate_y,
        letterbox=frame.letterbox,
        curtain_open=frame.curtain_open,
        tint=frame.tint,
        tint_opacity=frame.tint_opacity,
    )


def resolve_intro(
    offset: float,
    intro: IntroConfig,
    theme: Theme,
    photo_resource_ids: Sequence[str] = (),
) -> SequenceState:
    """Intro state at offset seconds; fades into the background over its last half second."""
    variant = select_intro_variant(intro.style, theme)
    duration = intro.duration
    t = clamp(offset, 0.0, duration)
    ctx = _Ctx(t=t, duration=duration, content=SequenceContent.for_intro(intro, photo_resource_ids), colors=theme.colors)
    state = _to_state("intro", variant, ctx, INTRO_VARIANTS[variant](ctx), particle_system_for("intro", variant, intro.particles))

    exit_fade = 1 - _fade_out(t, duration, min(INTRO_EXIT_SECONDS, duration))
    return _replace_overlay(state, theme.colors.background, exit_fade)


def resolve_outro(
    offset: float,
    outro: OutroConfig,
    theme: Theme,
    photo_resource_ids: Sequence[str] = (),
) -> SequenceState:
    """Outro state at offset seconds.

    Fades in from the background over the first half second and out to
    black over the last second.
    """
    variant = select_outro_variant(outro.style, theme)
    duration = outro.duration
    t = clamp(offset, 0.0, duration)
    ctx = _Ctx(t=t, duration=duration, content=SequenceContent.for_outro(outro, photo_resource_ids), colors=theme.colors)
    state = _to_state("outro", variant, ctx, OUTRO_VARIANTS[variant](ctx), particle_system_for("outro", variant, outro.particles))

    if t < duration / 2:
        enter = min(OUTRO_ENTER_SECONDS, duration / 2)
        return _replace_overlay(state, theme.colors.background, 1 - _appear(t, 0.0, enter) if enter > 0 else 0.0)
    exit_length = min(OUTRO_EXIT_SECONDS, duration / 2)
    return _replace_overlay(state, "#000000", 1 - _fade_out(t, duration, exit_length))


def _replace_overlay(state: SequenceState, color: str, opacity: float) -> SequenceState:
    return replace(state, overlay_color=color, overlay_opacity=clamp(opacity))

"""Transition library.

Each transition maps ``(progress, direction)`` to a StylePatch describing how
one layer should be drawn while two clips blend:

- progress runs 0 -> 1 across the transition window for both layers
- direction IN is the incoming clip, OUT is the outgoing clip

Symmetric transitions satisfy ``out(p).opacity == in(1 - p).opacity``.
Unknown ids resolve to "fade"; looking up a transition never raises.
"""

import math
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from photostory.utils.interpolation import (
    back,
    clamp,
    ease_in,
    ease_in_out,
    ease_out,
    interpolate,
)


class TransitionDirection(Enum):
    """Which side of the boundary a layer is on."""

    IN = "in"
    OUT = "out"


class TransitionCategory(Enum):
    BASIC = "basic"
    SLIDE = "slide"
    WIPE = "wipe"
    ZOOM = "zoom"
    FLIP = "flip"
    CREATIVE = "creative"


@dataclass(frozen=True)
class TransformPatch:
    """Geometric transform applied around the layer centre.

    Translations are percentages of the frame size, angles are degrees.
    """

    translate_x: float = 0.0
    translate_y: float = 0.0
    scale: float = 1.0
    rotate: float = 0.0
    rotate_x: float = 0.0
    rotate_y: float = 0.0
    skew_x: float = 0.0


@dataclass(frozen=True)
class ClipPath:
    """Visible region of a layer in percent coordinates.

    kind is one of "inset" (top, right, bottom, left), "circle" (radius around
    the centre) or "polygon" (explicit points).
    """

    kind: str
    inset: tuple[float, float, float, float] | None = None
    radius: float | None = None
    points: tuple[tuple[float, float], ...] | None = None


@dataclass(frozen=True)
class FilterPatch:
    blur: float = 0.0  # px at 1080p
    brightness: float = 1.0
    contrast: float = 1.0
    hue_rotate: float = 0.0  # degrees
    pixelate: float = 0.0  # block size in px, 0 = off


@dataclass(frozen=True)
class StylePatch:
    """Partial style for one layer. None means "leave unchanged"."""

    opacity: float | None = None
    transform: TransformPatch | None = None
    clip_path: ClipPath | None = None
    filter: FilterPatch | None = None
    border_radius: float | None = None  # percent

    @property
    def effective_opacity(self) -> float:
        return 1.0 if self.opacity is None else self.opacity


TransitionFn = Callable[[float, TransitionDirection], StylePatch]


@dataclass(frozen=True)
class TransitionDefinition:
    id: str
    name: str
    category: TransitionCategory
    fn: TransitionFn
    symmetric: bool = False


# =============================================================================
# Transition functions
# =============================================================================


def _visible(progress: float, direction: TransitionDirection) -> float:
    """Share of the layer that should be showing: rises for IN, falls for OUT."""
    return progress if direction == TransitionDirection.IN else 1 - progress


def _none(progress: float, direction: TransitionDirection) -> StylePatch:
    return StylePatch()


def _fade(progress: float, direction: TransitionDirection) -> StylePatch:
    return StylePatch(opacity=_visible(progress, direction))


def _cross_dissolve(progress: float, direction: TransitionDirection) -> StylePatch:
    # Outgoing layer stays solid underneath the incoming one
    if direction == TransitionDirection.OUT:
        return StylePatch(opacity=1.0)
    return StylePatch(opacity=ease_in_out(progress))


def _slide(axis: str, sign: int) -> TransitionFn:
    """Slide in from `sign * 100%` along axis; outgoing leaves the opposite way."""

    def _fn(progress: float, direction: TransitionDirection) -> StylePatch:
        if direction == TransitionDirection.IN:
            offset = interpolate(progress, [0, 1], [sign * 100, 0], easing=ease_out)
        else:
            offset = interpolate(progress, [0, 1], [0, -sign * 100], easing=ease_in)
        if axis == "x":
            return StylePatch(transform=TransformPatch(translate_x=offset))
        return StylePatch(transform=TransformPatch(translate_y=offset))

    return _fn


def _zoom(in_from: float, out_to: float) -> TransitionFn:
    def _fn(progress: float, direction: TransitionDirection) -> StylePatch:
        if direction == TransitionDirection.IN:
            scale = interpolate(progress, [0, 1], [in_from, 1], easing=ease_out)
            opacity = interpolate(progress, [0, 0.5], [0, 1])
        else:
            scale = interpolate(progress, [0, 1], [1, out_to], easing=ease_in)
            opacity = interpolate(progress, [0.5, 1], [1, 0])
        return StylePatch(opacity=opacity, transform=TransformPatch(scale=scale))

    return _fn


def _spin(progress: float, direction: TransitionDirection) -> StylePatch:
    if direction == TransitionDirection.IN:
        rotate = interpolate(progress, [0, 1], [-180, 0], easing=ease_out)
        scale = progress
        opacity = interpolate(progress, [0, 0.3], [0, 1])
    else:
        rotate = interpolate(progress, [0, 1], [0, 180], easing=ease_in)
        scale = 1 - progress
        opacity = interpolate(progress, [0.7, 1], [1, 0])
    return StylePatch(opacity=opacity, transform=TransformPatch(scale=scale, rotate=rotate))


_spin_zoom_scale = back(1.5)


def _spin_zoom(progress: float, direction: TransitionDirection) -> StylePatch:
    if direction == TransitionDirection.OUT:
        return StylePatch(opacity=1.0)
    rotate = interpolate(progress, [0, 1], [360, 0], easing=ease_out)
    scale = _spin_zoom_scale(progress)
    opacity = interpolate(progress, [0, 0.2], [0, 1])
    return StylePatch(opacity=opacity, transform=TransformPatch(scale=scale, rotate=rotate))


def _flip(axis: str) -> TransitionFn:
    sign = 1 if axis == "y" else -1

    def _fn(progress: float, direction: TransitionDirection) -> StylePatch:
        if direction == TransitionDirection.IN:
            angle = interpolate(progress, [0, 1], [sign * 90, 0], easing=ease_out)
            opacity = interpolate(progress, [0, 0.1], [0, 1])
        else:
            angle = interpolate(progress, [0, 1], [0, -sign * 90], easing=ease_in)
            opacity = interpolate(progress, [0.9, 1], [1, 0])
        if axis == "y":
            transform = TransformPatch(rotate_y=angle)
        else:
            transform = TransformPatch(rotate_x=angle)
        return StylePatch(opacity=opacity, transform=transform)

    return _fn


def _wipe(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(clip_path=ClipPath(kind="inset", inset=(0.0, (1 - visible) * 100, 0.0, 0.0)))


def _circle_wipe(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(clip_path=ClipPath(kind="circle", radius=visible * 150))


def _diamond_wipe(progress: float, direction: TransitionDirection) -> StylePatch:
    size = _visible(progress, direction) * 150
    points = ((50, 50 - size), (50 + size, 50), (50, 50 + size), (50 - size, 50))
    return StylePatch(clip_path=ClipPath(kind="polygon", points=points))


# Unit star: 10 vertices alternating outer/inner radius, top point first
_STAR_POINTS = (
    (0.0, -1.0), (0.22, -0.31), (1.0, -0.31), (0.36, 0.12), (0.59, 1.0),
    (0.0, 0.38), (-0.59, 1.0), (-0.36, 0.12), (-1.0, -0.31), (-0.22, -0.31),
)


def _star_wipe(progress: float, direction: TransitionDirection) -> StylePatch:
    size = _visible(progress, direction) * 150
    points = tuple((50 + x * size, 50 + y * size) for x, y in _STAR_POINTS)
    return StylePatch(clip_path=ClipPath(kind="polygon", points=points))


def _heart_outline(samples: int = 48) -> tuple[tuple[float, float], ...]:
    """Classic parametric heart normalised to roughly [-1, 1]."""
    points = []
    for i in range(samples):
        t = 2 * math.pi * i / samples
        x = 16 * math.sin(t) ** 3
        y = 13 * math.cos(t) - 5 * math.cos(2 * t) - 2 * math.cos(3 * t) - math.cos(4 * t)
        points.append((x / 16, -y / 16))
    return tuple(points)


_HEART_POINTS = _heart_outline()


def _heart_wipe(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    size = visible * 200
    points = tuple((50 + x * size, 50 + y * size) for x, y in _HEART_POINTS)
    return StylePatch(opacity=visible, clip_path=ClipPath(kind="polygon", points=points))


def _glitch(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    offset = math.sin(progress * math.pi * 10) * (1 - visible) * 1.5
    return StylePatch(
        opacity=visible,
        transform=TransformPatch(translate_x=offset),
        filter=FilterPatch(hue_rotate=(1 - visible) * 90),
    )


def _pixelate(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(
        opacity=visible,
        filter=FilterPatch(blur=(1 - visible) * 5, pixelate=(1 - visible) * 48),
    )


def _blur(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(opacity=visible, filter=FilterPatch(blur=(1 - visible) * 20))


def _ripple(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(
        opacity=visible,
        transform=TransformPatch(scale=0.9 + visible * 0.1),
        filter=FilterPatch(blur=(1 - visible) * 5),
    )


def _light_leak(progress: float, direction: TransitionDirection) -> StylePatch:
    if direction == TransitionDirection.IN:
        opacity = interpolate(progress, [0, 0.5, 1], [0, 1.2, 1])
    else:
        opacity = interpolate(progress, [0, 0.5, 1], [1, 1.2, 0])
    brightness = interpolate(progress, [0, 0.5, 1], [1, 1.5, 1])
    return StylePatch(opacity=clamp(opacity), filter=FilterPatch(brightness=brightness))


def _dissolve_particles(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(
        opacity=visible,
        filter=FilterPatch(
            contrast=1 + (1 - visible) * 0.5,
            brightness=1 + (1 - visible) * 0.3,
        ),
    )


def _morph(progress: float, direction: TransitionDirection) -> StylePatch:
    visible = _visible(progress, direction)
    return StylePatch(
        opacity=visible,
        transform=TransformPatch(scale=0.95 + visible * 0.05, skew_x=(1 - visible) * 5),
        border_radius=(1 - visible) * 50,
    )


# =============================================================================
# Registry
# =============================================================================


DEFAULT_TRANSITION = "fade"

TRANSITIONS: dict[str, TransitionDefinition] = {
    t.id: t
    for t in [
        TransitionDefinition("none", "None", TransitionCategory.BASIC, _none),
        TransitionDefinition("fade", "Fade", TransitionCategory.BASIC, _fade, symmetric=True),
        TransitionDefinition("cross-dissolve", "Cross Dissolve", TransitionCategory.BASIC, _cross_dissolve),
        TransitionDefinition("slide-left", "Slide Left", TransitionCategory.SLIDE, _slide("x", 1)),
        TransitionDefinition("slide-right", "Slide Right", TransitionCategory.SLIDE, _slide("x", -1)),
        TransitionDefinition("slide-up", "Slide Up", TransitionCategory.SLIDE, _slide("y", 1)),
        TransitionDefinition("slide-down", "Slide Down", TransitionCategory.SLIDE, _slide("y", -1)),
        TransitionDefinition("wipe", "Wipe", TransitionCategory.WIPE, _wipe),
        TransitionDefinition("circle-wipe", "Circle Wipe", TransitionCategory.WIPE, _circle_wipe),
        TransitionDefinition("diamond-wipe", "Diamond Wipe", TransitionCategory.WIPE, _diamond_wipe),
        TransitionDefinition("star-wipe", "Star Wipe", TransitionCategory.WIPE, _star_wipe),
        TransitionDefinition("heart-wipe", "Heart Wipe", TransitionCategory.WIPE, _heart_wipe),
        TransitionDefinition("zoom-in", "Zoom In", TransitionCategory.ZOOM, _zoom(0.5, 1.5), symmetric=True),
        TransitionDefinition("zoom-out", "Zoom Out", TransitionCategory.ZOOM, _zoom(1.5, 0.5), symmetric=True),
        TransitionDefinition("spin", "Spin", TransitionCategory.ZOOM, _spin),
        TransitionDefinition("spin-zoom", "Spin Zoom", TransitionCategory.ZOOM, _spin_zoom),
        TransitionDefinition("flip-horizontal", "Flip Horizontal", TransitionCategory.FLIP, _flip("y")),
        TransitionDefinition("flip-vertical", "Flip Vertical", TransitionCategory.FLIP, _flip("x")),
        TransitionDefinition("glitch", "Glitch", TransitionCategory.CREATIVE, _glitch),
        TransitionDefinition("pixelate", "Pixelate", TransitionCategory.CREATIVE, _pixelate),
        TransitionDefinition("blur", "Blur", TransitionCategory.CREATIVE, _blur),
        TransitionDefinition("ripple", "Ripple", TransitionCategory.CREATIVE, _ripple),
        TransitionDefinition("light-leak", "Light Leak", TransitionCategory.CREATIVE, _light_leak),
        TransitionDefinition("morph", "Morph", TransitionCategory.CREATIVE, _morph),
        TransitionDefinition(
            "dissolve-particles", "Particle Dissolve", TransitionCategory.CREATIVE, _dissolve_particles
        ),
    ]
}


def normalize_transition_id(transition_id: str | None) -> str:
    """'crossDissolve', 'cross_dissolve' and 'cross-dissolve' are the same id."""
    if not transition_id:
        return DEFAULT_TRANSITION
    kebab = re.sub(r"(?<!^)(?=[A-Z])", "-", transition_id.strip()).lower()
    return kebab.replace("_", "-")


def get_transition(transition_id: str | None) -> TransitionDefinition:
    """Look up a transition, falling back to fade for unknown ids."""
    return TRANSITIONS.get(normalize_transition_id(transition_id), TRANSITIONS[DEFAULT_TRANSITION])


def is_known_transition(transition_id: str | None) -> bool:
    return normalize_transition_id(transition_id) in TRANSITIONS


def apply_transition(
    transition_id: str | None,
    progress: float,
    direction: TransitionDirection,
) -> StylePatch:
    """Style patch for one layer at the given transition progress."""
    return get_transition(transition_id).fn(clamp(progress), direction)


def list_transitions(category: TransitionCategory | None = None) -> list[TransitionDefinition]:
    return [t for t in TRANSITIONS.values() if category is None or t.category == category]

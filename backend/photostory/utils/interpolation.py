"""Interpolation utilities for frame-driven animation.

Provides easing functions and an interpolate() function in the style of
Remotion's API. Used by the frame state resolver, the transition library and
the intro/outro engine to compute animated property values at any point in
time.

Usage:
    from photostory.utils.interpolation import interpolate, Easing

    # Linear interpolation
    value = interpolate(frame=50, input_range=[0, 100], output_range=[0, 1])

    # With easing
    value = interpolate(
        frame=50,
        input_range=[0, 100],
        output_range=[0, 1],
        easing=Easing.ease_in_out,
    )
"""

import math
import re
from enum import Enum
from typing import Callable


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    """Clamp value into [lo, hi]."""
    return max(lo, min(hi, value))


def lerp(start: float, end: float, t: float) -> float:
    """Linear blend between start and end."""
    return start + (end - start) * t


# =============================================================================
# Easing Functions
# =============================================================================


def linear(t: float) -> float:
    """Linear easing (no easing)."""
    return t


def ease_in(t: float) -> float:
    """Ease in (cubic)."""
    return t * t * t


def ease_out(t: float) -> float:
    """Ease out (cubic)."""
    return 1 - (1 - t) ** 3


def ease_in_out(t: float) -> float:
    """Ease in-out (cubic)."""
    if t < 0.5:
        return 4 * t * t * t
    else:
        return 1 - (-2 * t + 2) ** 3 / 2


def ease_in_quad(t: float) -> float:
    """Ease in (quadratic)."""
    return t * t


def ease_out_quad(t: float) -> float:
    """Ease out (quadratic)."""
    return 1 - (1 - t) * (1 - t)


def ease_in_out_quad(t: float) -> float:
    """Ease in-out (quadratic)."""
    if t < 0.5:
        return 2 * t * t
    else:
        return 1 - (-2 * t + 2) ** 2 / 2


def ease_in_out_sine(t: float) -> float:
    """Ease in-out (sine)."""
    return -(math.cos(math.pi * t) - 1) / 2


def back(overshoot: float = 1.70158) -> Callable[[float], float]:
    """Create an ease-out curve that overshoots the target before settling.

    Args:
        overshoot: Overshoot strength. 1.70158 gives roughly 10% overshoot.
    """
    c3 = overshoot + 1

    def _back(t: float) -> float:
        return 1 + c3 * (t - 1) ** 3 + overshoot * (t - 1) ** 2

    return _back


ease_out_back = back()


def ease_in_back(t: float) -> float:
    """Ease in with anticipation (dips below 0 first)."""
    c1 = 1.70158
    c3 = c1 + 1
    return c3 * t * t * t - c1 * t * t


def ease_out_bounce(t: float) -> float:
    """Ease out with bounces: reaches 1, falls back, and settles on 1."""
    n1 = 7.5625
    d1 = 2.75
    if t < 1 / d1:
        return n1 * t * t
    if t < 2 / d1:
        t -= 1.5 / d1
        return n1 * t * t + 0.75
    if t < 2.5 / d1:
        t -= 2.25 / d1
        return n1 * t * t + 0.9375
    t -= 2.625 / d1
    return n1 * t * t + 0.984375


def ease_in_bounce(t: float) -> float:
    """Mirror of ease_out_bounce."""
    return 1 - ease_out_bounce(1 - t)


def spring(
    t: float,
    *,
    damping: float = 10.0,
    stiffness: float = 100.0,
    mass: float = 1.0,
) -> float:
    """Damped spring response at time t (seconds) for a unit step.

    Underdamped configurations overshoot 1 and oscillate around it.
    """
    if t <= 0:
        return 0.0
    omega0 = math.sqrt(stiffness / mass)
    zeta = damping / (2 * math.sqrt(stiffness * mass))
    if zeta < 1:
        omega_d = omega0 * math.sqrt(1 - zeta * zeta)
        envelope = math.exp(-zeta * omega0 * t)
        return 1 - envelope * (
            math.cos(omega_d * t) + (zeta * omega0 / omega_d) * math.sin(omega_d * t)
        )
    # Critically/over damped: no overshoot
    return 1 - math.exp(-omega0 * t) * (1 + omega0 * t)


def bezier(x1: float, y1: float, x2: float, y2: float) -> Callable[[float], float]:
    """Create a cubic bezier easing function.

    Args:
        x1, y1: First control point
        x2, y2: Second control point

    Returns:
        Easing function (t -> value)
    """
    def _bezier(t: float) -> float:
        # Newton-Raphson to find t for x
        epsilon = 1e-6
        t_approx = t

        for _ in range(8):
            x = (
                3 * (1 - t_approx) ** 2 * t_approx * x1
                + 3 * (1 - t_approx) * t_approx ** 2 * x2
                + t_approx ** 3
            )
            if abs(x - t) < epsilon:
                break

            dx = (
                3 * (1 - t_approx) ** 2 * x1
                + 6 * (1 - t_approx) * t_approx * (x2 - x1)
                + 3 * t_approx ** 2 * (1 - x2)
            )
            if abs(dx) < epsilon:
                break

            t_approx -= (x - t) / dx

        return (
            3 * (1 - t_approx) ** 2 * t_approx * y1
            + 3 * (1 - t_approx) * t_approx ** 2 * y2
            + t_approx ** 3
        )

    return _bezier


class Easing:
    """Collection of easing functions."""

    linear = staticmethod(linear)
    ease_in = staticmethod(ease_in)
    ease_out = staticmethod(ease_out)
    ease_in_out = staticmethod(ease_in_out)
    ease_in_quad = staticmethod(ease_in_quad)
    ease_out_quad = staticmethod(ease_out_quad)
    ease_in_out_quad = staticmethod(ease_in_out_quad)
    ease_in_out_sine = staticmethod(ease_in_out_sine)
    ease_in_back = staticmethod(ease_in_back)
    ease_out_back = staticmethod(ease_out_back)
    ease_out_bounce = staticmethod(ease_out_bounce)
    ease_in_bounce = staticmethod(ease_in_bounce)
    back = staticmethod(back)
    bezier = staticmethod(bezier)

    # Named presets matching common CSS easings
    css_ease = staticmethod(bezier(0.25, 0.1, 0.25, 1.0))
    css_ease_in_out = staticmethod(bezier(0.42, 0, 0.58, 1.0))


# Easing name -> function lookup for JSON/string-based configuration
EASING_FUNCTIONS: dict[str, Callable[[float], float]] = {
    "linear": linear,
    "ease_in": ease_in,
    "ease_out": ease_out,
    "ease_in_out": ease_in_out,
    "ease_in_quad": ease_in_quad,
    "ease_out_quad": ease_out_quad,
    "ease_in_out_quad": ease_in_out_quad,
    "ease_in_out_sine": ease_in_out_sine,
    "ease_in_back": ease_in_back,
    "ease_out_back": ease_out_back,
    "back": ease_out_back,
    "ease_out_bounce": ease_out_bounce,
    "ease_in_bounce": ease_in_bounce,
    "bounce": ease_out_bounce,
    "ease": bezier(0.25, 0.1, 0.25, 1.0),
}


def normalize_easing_name(name: str) -> str:
    """Accept snake_case, kebab-case and camelCase spellings."""
    snake = re.sub(r"(?<!^)(?=[A-Z])", "_", name.strip()).lower()
    return snake.replace("-", "_")


def get_easing_function(name: str) -> Callable[[float], float]:
    """Get an easing function by name.

    Args:
        name: Easing function name (e.g., "ease_in_out", "ease-in-out", "easeInOut")

    Returns:
        Easing function

    Raises:
        ValueError: If the easing name is not recognized
    """
    fn = EASING_FUNCTIONS.get(normalize_easing_name(name))
    if fn is None:
        raise ValueError(
            f"Unknown easing function: {name}. "
            f"Available: {', '.join(EASING_FUNCTIONS.keys())}"
        )
    return fn


# =============================================================================
# Core Interpolation
# =============================================================================


class ExtrapolateType(Enum):
    """How to handle values outside the input range."""

    CLAMP = "clamp"
    EXTEND = "extend"
    IDENTITY = "identity"


def interpolate(
    frame: float,
    input_range: list[float],
    output_range: list[float],
    *,
    easing: Callable[[float], float] = linear,
    extrapolate_left: ExtrapolateType = ExtrapolateType.CLAMP,
    extrapolate_right: ExtrapolateType = ExtrapolateType.CLAMP,
) -> float:
    """Interpolate a value based on input/output ranges with optional easing.

    Args:
        frame: Current frame or time value
        input_range: Input range [start, end] or multi-point [a, b, c, ...]
        output_range: Output range matching input_range length
        easing: Easing function (default: linear)
        extrapolate_left: How to handle values below input_range[0]
        extrapolate_right: How to handle values above input_range[-1]

    Returns:
        Interpolated output value

    Examples:
        interpolate(50, [0, 100], [0, 1])  # -> 0.5
        interpolate(75, [0, 50, 100], [0, 1, 0])  # -> 0.5
    """
    if len(input_range) != len(output_range):
        raise ValueError("input_range and output_range must have the same length")
    if len(input_range) < 2:
        raise ValueError("input_range must have at least 2 values")

    for i in range(1, len(input_range)):
        if input_range[i] <= input_range[i - 1]:
            raise ValueError("input_range must be monotonically increasing")

    if frame <= input_range[0]:
        if extrapolate_left == ExtrapolateType.CLAMP:
            return output_range[0]
        elif extrapolate_left == ExtrapolateType.IDENTITY:
            return frame
        # EXTEND: fall through to use first segment

    if frame >= input_range[-1]:
        if extrapolate_right == ExtrapolateType.CLAMP:
            return output_range[-1]
        elif extrapolate_right == ExtrapolateType.IDENTITY:
            return frame
        # EXTEND: fall through to use last segment

    segment_idx = 0
    for i in range(1, len(input_range)):
        if frame <= input_range[i]:
            segment_idx = i - 1
            break
    else:
        segment_idx = len(input_range) - 2

    seg_start = input_range[segment_idx]
    seg_end = input_range[segment_idx + 1]
    t = (frame - seg_start) / (seg_end - seg_start)

    t_eased = easing(t)

    out_start = output_range[segment_idx]
    out_end = output_range[segment_idx + 1]

    return out_start + (out_end - out_start) * t_eased

"""Deterministic particle systems for intro/outro sequences.

A ParticleSystem draws its particle set once from a seeded RNG and then
evaluates every particle as a pure function of the offset into the sequence.
The same config and seed always produce identical positions, so renders are
reproducible and frames can be resolved in any order.

Coordinates are percentages of the frame (0-100), sizes are pixels at 1080p.
"""

import math
import random
from dataclasses import dataclass

from photostory.schemas.project import ParticleConfig
from photostory.utils.interpolation import clamp, ease_out, interpolate

# Falling/rising particles are dropped once they leave this band
_VISIBLE_MIN = -15.0
_VISIBLE_MAX = 115.0

FIREWORK_PARTICLES_PER_BURST = 12
FIREWORK_STAGGER_SECONDS = 0.5
FIREWORK_LIFETIME_SECONDS = 1.5

GATHER_SECONDS = 2.0

_DIRECTIONS: dict[str, tuple[float, float]] = {
    "down": (0.0, 1.0),
    "up": (0.0, -1.0),
    "left": (-1.0, 0.0),
    "right": (1.0, 0.0),
}

# Types that wrap around the frame instead of leaving it
_WRAPPING_TYPES = {"snow", "bubbles", "stars", "sparkle", "firefly", "hearts"}


@dataclass(frozen=True)
class Particle:
    """Initial state of one particle, fixed at system creation."""

    x: float
    y: float
    size: float
    speed: float
    color: str
    rotation: float
    rotation_speed: float
    phase: float
    delay: float
    dx: float
    dy: float


@dataclass(frozen=True)
class ParticleState:
    x: float
    y: float
    size: float
    color: str
    opacity: float
    rotation: float
    shape: str


_SHAPES = {
    "confetti": "rect",
    "hearts": "heart",
    "stars": "star",
    "sparkle": "star",
    "bubbles": "ring",
    "balloons": "balloon",
    "petals": "petal",
}


class ParticleSystem:
    """Seeded particle set advanced as a pure function of time.

    motion is "drift" (fall/rise along the configured direction), "burst"
    (firework explosions) or "gather" (particles converge on the centre).
    """

    def __init__(self, config: ParticleConfig, *, seed: int | None = None, motion: str | None = None):
        self.config = config
        self.seed = config.seed if seed is None else seed
        if motion is None:
            motion = "burst" if config.type == "fireworks" else "drift"
        self.motion = motion
        self.shape = _SHAPES.get(config.type, "circle")
        self.particles = self._generate()

    def _generate(self) -> tuple[Particle, ...]:
        rng = random.Random(self.seed)
        cfg = self.config
        colors = cfg.colors or ["#FFFFFF"]

        if self.motion == "burst":
            return self._generate_bursts(rng, colors)

        particles = []
        for _ in range(cfg.count):
            if cfg.direction == "random":
                angle = rng.uniform(0, 2 * math.pi)
                dx, dy = math.cos(angle), math.sin(angle)
            else:
                dx, dy = _DIRECTIONS[cfg.direction]

            x = rng.uniform(0, 100)
            y = rng.uniform(0, 100)
            # Non-wrapping falls start just off-screen so they enter over time
            if cfg.type not in _WRAPPING_TYPES and self.motion == "drift":
                if dy > 0:
                    y = rng.uniform(-30, -10)
                elif dy < 0:
                    y = rng.uniform(110, 130)

            particles.append(
                Particle(
                    x=x,
                    y=y,
                    size=rng.uniform(cfg.size.min, cfg.size.max),
                    speed=rng.uniform(cfg.speed.min, cfg.speed.max),
                    color=colors[rng.randrange(len(colors))],
                    rotation=rng.uniform(0, 360),
                    rotation_speed=rng.uniform(-150, 150),
                    phase=rng.uniform(0, 2 * math.pi),
                    delay=rng.uniform(0, 1.0),
                    dx=dx,
                    dy=dy,
                )
            )
        return tuple(particles)

    def _generate_bursts(self, rng: random.Random, colors: list[str]) -> tuple[Particle, ...]:
        bursts = max(1, math.ceil(self.config.count / FIREWORK_PARTICLES_PER_BURST))
        particles = []
        for burst in range(bursts):
            cx = 20 + rng.random() * 60
            cy = 20 + rng.random() * 40
            color = colors[burst % len(colors)]
            for i in range(FIREWORK_PARTICLES_PER_BURST):
                angle = (i / FIREWORK_PARTICLES_PER_BURST) * 2 * math.pi
                particles.append(
                    Particle(
                        x=cx,
                        y=cy,
                        size=rng.uniform(self.config.size.min, self.config.size.max),
                        speed=rng.uniform(self.config.speed.min, self.config.speed.max),
                        color=color,
                        rotation=0.0,
                        rotation_speed=0.0,
                        phase=0.0,
                        delay=burst * FIREWORK_STAGGER_SECONDS,
                        dx=math.cos(angle),
                        dy=math.sin(angle),
                    )
                )
        return tuple(particles[: max(self.config.count, FIREWORK_PARTICLES_PER_BURST)])

    def at(self, offset: float) -> tuple[ParticleState, ...]:
        """Visible particles at offset seconds into the sequence."""
        offset = max(0.0, offset)
        if self.motion == "burst":
            states = [self._burst_state(p, offset) for p in self.particles]
        elif self.motion == "gather":
            states = [self._gather_state(p, offset) for p in self.particles]
        else:
            states = [self._drift_state(p, offset) for p in self.particles]
        return tuple(s for s in states if s is not None)

    def _drift_state(self, p: Particle, offset: float) -> ParticleState | None:
        distance = offset * p.speed * 20
        x = p.x + p.dx * distance
        y = p.y + p.dy * distance
        ptype = self.config.type

        # Sideways sway for light particles
        if ptype in ("snow", "petals", "hearts", "bubbles", "balloons"):
            sway = math.sin(offset * 1.5 + p.phase) * 3
            if p.dy != 0:
                x += sway
            else:
                y += sway
        elif ptype == "firefly":
            x = p.x + math.sin(offset * 0.7 + p.phase) * 6
            y = p.y + math.cos(offset * 0.9 + p.phase) * 4

        if ptype in _WRAPPING_TYPES:
            x = (x - _VISIBLE_MIN) % (_VISIBLE_MAX - _VISIBLE_MIN) + _VISIBLE_MIN
            y = (y - _VISIBLE_MIN) % (_VISIBLE_MAX - _VISIBLE_MIN) + _VISIBLE_MIN
        elif not (_VISIBLE_MIN <= x <= _VISIBLE_MAX and _VISIBLE_MIN <= y <= _VISIBLE_MAX):
            return None

        opacity = 1.0
        if ptype in ("sparkle", "stars", "firefly"):
            opacity = 0.5 + 0.5 * math.sin(offset * 4 + p.phase)
        elif ptype in ("snow", "bubbles"):
            opacity = 0.7
        # Ease each particle in over its first half second
        opacity *= clamp(offset / 0.5) if offset < 0.5 else 1.0

        return ParticleState(
            x=x,
            y=y,
            size=p.size,
            color=p.color,
            opacity=opacity,
            rotation=(p.rotation + offset * p.rotation_speed) % 360,
            shape=self.shape,
        )

    def _burst_state(self, p: Particle, offset: float) -> ParticleState | None:
        progress = (offset - p.delay) / FIREWORK_LIFETIME_SECONDS
        if progress < 0 or progress > 1:
            return None
        # Spread in percent of frame height, tuned so a burst covers ~10%
        distance = progress * 10 * p.speed / max(self.config.speed.max, 1e-6)
        return ParticleState(
            x=p.x + p.dx * distance,
            y=p.y + p.dy * distance,
            size=p.size,
            color=p.color,
            opacity=1 - progress,
            rotation=0.0,
            shape=self.shape,
        )

    def _gather_state(self, p: Particle, offset: float) -> ParticleState | None:
        progress = interpolate(offset, [p.delay, p.delay + GATHER_SECONDS], [0, 1], easing=ease_out)
        scale = interpolate(progress, [0, 0.8, 1], [1, 1.2, 0])
        if scale <= 0:
            return None
        return ParticleState(
            x=p.x + (50 - p.x) * progress,
            y=p.y + (50 - p.y) * progress,
            size=p.size * scale,
            color=p.color,
            opacity=1.0,
            rotation=0.0,
            shape=self.shape,
        )

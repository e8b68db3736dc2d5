"""Tests for the intro/outro engine and particle systems."""

import pytest

from photostory.render.animations import (
    DATE_DELAY,
    DEFAULT_INTRO,
    DEFAULT_OUTRO,
    INTRO_VARIANTS,
    OUTRO_VARIANTS,
    SUBTITLE_DELAY,
    THEME_INTRO_MAPPING,
    THEME_OUTRO_MAPPING,
    TITLE_DELAY,
    particle_system_for,
    resolve_intro,
    resolve_outro,
    select_intro_variant,
    select_outro_variant,
)
from photostory.render.particles import ParticleSystem
from photostory.schemas.project import IntroConfig, OutroConfig, ParticleConfig
from photostory.schemas.theme import Theme

PHOTOS = ["p1.jpg", "p2.jpg", "p3.jpg", "p4.jpg"]


def _theme(category: str = "default", **kwargs) -> Theme:
    return Theme(id=f"{category}-theme", name=category.title(), category=category, **kwargs)


def _intro(style: str | None = None, **kwargs) -> IntroConfig:
    data = {"title": "Our Wedding", "subtitle": "June 2026", "date": "2026-06-20", "duration": 5.0}
    data.update(kwargs)
    return IntroConfig(style=style, **data)


def _outro(style: str | None = None, **kwargs) -> OutroConfig:
    data = {"message": "Thank you", "sub_message": "See you soon", "credits": ["Photos: Ana"], "duration": 5.0}
    data.update(kwargs)
    return OutroConfig(style=style, **data)


class TestCatalog:
    def test_variant_counts(self):
        assert len(INTRO_VARIANTS) >= 15
        assert len(OUTRO_VARIANTS) >= 15

    def test_theme_mappings_only_name_known_variants(self):
        for variants in THEME_INTRO_MAPPING.values():
            assert set(variants) <= set(INTRO_VARIANTS)
        for variants in THEME_OUTRO_MAPPING.values():
            assert set(variants) <= set(OUTRO_VARIANTS)


class TestVariantSelection:
    def test_allowed_variant_is_kept(self):
        assert select_intro_variant("curtain", _theme("wedding")) == "curtain"

    def test_disallowed_variant_falls_back_to_first_for_category(self):
        assert select_intro_variant("glitch", _theme("wedding")) == THEME_INTRO_MAPPING["wedding"][0]
        assert select_outro_variant("film-reel", _theme("birthday")) == THEME_OUTRO_MAPPING["birthday"][0]

    def test_theme_list_overrides_category_mapping(self):
        theme = _theme("wedding", intro_variants=["puzzle", "spiral"])

        assert select_intro_variant(None, theme) == "puzzle"
        assert select_intro_variant("spiral", theme) == "spiral"

    def test_unmapped_category_allows_every_variant(self):
        theme = _theme("default")

        assert select_intro_variant(None, theme) == DEFAULT_INTRO
        assert select_outro_variant(None, theme) == DEFAULT_OUTRO
        assert select_intro_variant("puzzle", theme) == "puzzle"
        assert select_intro_variant("no-such-variant", theme) == DEFAULT_INTRO

    def test_style_spellings(self):
        assert select_intro_variant("ELEGANT_FADE", _theme("wedding")) == "elegant-fade"


class TestIntro:
    @pytest.mark.parametrize("style", ["fade-zoom", "slide-up", "particles", "typewriter"])
    def test_text_respects_delays(self, style):
        theme = _theme()

        at_title = resolve_intro(TITLE_DELAY, _intro(style), theme)
        at_subtitle = resolve_intro(SUBTITLE_DELAY, _intro(style), theme)
        at_date = resolve_intro(DATE_DELAY, _intro(style), theme)
        settled = resolve_intro(4.0, _intro(style), theme)

        assert at_title.element("title").opacity == 0.0
        assert at_subtitle.element("subtitle").opacity == 0.0
        assert at_date.element("date").opacity == 0.0
        assert settled.element("title").opacity == pytest.approx(1.0)
        assert settled.element("date").opacity == pytest.approx(1.0)

    def test_fade_zoom_progress(self):
        state = resolve_intro(TITLE_DELAY + 0.5, _intro("fade-zoom"), _theme())

        title = state.element("title")
        assert title.opacity == pytest.approx(0.5)
        assert 0.8 < title.scale < 1.0

    def test_missing_text_produces_no_element(self):
        state = resolve_intro(3.0, _intro("fade-zoom", subtitle=None, date=None), _theme())

        assert state.element("subtitle") is None
        assert state.element("date") is None

    def test_exit_fades_to_background(self):
        theme = _theme()
        early = resolve_intro(1.0, _intro(), theme)
        end = resolve_intro(5.0, _intro(), theme)

        assert early.overlay_opacity == 0.0
        assert end.overlay_opacity == pytest.approx(1.0)
        assert end.overlay_color == theme.colors.background

    def test_offset_is_clamped(self):
        theme = _theme()

        assert resolve_intro(-1.0, _intro(), theme).offset == 0.0
        assert resolve_intro(99.0, _intro(), theme).offset == 5.0

    @pytest.mark.parametrize("style", sorted(INTRO_VARIANTS))
    def test_every_variant_resolves(self, style):
        for offset in (0.0, 1.0, 2.5, 4.9):
            state = resolve_intro(offset, _intro(style), _theme(), PHOTOS)
            assert state.variant == style
            assert all(0.0 <= el.opacity <= 1.0 for el in state.elements)


class TestOutro:
    def test_enters_from_background_and_exits_to_black(self):
        theme = _theme()

        start = resolve_outro(0.0, _outro(), theme)
        middle = resolve_outro(2.5, _outro(), theme)
        end = resolve_outro(5.0, _outro(), theme)

        assert start.overlay_opacity == pytest.approx(1.0)
        assert start.overlay_color == theme.colors.background
        assert middle.overlay_opacity == pytest.approx(0.0)
        assert end.overlay_color == "#000000"
        assert end.overlay_opacity == pytest.approx(1.0)

    def test_message_delay(self):
        state = resolve_outro(0.5, _outro("fade-out"), _theme())

        assert state.element("message").opacity == 0.0

    @pytest.mark.parametrize("style", sorted(OUTRO_VARIANTS))
    def test_every_variant_resolves(self, style):
        for offset in (0.0, 1.0, 2.5, 4.9):
            state = resolve_outro(offset, _outro(style), _theme(), PHOTOS)
            assert state.variant == style
            assert all(0.0 <= el.opacity <= 1.0 for el in state.elements)

    def test_photos_hidden_when_disabled(self):
        state = resolve_outro(3.0, _outro("photo-collage", show_photos=False), _theme(), PHOTOS)

        assert all(el.resource_id is None for el in state.elements)


class TestParticles:
    def test_same_seed_same_particles(self):
        config = ParticleConfig(type="confetti", count=40, seed=7)

        assert ParticleSystem(config).at(1.3) == ParticleSystem(config).at(1.3)

    def test_different_seed_differs(self):
        config = ParticleConfig(type="confetti", count=40)

        assert ParticleSystem(config, seed=1).particles != ParticleSystem(config, seed=2).particles

    def test_default_seed(self):
        assert ParticleConfig().seed == 42

    def test_count_is_respected(self):
        assert len(ParticleSystem(ParticleConfig(type="snow", count=25)).particles) == 25

    def test_fireworks_burst_by_default(self):
        assert ParticleSystem(ParticleConfig(type="fireworks", count=24)).motion == "burst"

    def test_variant_defaults(self):
        assert particle_system_for("outro", "confetti") is not None
        assert particle_system_for("intro", "fade-zoom") is None

    def test_project_config_overrides_variant(self):
        override = ParticleConfig(type="hearts", count=5)

        system = particle_system_for("intro", "fade-zoom", override)

        assert system is not None
        assert len(system.particles) == 5

    def test_sequence_particles_are_deterministic(self):
        theme = _theme()

        first = resolve_outro(2.0, _outro("confetti"), theme).particles
        second = resolve_outro(2.0, _outro("confetti"), theme).particles

        assert first
        assert first == second

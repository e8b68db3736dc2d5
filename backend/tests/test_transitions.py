"""Tests for the transition library."""

import pytest

from photostory.render.transitions import (
    DEFAULT_TRANSITION,
    TRANSITIONS,
    StylePatch,
    TransitionCategory,
    TransitionDirection,
    apply_transition,
    get_transition,
    is_known_transition,
    list_transitions,
    normalize_transition_id,
)

IN = TransitionDirection.IN
OUT = TransitionDirection.OUT


class TestCatalog:
    def test_at_least_twenty_transitions(self):
        assert len(TRANSITIONS) >= 20

    @pytest.mark.parametrize(
        "transition_id",
        ["fade", "cross-dissolve", "slide-left", "wipe", "circle-wipe", "zoom-in", "spin", "glitch", "morph"],
    )
    def test_known_ids(self, transition_id):
        assert is_known_transition(transition_id)
        assert get_transition(transition_id).id == transition_id

    def test_unknown_id_falls_back_to_fade(self):
        assert not is_known_transition("page-curl")
        assert get_transition("page-curl").id == DEFAULT_TRANSITION == "fade"
        assert apply_transition("page-curl", 0.25, IN) == apply_transition("fade", 0.25, IN)

    @pytest.mark.parametrize("raw", ["crossDissolve", "cross_dissolve", "cross-dissolve", " crossDissolve "])
    def test_id_spellings_normalize(self, raw):
        assert normalize_transition_id(raw) == "cross-dissolve"

    def test_missing_id_is_fade(self):
        assert normalize_transition_id(None) == "fade"
        assert normalize_transition_id("") == "fade"

    def test_list_by_category(self):
        wipes = list_transitions(TransitionCategory.WIPE)

        assert {t.id for t in wipes} >= {"wipe", "circle-wipe", "diamond-wipe", "star-wipe", "heart-wipe"}
        assert all(t.category == TransitionCategory.WIPE for t in wipes)
        assert len(list_transitions()) == len(TRANSITIONS)


class TestStyles:
    def test_fade_is_linear(self):
        assert apply_transition("fade", 0.25, IN).opacity == pytest.approx(0.25)
        assert apply_transition("fade", 0.25, OUT).opacity == pytest.approx(0.75)

    @pytest.mark.parametrize("progress", [0.0, 0.3, 0.5, 0.9, 1.0])
    def test_fade_directions_sum_to_one(self, progress):
        total = apply_transition("fade", progress, IN).opacity + apply_transition("fade", progress, OUT).opacity
        assert total == pytest.approx(1.0)

    def test_none_leaves_layer_untouched(self):
        assert apply_transition("none", 0.5, IN) == StylePatch()

    def test_progress_is_clamped(self):
        assert apply_transition("fade", 1.7, IN).opacity == 1.0
        assert apply_transition("fade", -0.5, IN).opacity == 0.0

    def test_cross_dissolve_keeps_outgoing_solid(self):
        assert apply_transition("cross-dissolve", 0.6, OUT).effective_opacity == 1.0
        assert 0.0 < apply_transition("cross-dissolve", 0.6, IN).effective_opacity < 1.0

    def test_slide_left_enters_from_the_right(self):
        start = apply_transition("slide-left", 0.0, IN).transform
        end = apply_transition("slide-left", 1.0, IN).transform

        assert start.translate_x == pytest.approx(100.0)
        assert end.translate_x == pytest.approx(0.0)

    def test_circle_wipe_grows(self):
        small = apply_transition("circle-wipe", 0.2, IN).clip_path
        large = apply_transition("circle-wipe", 0.8, IN).clip_path

        assert small.kind == "circle"
        assert small.radius < large.radius

    @pytest.mark.parametrize("transition_id", sorted(TRANSITIONS))
    @pytest.mark.parametrize("direction", [IN, OUT])
    def test_every_transition_yields_valid_opacity(self, transition_id, direction):
        for progress in (0.0, 0.25, 0.5, 0.75, 1.0):
            patch = apply_transition(transition_id, progress, direction)
            assert 0.0 <= patch.effective_opacity <= 1.0

    @pytest.mark.parametrize("transition_id", sorted(TRANSITIONS))
    def test_incoming_layer_is_fully_shown_at_the_end(self, transition_id):
        patch = apply_transition(transition_id, 1.0, IN)

        assert patch.effective_opacity == pytest.approx(1.0)
        if patch.transform is not None:
            assert patch.transform.translate_x == pytest.approx(0.0)
            assert patch.transform.translate_y == pytest.approx(0.0)

    @pytest.mark.parametrize("transition_id", sorted(t.id for t in TRANSITIONS.values() if t.symmetric))
    @pytest.mark.parametrize("progress", [0.0, 0.2, 0.5, 0.75, 1.0])
    def test_symmetric_transitions_mirror_opacity(self, transition_id, progress):
        outgoing = apply_transition(transition_id, progress, OUT).effective_opacity
        incoming = apply_transition(transition_id, 1 - progress, IN).effective_opacity

        assert outgoing == pytest.approx(incoming)

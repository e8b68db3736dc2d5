"""Tests for easing and interpolate()."""

import pytest

from photostory.utils.interpolation import (
    Easing,
    ExtrapolateType,
    clamp,
    get_easing_function,
    interpolate,
    lerp,
    spring,
)


class TestInterpolate:
    def test_linear(self):
        assert interpolate(50, [0, 100], [0, 1]) == pytest.approx(0.5)

    def test_multi_point(self):
        assert interpolate(75, [0, 50, 100], [0, 1, 0]) == pytest.approx(0.5)

    def test_clamps_by_default(self):
        assert interpolate(-10, [0, 100], [0, 1]) == 0
        assert interpolate(150, [0, 100], [0, 1]) == 1

    def test_extend_right(self):
        value = interpolate(150, [0, 100], [0, 1], extrapolate_right=ExtrapolateType.EXTEND)
        assert value == pytest.approx(1.5)

    def test_easing_is_applied(self):
        assert interpolate(50, [0, 100], [0, 1], easing=Easing.ease_in) == pytest.approx(0.125)

    def test_rejects_mismatched_ranges(self):
        with pytest.raises(ValueError):
            interpolate(0, [0, 1], [0, 1, 2])

    def test_rejects_non_increasing_input(self):
        with pytest.raises(ValueError):
            interpolate(0, [1, 1], [0, 1])


class TestEasing:
    @pytest.mark.parametrize("name", ["ease_in_out", "ease-in-out", "easeInOut"])
    def test_name_spellings(self, name):
        assert get_easing_function(name) is get_easing_function("ease_in_out")

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown easing function"):
            get_easing_function("wobble")

    @pytest.mark.parametrize("name", ["linear", "ease_in", "ease_out", "ease_in_out", "bounce"])
    def test_endpoints(self, name):
        fn = get_easing_function(name)
        assert fn(0) == pytest.approx(0, abs=1e-6)
        assert fn(1) == pytest.approx(1, abs=1e-6)


def test_clamp_and_lerp():
    assert clamp(1.5) == 1.0
    assert clamp(-3, 0, 10) == 0
    assert lerp(10, 20, 0.25) == pytest.approx(12.5)


class TestEasingShapes:
    def test_back_overshoots_then_settles(self):
        samples = [Easing.back()(i / 100) for i in range(101)]

        assert max(samples) > 1.0
        assert samples[-1] == pytest.approx(1.0)

    def test_bounce_dips_after_first_reaching_one(self):
        bounce = get_easing_function("bounce")

        assert bounce(1 / 2.75) == pytest.approx(1.0)
        assert bounce(0.5) < 1.0

    def test_spring_overshoots(self):
        samples = [spring(i / 50) for i in range(0, 300)]

        assert max(samples) > 1.0
        assert spring(0) == 0.0
        assert samples[-1] == pytest.approx(1.0, abs=1e-3)

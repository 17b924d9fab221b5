import pytest

from tuner.stability import DeviationSmoother, StabilityFilter


class TestStabilityFilter:
    def test_identical_history_is_stable(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0)
        for i in range(5):
            note, locked = f.update(110.0, "A2", now_ms=i * 50)
        assert f.is_stable()
        assert (note, locked) == ("A2", True)

    def test_spread_above_threshold_is_unstable(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0)
        for freq in (110.0, 110.2, 110.4, 111.5):
            f.push(freq)
        assert not f.is_stable()

    def test_spread_equal_to_threshold_is_stable(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0)
        f.push(110.0)
        f.push(111.0)
        assert f.is_stable()

    def test_history_is_bounded_fifo(self):
        f = StabilityFilter(window_size=3)
        for freq in (100.0, 200.0, 300.0, 400.0):
            f.push(freq)
        assert list(f.history) == [200.0, 300.0, 400.0]
        assert len(f.history) == f.window_size

    def test_outlier_leaves_window(self):
        f = StabilityFilter(window_size=3, threshold_hz=1.0)
        f.push(300.0)
        for _ in range(3):
            f.push(110.0)
        assert f.is_stable()

    def test_never_stable_shows_placeholder(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0, placeholder="--")
        f.update(100.0, "G2", 0)
        note, locked = f.update(150.0, "D3", 10)
        assert (note, locked) == ("--", False)

    def test_hold_keeps_last_note_then_placeholder(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0, hold_time_ms=700, placeholder="--")
        assert f.update(110.0, "A2", 0) == ("A2", True)
        # Bend: spread grows beyond the threshold.
        assert f.update(113.0, "A2", 100) == ("A2", False)
        assert f.update(117.0, "A#2", 700) == ("A2", False)
        assert f.update(120.0, "A#2", 701) == ("--", False)

    def test_relock_after_instability(self):
        f = StabilityFilter(window_size=2, threshold_hz=1.0, hold_time_ms=700)
        f.update(110.0, "A2", 0)
        f.update(150.0, "D3", 1000)
        assert f.update(150.2, "D3", 1050) == ("D3", True)

    def test_reset_forgets_held_note(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0, hold_time_ms=700)
        f.update(110.0, "A2", 0)
        f.reset()
        assert len(f.history) == 0
        f.update(110.0, "A2", 10)
        assert f.update(130.0, "C3", 20) == ("A2", False)
        f.reset()
        f.push(110.0)
        f.push(130.0)
        assert f.last_stable_note is None

    def test_clear_keeps_hold_state(self):
        f = StabilityFilter(window_size=5, threshold_hz=1.0, hold_time_ms=700)
        f.update(110.0, "A2", 0)
        f.clear()
        assert len(f.history) == 0
        assert f.last_stable_note == "A2"

    def test_window_size_must_be_positive(self):
        with pytest.raises(ValueError):
            StabilityFilter(window_size=0)


class TestDeviationSmoother:
    @pytest.mark.parametrize("target", [40.0, -25.0, 0.5])
    def test_step_converges_monotonically_without_overshoot(self, target):
        smoother = DeviationSmoother(alpha=0.25)
        previous = 0.0
        for _ in range(200):
            value = smoother.update(target)
            assert abs(value - target) <= abs(previous - target)
            assert min(0.0, target) <= value <= max(0.0, target)
            previous = value
        assert value == pytest.approx(target)

    def test_first_update_is_alpha_weighted(self):
        smoother = DeviationSmoother(alpha=0.25)
        assert smoother.update(20.0) == pytest.approx(5.0)
        assert smoother.update(20.0) == pytest.approx(8.75)

    def test_reset_returns_to_zero(self):
        smoother = DeviationSmoother(alpha=0.25)
        smoother.update(20.0)
        smoother.reset()
        assert smoother.value == 0.0

    def test_disabled_passes_raw_value(self):
        smoother = DeviationSmoother(alpha=0.25, enabled=False)
        assert smoother.update(-12.0) == -12.0

    @pytest.mark.parametrize("alpha", [0.0, -0.1, 1.5])
    def test_alpha_range(self, alpha):
        with pytest.raises(ValueError):
            DeviationSmoother(alpha=alpha)

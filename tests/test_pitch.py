import numpy as np
import pytest

from conftest import sine
from tuner.pitch import (
    autocorrelation_pitch,
    first_key_maximum,
    first_nonpositive_lag,
    frame_peak,
    frame_rms,
    lag_bounds,
)

FRAME_CONFIGS = [(44100, 2048), (22050, 1024), (44100, 4096)]


def test_frame_rms_int16_does_not_overflow():
    frame = np.full(2048, 30000, dtype=np.int16)
    assert frame_rms(frame) == 30000.0


def test_frame_rms_and_peak_of_empty_frame():
    assert frame_rms(np.array([], dtype=np.int16)) == 0.0
    assert frame_peak(np.array([], dtype=np.int16)) == 0


def test_frame_peak_handles_int16_minimum():
    assert frame_peak(np.array([-32768, 5], dtype=np.int16)) == 32768


def test_lag_bounds():
    assert lag_bounds(44100, 2048, 50, 1000) == (44, 882)
    assert lag_bounds(22050, 1024, 30, 2000) == (11, 735)
    # max lag is clamped to the frame
    assert lag_bounds(44100, 512, 50, 1000) == (44, 511)


@pytest.mark.parametrize("sample_rate,length", FRAME_CONFIGS)
@pytest.mark.parametrize("frequency", [196.0, 246.94, 329.63, 440.0, 659.26])
def test_raw_pure_tone_within_one_lag_step(sample_rate, length, frequency):
    estimate = autocorrelation_pitch(sine(frequency, sample_rate, length), sample_rate, 50, 1000)
    assert estimate is not None
    assert abs(estimate.lag - sample_rate / frequency) <= 1
    assert estimate.frequency_hz == sample_rate / estimate.lag
    assert estimate.correlation > 0


@pytest.mark.parametrize("sample_rate,length", FRAME_CONFIGS)
@pytest.mark.parametrize("frequency", [82.41, 110.0, 146.83, 196.0, 329.63, 440.0, 659.26])
def test_nsdf_pure_tone_within_one_lag_step(sample_rate, length, frequency):
    if length < 3 * sample_rate / frequency:
        pytest.skip("frame shorter than three periods")
    estimate = autocorrelation_pitch(sine(frequency, sample_rate, length), sample_rate, 50, 1000, mode="nsdf")
    assert estimate is not None
    assert abs(estimate.lag - sample_rate / frequency) <= 1
    assert 0 < estimate.correlation <= 1.0 + 1e-9


def test_440_at_44100():
    estimate = autocorrelation_pitch(sine(440.0), 44100, 50, 1000)
    assert estimate.lag == 100
    assert estimate.frequency_hz == pytest.approx(441.0)


def test_interpolation_refines_estimate():
    estimate = autocorrelation_pitch(sine(440.0), 44100, 50, 1000, mode="nsdf", interpolate=True)
    assert estimate.lag == 100
    assert estimate.frequency_hz == pytest.approx(440.0, abs=0.5)


@pytest.mark.parametrize("mode", ["raw", "nsdf"])
def test_silence_has_no_pitch(mode):
    assert autocorrelation_pitch(np.zeros(2048, dtype=np.int16), 44100, 50, 1000, mode=mode) is None


def test_estimate_above_fmax_is_discarded():
    # The shortest lag (44) corresponds to 1002.3 Hz, just above the 1000 Hz bound.
    assert autocorrelation_pitch(sine(1002.3), 44100, 50, 1000) is None


def test_wide_range_accepts_low_tone():
    estimate = autocorrelation_pitch(sine(35.0, length=4096), 44100, 30, 2000, mode="nsdf")
    assert estimate is not None
    assert estimate.frequency_hz == pytest.approx(35.0, abs=0.1)


def test_dc_offset_is_removed():
    frame = (sine(196.0).astype(np.int32) + 5000).astype(np.int16)
    estimate = autocorrelation_pitch(frame, 44100, 50, 1000)
    assert estimate.frequency_hz == pytest.approx(196.0, abs=1.0)


def test_zero_lag_lobe_wins_without_skipping():
    # For a low E the unnormalized sum at the smallest lag outweighs the period.
    frame = sine(82.41)
    plain = autocorrelation_pitch(frame, 44100, 50, 1000, skip_zero_lag_lobe=False)
    assert plain.lag == 44
    skipped = autocorrelation_pitch(frame, 44100, 50, 1000)
    assert abs(skipped.lag - 44100 / 82.41) <= 10


def test_plain_sum_when_dc_removal_and_lobe_skip_are_off():
    rng = np.random.default_rng(7)
    frame = (sine(247.0).astype(np.int32) + 300 + rng.integers(-400, 400, 2048)).astype(np.int16)
    x = frame.astype(np.float64)
    min_lag, max_lag = lag_bounds(44100, len(x), 50, 1000)
    sums = [np.dot(x[:len(x) - lag], x[lag:]) for lag in range(min_lag, max_lag + 1)]
    expected = min_lag + int(np.argmax(sums))

    estimate = autocorrelation_pitch(frame, 44100, 50, 1000, remove_dc=False, skip_zero_lag_lobe=False)
    assert estimate.lag == expected
    assert estimate.correlation == pytest.approx(max(sums))


def test_unknown_mode():
    with pytest.raises(ValueError):
        autocorrelation_pitch(sine(440.0), 44100, 50, 1000, mode="yin")


def test_first_nonpositive_lag():
    assert first_nonpositive_lag(np.array([10.0, 5.0, 1.0, -2.0, 3.0])) == 3
    assert first_nonpositive_lag(np.array([10.0, 5.0, 1.0])) == 3


def test_first_key_maximum_prefers_earlier_peak():
    values = np.array([0.1, 0.95, 0.2, 0.3, 1.0, 0.4])
    assert first_key_maximum(values, 0.9) == 1
    assert first_key_maximum(values, 0.99) == 4

"""
Autocorrelation pitch detection on a single audio frame.
"""

import math
from collections import namedtuple

import numpy as np

PitchEstimate = namedtuple("PitchEstimate", ["frequency_hz", "lag", "correlation"])

AUTOCORRELATION_MODES = ("raw", "nsdf")


def frame_rms(frame):
    """
    Root-mean-square amplitude of a frame, computed in float64 so that int16
    samples cannot overflow when squared.
    """
    if len(frame) == 0:
        return 0.0
    samples = np.asarray(frame, dtype=np.float64)
    return float(np.sqrt(np.mean(samples ** 2)))


def frame_peak(frame):
    if len(frame) == 0:
        return 0
    return int(np.max(np.abs(np.asarray(frame, dtype=np.int64))))


def lag_bounds(sample_rate, frame_length, fmin, fmax):
    """
    Lag search range [min_lag, max_lag] for an instrument range.

    Args:
        sample_rate (int): The audio sample rate.
        frame_length (int): Number of samples in the frame.
        fmin (float): Minimum frequency to consider.
        fmax (float): Maximum frequency to consider.

    Returns:
        tuple: (min_lag, max_lag); min_lag > max_lag means nothing can be searched.
    """
    min_lag = max(1, int(sample_rate / fmax))
    max_lag = min(int(sample_rate / fmin), frame_length - 1)
    return min_lag, max_lag


def parabolic_interp(y, i):
    # refine peak location using a parabola fit around i
    if i <= 0 or i >= len(y) - 1:
        return float(i)
    denom = y[i - 1] - 2 * y[i] + y[i + 1]
    if denom == 0:
        return float(i)
    return i + 0.5 * (y[i - 1] - y[i + 1]) / denom


def first_nonpositive_lag(corr):
    """
    Index of the first lag > 0 where the autocorrelation drops to zero or below,
    i.e. the end of the lobe around lag 0. Returns len(corr) if it never does.
    """
    below = np.nonzero(corr[1:] <= 0)[0]
    return int(below[0]) + 1 if below.size else len(corr)


def nsdf(x, corr, lags):
    """
    Normalized square difference (McLeod) for the given lags:
    2 * r(lag) / (sum x[i]^2 + sum x[i + lag]^2) over the overlapping samples.
    Values lie in [-1, 1] and reach 1 exactly at the period of a pure tone,
    without the bias towards short lags that the raw sum has.
    """
    # Precompute squared values and their cumulative sum for fast energy calculation.
    cumsum = np.cumsum(x ** 2)
    total_energy = cumsum[-1]
    energy1 = cumsum[len(x) - lags - 1]
    energy2 = total_energy - cumsum[lags - 1]
    denominator = energy1 + energy2
    safe = np.where(denominator > 0, denominator, 1.0)
    return np.where(denominator > 0, 2.0 * corr[lags] / safe, 0.0)


def first_key_maximum(values, ratio=0.9):
    """
    Index of the first local maximum reaching ratio * max(values). The first
    global maximum always qualifies, so an index is always returned.
    """
    left = np.concatenate(([-np.inf], values[:-1]))
    right = np.concatenate((values[1:], [-np.inf]))
    candidates = np.nonzero((values >= ratio * np.max(values)) & (values >= left) & (values >= right))[0]
    return int(candidates[0])


def autocorrelation_pitch(frame, sample_rate, fmin=50.0, fmax=1000.0, remove_dc=True,
                          interpolate=False, skip_zero_lag_lobe=True, mode="raw", peak_ratio=0.9):
    """
    Detects pitch using the autocorrelation method.

    In "raw" mode, for each lag in [sample_rate / fmax, sample_rate / fmin] the
    unnormalized autocorrelation sum(x[i] * x[i + lag]) is evaluated and the
    first lag with the largest value is taken as the period. "nsdf" mode
    normalizes each lag by the energy of the overlapping samples and takes the
    first local maximum within peak_ratio of the best one.

    Because the raw sum runs over L - lag products, small lags collect more
    terms: the lobe around lag 0 can outscore the true period for low notes,
    and the peak itself is pulled a little towards shorter lags. With
    skip_zero_lag_lobe the search starts no earlier than the first lag where
    the autocorrelation turns non-positive.

    Args:
        frame (np.array): The audio frame (int16 or float samples).
        sample_rate (int): The audio sample rate.
        fmin (float): Minimum frequency to consider.
        fmax (float): Maximum frequency to consider.
        remove_dc (bool): Subtract the frame mean first.
        interpolate (bool): Refine the best lag with parabolic interpolation.
        skip_zero_lag_lobe (bool): Exclude the lobe around lag 0 from the search.
        mode (str): "raw" or "nsdf".
        peak_ratio (float): Key maximum threshold for "nsdf" mode.

    Returns:
        PitchEstimate or None: None when no lag correlates positively, or when
        the resulting frequency is not finite or lies outside [fmin, fmax].
    """
    if mode not in AUTOCORRELATION_MODES:
        raise ValueError(f"Unknown autocorrelation mode {mode!r}")
    x = np.asarray(frame, dtype=np.float64)
    if remove_dc and len(x):
        x = x - np.mean(x)
    min_lag, max_lag = lag_bounds(sample_rate, len(x), fmin, fmax)
    if min_lag > max_lag:
        return None

    # Full autocorrelation; index k of the second half is the sum for lag k.
    corr = np.correlate(x, x, mode="full")[len(x) - 1:]
    if skip_zero_lag_lobe:
        lobe_end = first_nonpositive_lag(corr[:max_lag + 1])
        if lobe_end <= max_lag:
            min_lag = max(min_lag, lobe_end)

    if mode == "raw":
        curve = corr
        segment = corr[min_lag:max_lag + 1]
        peak_index = int(np.argmax(segment))
    else:
        curve = np.zeros_like(corr)
        lags = np.arange(min_lag, max_lag + 1)
        segment = nsdf(x, corr, lags)
        curve[lags] = segment
        if not np.max(segment) > 0:
            return None
        peak_index = first_key_maximum(segment, peak_ratio)

    best_corr = float(segment[peak_index])
    if not best_corr > 0:
        return None
    lag = peak_index + min_lag

    period = parabolic_interp(curve, lag) if interpolate else float(lag)
    if period <= 0:
        return None
    frequency = sample_rate / period
    if not math.isfinite(frequency) or frequency < fmin or frequency > fmax:
        return None
    return PitchEstimate(frequency, lag, best_corr)

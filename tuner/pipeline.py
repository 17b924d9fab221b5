"""
Per-frame processing: calibrate, gate, detect, map, stabilise, smooth, publish.
"""

import logging
import time

from tuner.calibration import NoiseFloorCalibrator, NoiseGate
from tuner.defaults import defaults as shared_defaults
from tuner.notes import NoteMapper, reference_table_from_defaults
from tuner.pitch import autocorrelation_pitch, frame_peak, frame_rms
from tuner.stability import DeviationSmoother, StabilityFilter
from tuner.state import StatePublisher, TunerState, silence_state

logger = logging.getLogger(__name__)


class TunerPipeline:
    """
    Runs one frame at a time through the tuner stages and publishes the result.

    The pipeline is synchronous and not thread-safe; a single worker owns it.
    Only the publisher is shared with readers.

    Args:
        defaults (Defaults): Configuration; the shared instance if omitted.
        publisher (StatePublisher): Where snapshots go; one is created if omitted.
        clock (callable): Monotonic clock in seconds, used for the hold timer.
    """
    def __init__(self, defaults=None, publisher=None, clock=time.monotonic):
        self.defaults = defaults if defaults is not None else shared_defaults
        self.defaults.validate()
        self.clock = clock
        self.publisher = publisher if publisher is not None else StatePublisher(
            silence_state(self.defaults.NOTE_PLACEHOLDER)
        )

        d = self.defaults
        self.table = reference_table_from_defaults(d)
        self.mapper = NoteMapper(self.table, d.DEVIATION_UNIT)
        self.calibrator = NoiseFloorCalibrator(d.CALIBRATION_FRAMES)
        self.gate = NoiseGate(d.NOISE_MULTIPLIER, d.PEAK_THRESHOLD)
        self.stability = StabilityFilter(
            d.HISTORY_WINDOW_SIZE, d.STABILITY_THRESHOLD_HZ, d.HOLD_TIME_MS, d.NOTE_PLACEHOLDER
        )
        self.smoother = DeviationSmoother(d.SMOOTHING_ALPHA, d.SMOOTHING_ENABLED)

    @property
    def calibrated(self):
        return self.calibrator.calibrated

    def reset(self):
        """
        Start a fresh session: recalibrate, forget the history and zero the needle.
        """
        self.calibrator.reset()
        self.stability.reset()
        self.smoother.reset()
        self.publisher.publish(silence_state(self.defaults.NOTE_PLACEHOLDER))

    def _now_ms(self):
        return self.clock() * 1000.0

    def process_frame(self, samples, now_ms=None):
        """
        Process one frame of int16 mono samples.

        Args:
            samples (np.array): One frame of samples at defaults.SAMPLE_RATE.
            now_ms (float): Timestamp for the hold timer; taken from the clock if None.

        Returns:
            TunerState or None: The published snapshot, or None if the frame
            produced no update (empty read, no usable pitch, out of range).
        """
        if samples is None or len(samples) == 0:
            return None
        d = self.defaults

        rms = frame_rms(samples)
        if self.calibrator.observe(rms):
            state = silence_state(d.NOTE_PLACEHOLDER, calibrating=True)
            self.publisher.publish(state)
            return state

        if not self.gate.accepts(rms, self.calibrator.floor, frame_peak(samples)):
            if d.RESET_HISTORY_ON_SILENCE:
                self.stability.clear()
            state = silence_state(d.NOTE_PLACEHOLDER)
            self.publisher.publish(state)
            return state

        estimate = autocorrelation_pitch(
            samples,
            d.SAMPLE_RATE,
            d.FMIN,
            d.FMAX,
            remove_dc=d.REMOVE_DC,
            interpolate=d.PARABOLIC_INTERPOLATION,
            skip_zero_lag_lobe=d.SKIP_ZERO_LAG_LOBE,
            mode=d.AUTOCORRELATION_MODE,
            peak_ratio=d.NSDF_PEAK_RATIO,
        )
        if estimate is None:
            return None

        match = self.mapper.map(estimate.frequency_hz)
        deviation = self.smoother.update(match.deviation)
        if now_ms is None:
            now_ms = self._now_ms()
        note, locked = self.stability.update(estimate.frequency_hz, match.note_name, now_ms)

        state = TunerState(
            frequency_hz=estimate.frequency_hz,
            note=note,
            deviation=deviation,
            reference_hz=match.reference_hz,
            locked=locked,
            calibrating=False,
        )
        self.publisher.publish(state)
        return state

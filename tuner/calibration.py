"""
Ambient noise floor calibration and the RMS noise gate.
"""

import logging

logger = logging.getLogger(__name__)


# --------------------------- Noise Floor Calibrator ---------------------------
class NoiseFloorCalibrator:
    """
    Averages the RMS of the first `frame_count` frames into a noise floor.

    The calibrator is a two-state machine: calibrating until frame_count frames
    have been observed, then calibrated with a fixed floor. The floor is set
    exactly once per cycle and only reset() starts a new cycle. With
    frame_count == 0 the calibrator starts out calibrated with a zero floor.
    """
    def __init__(self, frame_count=20):
        if frame_count < 0:
            raise ValueError(f"frame_count must be non-negative, got {frame_count}")
        self.frame_count = frame_count
        self.reset()

    def reset(self):
        self.accumulated_rms = 0.0
        self.frames_seen = 0
        self.floor = 0.0
        self.calibrated = self.frame_count == 0

    def observe(self, rms):
        """
        Feed one frame's RMS.

        Returns:
            bool: True while the frame was consumed by calibration (no pitch
            output for it), False once calibration has already finished.
        """
        if self.calibrated:
            return False
        self.accumulated_rms += rms
        self.frames_seen += 1
        if self.frames_seen >= self.frame_count:
            self.floor = self.accumulated_rms / self.frames_seen
            self.calibrated = True
            logger.info("Noise floor calibrated: RMS %.2f over %d frames", self.floor, self.frames_seen)
        return True


# --------------------------- Noise Gate ---------------------------
class NoiseGate:
    """
    Rejects frames whose RMS is below floor * multiplier.

    The boundary is inclusive on the accepting side: rms == floor * multiplier
    passes. An optional absolute peak threshold provides a coarse gate that
    works even without calibration.
    """
    def __init__(self, multiplier=2.5, peak_threshold=0):
        self.multiplier = multiplier
        self.peak_threshold = peak_threshold

    def threshold(self, floor):
        return floor * self.multiplier

    def accepts(self, rms, floor, peak=None):
        if rms < self.threshold(floor):
            return False
        if self.peak_threshold > 0 and peak is not None and peak < self.peak_threshold:
            return False
        return True

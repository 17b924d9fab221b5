"""
Real-time monophonic tuner core.

Frames of int16 samples go through noise-floor calibration, an RMS noise gate,
autocorrelation pitch detection, nearest-note mapping, a stability/hold filter
and deviation smoothing; the result is published as an immutable TunerState.
"""

from tuner.defaults import Defaults
from tuner.notes import NoteMapper, build_reference_table
from tuner.pipeline import TunerPipeline
from tuner.state import StatePublisher, TunerState
from tuner.worker import Tuner

__all__ = [
    "Defaults",
    "NoteMapper",
    "build_reference_table",
    "TunerPipeline",
    "StatePublisher",
    "TunerState",
    "Tuner",
]

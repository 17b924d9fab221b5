import numpy as np
import pytest
from PySide6.QtCore import QCoreApplication


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


def sine(frequency, sample_rate=44100, length=2048, amplitude=8000, phase=0.0):
    n = np.arange(length)
    wave = amplitude * np.sin(2 * np.pi * frequency * n / sample_rate + phase)
    return np.round(wave).astype(np.int16)


def constant_rms_frame(rms, length=2048):
    """A +/-rms square wave; its RMS is exactly `rms`."""
    frame = np.full(length, rms, dtype=np.int16)
    frame[1::2] = -rms
    return frame

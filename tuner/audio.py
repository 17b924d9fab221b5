"""
Audio frame sources.

A source hands out fixed-size frames of signed 16-bit mono samples:

    source.open()          acquire the device (raises AudioSourceError)
    source.read_frame()    block until one frame is ready; None once closed
    source.close()         release the device and wake a blocked reader

MicrophoneSource wraps a sounddevice input stream; ToneSource synthesises a
sine wave for demos and tests.
"""

import logging
import time

import numpy as np
from PySide6.QtCore import QMutex, QWaitCondition

logger = logging.getLogger(__name__)


class AudioSourceError(Exception):
    """The audio device could not be opened (missing device, permission denied, ...)."""


def _sounddevice():
    # sounddevice loads PortAudio at import time, so it is only imported once a
    # real device is needed.
    try:
        import sounddevice
    except (ImportError, OSError) as e:
        raise AudioSourceError(f"sounddevice is unavailable: {e}") from e
    return sounddevice


def list_input_devices():
    """
    Returns:
        list: (index, name, host API name) for every device with input channels.
    """
    sd = _sounddevice()
    hostapis = sd.query_hostapis()
    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info.get("max_input_channels", 0) > 0:
            devices.append((index, info["name"], hostapis[info["hostapi"]]["name"]))
    return devices


# --------------------------- Microphone Source ---------------------------
class MicrophoneSource:
    """
    This class handles connecting to the audio stream using a callback model and
    fills a ring buffer with incoming int16 samples. read_frame() blocks on a
    wait condition until a whole frame has been captured.
    """
    def __init__(self, device_index=None, sample_rate=44100, block_size=2048, rebuffer_size=8192):
        self.device_index = device_index
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.rebuffer_size = max(rebuffer_size, block_size)
        self.ring_buffer = np.empty((0,), dtype=np.int16)
        self.mutex = QMutex()
        self.frame_ready = QWaitCondition()
        self.stream = None
        self.closed = True

    @classmethod
    def from_defaults(cls, defaults):
        return cls(defaults.INPUT_DEVICE, defaults.SAMPLE_RATE, defaults.CHUNK_SIZE, defaults.REBUFFER_SIZE)

    def open(self):
        sd = _sounddevice()
        stream = None
        try:
            device_info = sd.query_devices(self.device_index, kind="input")
            suggested_latency = device_info.get("default_low_input_latency", 0.1)
            stream = sd.InputStream(
                device=self.device_index,
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                dtype="int16",
                channels=1,
                callback=self._callback,
                latency=suggested_latency,
            )
            self.closed = False
            stream.start()
        except Exception as e:
            self.closed = True
            if stream is not None:
                stream.close()
            logger.error("Stream creation failed: %s", e)
            raise AudioSourceError(f"Could not open input device {self.device_index}: {e}") from e

        self.stream = stream
        logger.info(
            "Stream opened: device=%s (%s) sample_rate=%s block_size=%s",
            self.device_index, device_info.get("name", "?"), self.sample_rate, self.block_size,
        )

    def _callback(self, indata, frames, time_info, status):
        if status:
            logger.debug("Stream callback status: %s", status)
        new_samples = np.squeeze(indata.copy()).astype(np.int16, copy=False)

        self.mutex.lock()
        try:
            self.ring_buffer = np.concatenate((self.ring_buffer, new_samples))
            # Keep only the most recent samples that fit
            if len(self.ring_buffer) > self.rebuffer_size:
                self.ring_buffer = self.ring_buffer[-self.rebuffer_size:]
            if len(self.ring_buffer) >= self.block_size:
                self.frame_ready.wakeAll()
        finally:
            self.mutex.unlock()

    def read_frame(self):
        """
        Blocks until one frame of block_size samples is available.

        Returns:
            np.array or None: A copy of the frame, or None once the source is closed.
        """
        self.mutex.lock()
        try:
            while not self.closed and len(self.ring_buffer) < self.block_size:
                self.frame_ready.wait(self.mutex)
            if self.closed:
                return None
            frame = self.ring_buffer[:self.block_size].copy()
            self.ring_buffer = self.ring_buffer[self.block_size:]
            return frame
        finally:
            self.mutex.unlock()

    def close(self):
        """Safely stop and clean up the audio stream."""
        self.mutex.lock()
        try:
            self.closed = True
            self.ring_buffer = np.empty((0,), dtype=np.int16)
            stream, self.stream = self.stream, None
            self.frame_ready.wakeAll()
        finally:
            self.mutex.unlock()
        # The stream is stopped outside the lock because stop() waits for any
        # in-flight callback, which itself takes the lock.
        if stream is not None:
            try:
                stream.stop()
            except Exception as e:
                logger.warning("Error stopping stream: %s", e)
            try:
                stream.close()
            except Exception as e:
                logger.warning("Error closing stream: %s", e)


# --------------------------- Tone Source ---------------------------
class ToneSource:
    """
    Generates a continuous sine wave as int16 frames.

    Args:
        frequency (float): Tone frequency in Hz.
        sample_rate (int): Sample rate in Hz.
        block_size (int): Samples per frame.
        amplitude (int): Peak amplitude in int16 units.
        noise (float): Standard deviation of added white noise, in int16 units.
        realtime (bool): Pace read_frame() to the frame duration.
        lead_in (int): Frames of noise only before the tone starts, so that the
            noise floor is calibrated on the background rather than the tone.
    """
    def __init__(self, frequency, sample_rate=44100, block_size=2048, amplitude=8000, noise=0.0, realtime=True,
                 lead_in=0):
        self.frequency = frequency
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.amplitude = amplitude
        self.noise = noise
        self.realtime = realtime
        self.lead_in = lead_in
        self.frames_read = 0
        self.position = 0
        self.closed = True
        self._rng = np.random.default_rng()

    @classmethod
    def from_defaults(cls, defaults, frequency, **kwargs):
        return cls(frequency, defaults.SAMPLE_RATE, defaults.CHUNK_SIZE, **kwargs)

    def open(self):
        self.closed = False
        self.position = 0
        self.frames_read = 0

    def read_frame(self):
        if self.closed:
            return None
        if self.realtime:
            time.sleep(self.block_size / self.sample_rate)
        self.frames_read += 1
        if self.frames_read <= self.lead_in:
            signal = np.zeros(self.block_size)
        else:
            n = np.arange(self.position, self.position + self.block_size)
            self.position += self.block_size
            signal = self.amplitude * np.sin(2 * np.pi * self.frequency * n / self.sample_rate)
        if self.noise:
            signal = signal + self._rng.normal(0.0, self.noise, self.block_size)
        return np.clip(np.round(signal), -32768, 32767).astype(np.int16)

    def close(self):
        self.closed = True

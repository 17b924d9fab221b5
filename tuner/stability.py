"""
Note locking with hold-time hysteresis, and deviation smoothing.
"""

from collections import deque


# --------------------------- Stability / Hold Filter ---------------------------
class StabilityFilter:
    """
    Decides which note name to display from a short window of recent estimates.

    The window is a bounded FIFO of the last `window_size` frequencies. It is
    stable when its spread (max - min) is within `threshold_hz`. A stable frame
    shows the current note and refreshes the hold timer; an unstable frame keeps
    the last stable note on screen for `hold_time_ms`, after which the
    placeholder is shown until the pitch settles again.
    """
    def __init__(self, window_size=5, threshold_hz=1.0, hold_time_ms=700, placeholder="--"):
        if window_size < 1:
            raise ValueError(f"window_size must be at least 1, got {window_size}")
        self.history = deque(maxlen=window_size)
        self.threshold_hz = threshold_hz
        self.hold_time_ms = hold_time_ms
        self.placeholder = placeholder
        self.last_stable_ms = None
        self.last_stable_note = None

    @property
    def window_size(self):
        return self.history.maxlen

    def push(self, frequency):
        self.history.append(frequency)

    def is_stable(self):
        if not self.history:
            return False
        return max(self.history) - min(self.history) <= self.threshold_hz

    def update(self, frequency, note_name, now_ms):
        """
        Push a new estimate and work out what to display.

        Args:
            frequency (float): Detected frequency in Hz.
            note_name (str): Nearest note for this frequency.
            now_ms (float): Monotonic timestamp in milliseconds.

        Returns:
            tuple: (display_note, locked)
        """
        self.push(frequency)
        if self.is_stable():
            self.last_stable_ms = now_ms
            self.last_stable_note = note_name
            return note_name, True
        if self.last_stable_ms is None or now_ms - self.last_stable_ms > self.hold_time_ms:
            return self.placeholder, False
        return self.last_stable_note, False

    def clear(self):
        self.history.clear()

    def reset(self):
        self.clear()
        self.last_stable_ms = None
        self.last_stable_note = None


# --------------------------- Deviation Smoother ---------------------------
class DeviationSmoother:
    """
    Exponential moving average: smoothed = smoothed * (1 - alpha) + raw * alpha.
    """
    def __init__(self, alpha=0.25, enabled=True):
        if not 0 < alpha <= 1:
            raise ValueError(f"alpha must be in (0, 1], got {alpha}")
        self.alpha = alpha
        self.enabled = enabled
        self.value = 0.0

    def update(self, raw_deviation):
        if not self.enabled:
            self.value = raw_deviation
            return raw_deviation
        self.value = self.value * (1.0 - self.alpha) + raw_deviation * self.alpha
        return self.value

    def reset(self):
        self.value = 0.0

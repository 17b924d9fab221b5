"""
Configuration for the tuner core.

All tunable constants live on a single Defaults object. Values are plain
uppercase attributes so they can be read from anywhere in the pipeline and
persisted to / restored from a JSON file (keys stored in lowercase).
"""

import json
import logging
import os

from tuner.pitch import AUTOCORRELATION_MODES

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".string-tuner.json")

DEVIATION_UNITS = ("cents", "hz")


# --------------------------- Defaults Class ---------------------------
class Defaults:
    """
    This class encapsulates all default constants and configuration values.
    Methods:
        InitDefaults() - Loads or resets values to defaults.
        LoadConfigFromFile() - Load configuration from a file.
        SaveConfigToFile() - Save current configuration to a file.
        validate() - Check that the current values are consistent.
    """
    def __init__(self):
        self.InitDefaults()

    def InitDefaults(self):
        # Audio Processing Defaults
        self.SAMPLE_RATE = 44100                 # Audio sample rate in Hertz.
        self.CHUNK_SIZE = 2048                   # Number of samples per analysed frame (~46 ms at 44.1 kHz).
        self.REBUFFER_SIZE = 8192                # Maximum number of samples kept in the capture ring buffer.
        self.INPUT_DEVICE = None                 # sounddevice input device index; None selects the system default.

        # Noise floor calibration and gating
        self.CALIBRATION_FRAMES = 20             # Frames averaged to establish the ambient RMS baseline.
        self.NOISE_MULTIPLIER = 2.5              # Frame RMS must reach floor * multiplier to be analysed.
        self.PEAK_THRESHOLD = 0                  # Coarse fallback gate on peak |sample|; 0 disables it.
        self.RESET_HISTORY_ON_SILENCE = False    # Clear the stability window whenever a frame is gated out.

        # Pitch detection
        self.FMIN = 50.0                         # Lowest accepted fundamental (Hz). Wide variant: 30.
        self.FMAX = 1000.0                       # Highest accepted fundamental (Hz). Wide variant: 2000.
        self.REMOVE_DC = True                    # Subtract the frame mean before autocorrelation.
        self.PARABOLIC_INTERPOLATION = False     # Refine the best lag with a parabola through its neighbours.
        self.SKIP_ZERO_LAG_LOBE = True           # Start the lag search after the autocorrelation first turns non-positive.
        self.AUTOCORRELATION_MODE = "raw"        # "raw" (plain sum, first maximum) or "nsdf" (McLeod normalization, less bias on low strings).
        self.NSDF_PEAK_RATIO = 0.9               # "nsdf": first local maximum within this fraction of the best one wins.

        # Reference table
        self.TUNING_FREQUENCY = 440.0            # Reference tuning frequency for A4 (in Hertz).
        self.OCTAVE_LOW = 1                      # Lowest octave in the reference table (C1..B1).
        self.OCTAVE_HIGH = 6                     # Highest octave in the reference table (C6..B6).
        self.PREFER_SHARPS = True                # Spell accidentals as sharps (C#) rather than flats (Db).
        self.DEVIATION_UNIT = "cents"            # "cents" or "hz"; both clamped to +/-50.

        # Stability / hold
        self.HISTORY_WINDOW_SIZE = 5             # Number of recent estimates considered for stability.
        self.STABILITY_THRESHOLD_HZ = 1.0        # Max spread (Hz) of the window for the note to count as locked.
        self.HOLD_TIME_MS = 700                  # How long the last locked note survives instability.
        self.NOTE_PLACEHOLDER = "--"             # Displayed instead of a note name when nothing is locked.

        # Smoothing parameters for the deviation needle
        self.SMOOTHING_ENABLED = True            # Enable or disable exponential smoothing of the deviation.
        self.SMOOTHING_ALPHA = 0.25              # Weight of the newest deviation (0..1], higher = snappier.

    def validate(self):
        """
        Raise ValueError if the current configuration cannot drive the pipeline.
        """
        if self.SAMPLE_RATE <= 0:
            raise ValueError(f"SAMPLE_RATE must be positive, got {self.SAMPLE_RATE}")
        if self.CHUNK_SIZE < 128:
            raise ValueError(f"CHUNK_SIZE must be at least 128 samples, got {self.CHUNK_SIZE}")
        if self.REBUFFER_SIZE < self.CHUNK_SIZE:
            raise ValueError(
                f"REBUFFER_SIZE ({self.REBUFFER_SIZE}) must hold at least one frame ({self.CHUNK_SIZE})"
            )
        if self.CALIBRATION_FRAMES < 0:
            raise ValueError(f"CALIBRATION_FRAMES must be non-negative, got {self.CALIBRATION_FRAMES}")
        if self.NOISE_MULTIPLIER < 0:
            raise ValueError(f"NOISE_MULTIPLIER must be non-negative, got {self.NOISE_MULTIPLIER}")
        if not 0 < self.FMIN < self.FMAX:
            raise ValueError(f"Need 0 < FMIN < FMAX, got FMIN={self.FMIN} FMAX={self.FMAX}")
        if self.FMAX >= self.SAMPLE_RATE / 2:
            raise ValueError(f"FMAX ({self.FMAX}) must be below Nyquist ({self.SAMPLE_RATE / 2})")
        if self.SAMPLE_RATE / self.FMIN >= self.CHUNK_SIZE:
            raise ValueError(
                f"CHUNK_SIZE ({self.CHUNK_SIZE}) is too short to hold one period of FMIN ({self.FMIN} Hz)"
            )
        if self.OCTAVE_LOW > self.OCTAVE_HIGH:
            raise ValueError(f"OCTAVE_LOW ({self.OCTAVE_LOW}) is above OCTAVE_HIGH ({self.OCTAVE_HIGH})")
        if self.TUNING_FREQUENCY <= 0:
            raise ValueError(f"TUNING_FREQUENCY must be positive, got {self.TUNING_FREQUENCY}")
        if self.DEVIATION_UNIT not in DEVIATION_UNITS:
            raise ValueError(f"DEVIATION_UNIT must be one of {DEVIATION_UNITS}, got {self.DEVIATION_UNIT!r}")
        if self.HISTORY_WINDOW_SIZE < 1:
            raise ValueError(f"HISTORY_WINDOW_SIZE must be at least 1, got {self.HISTORY_WINDOW_SIZE}")
        if self.STABILITY_THRESHOLD_HZ < 0 or self.HOLD_TIME_MS < 0:
            raise ValueError("STABILITY_THRESHOLD_HZ and HOLD_TIME_MS must be non-negative")
        if not 0 < self.SMOOTHING_ALPHA <= 1:
            raise ValueError(f"SMOOTHING_ALPHA must be in (0, 1], got {self.SMOOTHING_ALPHA}")
        if self.AUTOCORRELATION_MODE not in AUTOCORRELATION_MODES:
            raise ValueError(
                f"AUTOCORRELATION_MODE must be one of {AUTOCORRELATION_MODES}, got {self.AUTOCORRELATION_MODE!r}"
            )
        if not 0 < self.NSDF_PEAK_RATIO <= 1:
            raise ValueError(f"NSDF_PEAK_RATIO must be in (0, 1], got {self.NSDF_PEAK_RATIO}")

    def _public_items(self):
        for attr, value in self.__dict__.items():
            if callable(value):
                continue
            if attr.startswith("_"):
                continue
            yield attr, value

    def LoadConfigFromFile(self, filename=DEFAULT_CONFIG_PATH):
        """
        Loads configuration values from a JSON file and updates defaults.
        All keys are expected to be in lowercase. Unknown keys are ignored and a
        file that is missing or unreadable leaves the current values untouched.

        Args:
            filename (str): The path to the configuration file.

        Returns:
            bool: True if a file was read.
        """
        if not os.path.exists(filename):
            logger.info("Config file %s not found. Using default values.", filename)
            return False
        try:
            with open(filename, "r") as f:
                loaded_config = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error loading config from %s: %s", filename, e)
            return False

        for attr, _ in list(self._public_items()):
            config_key = attr.lower()
            if config_key in loaded_config:
                setattr(self, attr, loaded_config[config_key])
        logger.info("Config loaded from file %s", filename)
        return True

    def SaveConfigToFile(self, filename=DEFAULT_CONFIG_PATH):
        """
        Saves the current configuration values to a JSON file.
        All keys are saved in lowercase.

        Args:
            filename (str): The path to the configuration file.
        """
        config_to_save = {attr.lower(): value for attr, value in self._public_items()}
        try:
            with open(filename, "w") as f:
                json.dump(config_to_save, f, indent=4, default=str)
        except OSError as e:
            logger.error("Error saving config to %s: %s", filename, e)


# Shared instance used when callers do not bring their own configuration.
defaults = Defaults()

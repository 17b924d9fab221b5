"""
Equal-tempered reference table and nearest-note mapping.
"""

import math
import re
from collections import namedtuple

import numpy as np


# --------------------------- Music Theory Constants ---------------------------

# Chromatic note name arrays, index 0 = C
SHARP_LETTER_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']
FLAT_LETTER_NAMES  = ['C', 'Db', 'D', 'Eb', 'E', 'F', 'Gb', 'G', 'Ab', 'A', 'Bb', 'B']

A4_MIDI = 69
MAX_DEVIATION = 50.0

_NOTE_NAME_RE = re.compile(r"^([A-Ga-g])([#b♭]?)(-?\d+)$")

ReferenceEntry = namedtuple("ReferenceEntry", ["note_name", "frequency_hz"])
NoteMatch = namedtuple("NoteMatch", ["note_name", "reference_hz", "deviation"])


# --------------------------- Conversions ---------------------------
def midi_to_frequency(midi, tuning_frequency=440.0):
    return tuning_frequency * 2.0 ** ((midi - A4_MIDI) / 12.0)


def frequency_to_midi(frequency, tuning_frequency=440.0):
    """
    Fractional MIDI number for a frequency (A4 = 69).
    """
    if not frequency > 0:
        raise ValueError(f"Frequency must be > 0, got {frequency}")
    return A4_MIDI + 12.0 * math.log2(frequency / tuning_frequency)


def note_name_to_midi(note_name):
    """
    Parse scientific pitch notation ("A4", "C#3", "Bb2", "D♭5") into a MIDI number.

    Raises:
        ValueError: If the name cannot be parsed.
    """
    match = _NOTE_NAME_RE.match(note_name.strip())
    if match is None:
        raise ValueError(f"Not a note name: {note_name!r}")
    letter, accidental, octave = match.groups()
    index = SHARP_LETTER_NAMES.index(letter.upper())
    if accidental == "#":
        index += 1
    elif accidental in ("b", "♭"):
        index -= 1
    return (int(octave) + 1) * 12 + index


def note_to_frequency(note_name, tuning_frequency=440.0):
    return midi_to_frequency(note_name_to_midi(note_name), tuning_frequency)


def cents_between(frequency, reference):
    return 1200.0 * math.log2(frequency / reference)


# --------------------------- Reference Table ---------------------------
def build_reference_table(octave_low=1, octave_high=6, tuning_frequency=440.0, prefer_sharps=True):
    """
    Build the fixed note-name -> frequency table for a 12-tone equal-tempered scale.

    For every octave in [octave_low, octave_high] and chromatic position i
    (C=0 .. B=11), midi = (octave + 1) * 12 + i and the frequency is
    tuning_frequency * 2 ** ((midi - 69) / 12).

    Args:
        octave_low (int): First octave included.
        octave_high (int): Last octave included.
        tuning_frequency (float): Frequency of A4 in Hz.
        prefer_sharps (bool): Spell accidentals with sharps instead of flats.

    Returns:
        tuple[ReferenceEntry]: Entries sorted by increasing frequency.
    """
    if octave_low > octave_high:
        raise ValueError(f"octave_low ({octave_low}) is above octave_high ({octave_high})")
    letters = SHARP_LETTER_NAMES if prefer_sharps else FLAT_LETTER_NAMES
    table = []
    for octave in range(octave_low, octave_high + 1):
        for index, letter in enumerate(letters):
            midi = (octave + 1) * 12 + index
            table.append(ReferenceEntry(f"{letter}{octave}", midi_to_frequency(midi, tuning_frequency)))
    return tuple(table)


def reference_table_from_defaults(defaults):
    return build_reference_table(
        defaults.OCTAVE_LOW,
        defaults.OCTAVE_HIGH,
        defaults.TUNING_FREQUENCY,
        defaults.PREFER_SHARPS,
    )


# --------------------------- Note Mapper ---------------------------
class NoteMapper:
    """
    Maps a detected frequency to the nearest reference entry.

    Distance is measured in cents, so the search is symmetric in pitch rather
    than in Hz. Deviation is reported in cents or Hz and clamped to +/-50.
    """
    def __init__(self, table, deviation_unit="cents"):
        if not table:
            raise ValueError("Reference table is empty")
        if deviation_unit not in ("cents", "hz"):
            raise ValueError(f"Unknown deviation unit {deviation_unit!r}")
        self.table = tuple(table)
        self.deviation_unit = deviation_unit
        self._log_frequencies = np.log2(np.array([entry.frequency_hz for entry in self.table]))

    def nearest(self, frequency):
        if not (math.isfinite(frequency) and frequency > 0):
            raise ValueError(f"Cannot map frequency {frequency}")
        distances = np.abs(1200.0 * (math.log2(frequency) - self._log_frequencies))
        # argmin returns the first minimum, which breaks ties towards the lower note.
        return self.table[int(np.argmin(distances))]

    def deviation(self, frequency, reference_hz):
        if self.deviation_unit == "cents":
            raw = cents_between(frequency, reference_hz)
        else:
            raw = frequency - reference_hz
        return max(-MAX_DEVIATION, min(MAX_DEVIATION, raw))

    def map(self, frequency):
        """
        Args:
            frequency (float): Validated frequency in Hz.

        Returns:
            NoteMatch: note name, reference frequency and clamped deviation.
        """
        entry = self.nearest(frequency)
        return NoteMatch(entry.note_name, entry.frequency_hz, self.deviation(frequency, entry.frequency_hz))

"""
Pitch math helpers for vocal performance analysis.

Pure functions over frequencies in Hz and note names in scientific pitch
notation (e.g. 'C4', 'F#3', 'Bb5').  Non-finite or non-positive frequencies
never raise: they resolve to neutral values (0 cents, 0 jitter, 100%
stability) so silence and detector dropouts cannot break an analysis.
"""

import math
import re
from typing import Iterable, Optional

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

A4_HZ = 440.0
C0_HZ = A4_HZ * 2 ** -4.75  # ~16.35 Hz

DEFAULT_IN_TUNE_CENTS = 25.0
STABLE_STEP_CENTS = 10.0

_NOTE_NAMES = ['C', 'C#', 'D', 'D#', 'E', 'F', 'F#', 'G', 'G#', 'A', 'A#', 'B']

_LETTER_OFFSETS = {'C': 0, 'D': 2, 'E': 4, 'F': 5, 'G': 7, 'A': 9, 'B': 11}
_ACCIDENTALS = {'': 0, '#': 1, 'b': -1}

_NOTE_RE = re.compile(r'^([A-G][#b]?)(\d+)$')
_OCTAVE_RE = re.compile(r'(\d+)$')

LOW_OCTAVE_MAX = 3
HIGH_OCTAVE_MIN = 5


class InvalidNoteFormat(ValueError):
    """Raised when a note name is not in scientific pitch notation."""

    def __init__(self, note: str):
        super().__init__(f"Invalid note format: {note!r}")
        self.note = note


# ---------------------------------------------------------------------------
# Note <-> frequency
# ---------------------------------------------------------------------------

def note_to_frequency(note: str) -> float:
    """Convert a note name like 'A4' or 'Eb3' to its equal-tempered frequency.

    Uses the C0 = MIDI 12 convention, so 'A4' is MIDI 69 = 440 Hz.
    Raises InvalidNoteFormat for anything that does not match
    ``^[A-G][#b]?\\d+$``.
    """
    m = _NOTE_RE.fullmatch(note) if isinstance(note, str) else None
    if not m:
        raise InvalidNoteFormat(note)
    name, octave_str = m.groups()
    # Cb/E#/Fb/B# fall through to the neighbouring natural.
    offset = _LETTER_OFFSETS[name[0]] + _ACCIDENTALS[name[1:]]
    midi = 12 * (int(octave_str) + 1) + offset
    return A4_HZ * 2 ** ((midi - 69) / 12)


def frequency_to_note_name(freq_hz: float) -> str:
    """Convert a frequency in Hz to the nearest note name (sharps only)."""
    half_steps = round(12 * math.log2(freq_hz / C0_HZ))
    octave = half_steps // 12
    return f"{_NOTE_NAMES[half_steps % 12]}{octave}"


def note_octave(note: str) -> int:
    """Octave number of a note name; names without a trailing number count as octave 0."""
    m = _OCTAVE_RE.search(note or '')
    return int(m.group(1)) if m else 0


def is_low_note(note: str) -> bool:
    return note_octave(note) <= LOW_OCTAVE_MAX


def is_high_note(note: str) -> bool:
    return note_octave(note) >= HIGH_OCTAVE_MIN


# ---------------------------------------------------------------------------
# Cents, tuning and stability
# ---------------------------------------------------------------------------

def round_half_up(value: float, ndigits: int = 0):
    """Round with halves going up (2.5 -> 3, -2.5 -> -2), unlike built-in round().

    Returns an int when *ndigits* is 0, a float otherwise.
    """
    scale = 10 ** ndigits
    rounded = math.floor(float(value) * scale + 0.5)
    if ndigits == 0:
        return int(rounded)
    return rounded / scale


def _is_valid_freq(freq_hz: Optional[float]) -> bool:
    return freq_hz is not None and math.isfinite(freq_hz) and freq_hz > 0


def frequency_to_cents(detected_hz: float, target_hz: float) -> float:
    """Signed cents from *target_hz* to *detected_hz* (+ = sharp, - = flat).

    Returns 0.0 when either input is non-finite or not positive.
    """
    if not (_is_valid_freq(detected_hz) and _is_valid_freq(target_hz)):
        return 0.0
    return 1200.0 * math.log2(detected_hz / target_hz)


def is_in_tune(detected_hz: float, target_hz: float, threshold_cents: float = DEFAULT_IN_TUNE_CENTS) -> bool:
    """True when *detected_hz* is within +/- *threshold_cents* of *target_hz*."""
    if threshold_cents < 0:
        return False
    return abs(frequency_to_cents(detected_hz, target_hz)) <= threshold_cents


def _step_cents(frequencies: Iterable[Optional[float]]) -> list[float]:
    """Absolute cents between consecutive valid frequencies."""
    valid = [f for f in frequencies if _is_valid_freq(f)]
    return [abs(frequency_to_cents(cur, prev)) for prev, cur in zip(valid, valid[1:])]


def calculate_jitter(frequencies: Iterable[Optional[float]]) -> float:
    """Mean frame-to-frame pitch movement in cents (0.0 with fewer than 2 valid frames)."""
    steps = _step_cents(frequencies)
    if not steps:
        return 0.0
    return sum(steps) / len(steps)


def calculate_stability_percentage(frequencies: Iterable[Optional[float]]) -> float:
    """Percentage of consecutive frame pairs that move less than 10 cents.

    With fewer than 2 valid frames there is no evidence of instability and
    100.0 is returned.
    """
    steps = _step_cents(frequencies)
    if not steps:
        return 100.0
    stable = sum(1 for c in steps if c < STABLE_STEP_CENTS)
    return stable / len(steps) * 100.0

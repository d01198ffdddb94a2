"""
core/audio_math.py — Frequency math engine.

Pure conversions between frequency, MIDI pitch, cents and loudness, plus
buffer statistics. No I/O, no state.

Contract:
    Nothing here raises on malformed input. Invalid input resolves to a
    defined sentinel and a debug/warning log line; callers detect the
    sentinel and react:

        frequency_to_midi, midi_to_frequency, *_note_name  → None
        calculate_cents, calculate_interval                → 0.0
        apply_cents, transpose                             → input frequency
        linear_to_db(x <= 0)                               → -inf
        db_to_linear(non-finite)                           → 0.0
        normalize_buffer(bad peak or target)               → input buffer
        clamp(bad value) / clamp(bad bounds)              → lo / value
        lerp(bad operand)                                  → a, or 0.0 if a is bad
        empty sequences                                    → 0.0 / MinMax(0, 0)

Usage:
    from core.audio_math import frequency_to_midi, calculate_cents
    midi = frequency_to_midi(442.0)            # 69
    cents = calculate_cents(442.0, 440.0)      # ≈ 7.85
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Any

import numpy as np

from core.config import DEFAULT_THRESHOLDS, AccuracyThresholds
from core.types import Accuracy, MinMax

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

A4_FREQUENCY: float = 440.0
"""Concert pitch reference. A4 = MIDI 69 by definition."""

A4_MIDI: int = 69
SEMITONES_PER_OCTAVE: int = 12
CENTS_PER_SEMITONE: int = 100
CENTS_PER_OCTAVE: int = 1200

MIDI_MIN: int = 0
MIDI_MAX: int = 127

NOTE_NAMES_CHROMATIC: tuple[str, ...] = (
    "C",
    "C#",
    "D",
    "D#",
    "E",
    "F",
    "F#",
    "G",
    "G#",
    "A",
    "A#",
    "B",
)

AUDIBLE_RANGE_HZ: tuple[float, float] = (20.0, 20000.0)
VOCAL_RANGE_HZ: tuple[float, float] = (80.0, 1200.0)
"""Typical sung range: low bass (80 Hz) to high soprano (1200 Hz)."""

DEFAULT_TARGET_PEAK: float = 0.95


# ---------------------------------------------------------------------------
# Input guards
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    """True for finite real numbers (bool excluded)."""
    if isinstance(value, bool):
        return False
    if not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def _is_positive(value: Any) -> bool:
    return _is_number(value) and float(value) > 0.0


def _is_real(value: Any) -> bool:
    """Like ``_is_number`` but accepts infinities (NaN still rejected)."""
    if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
        return False
    return not math.isnan(float(value))


def _exp(base: float, exponent: float) -> float:
    """``base ** exponent`` saturating to inf instead of raising OverflowError."""
    try:
        return base**exponent
    except OverflowError:
        return math.inf


def _as_array(values: Any) -> np.ndarray | None:
    """Coerce a numeric sequence to a 1-D float64 array, None if impossible."""
    if values is None:
        return None
    try:
        arr = np.asarray(values, dtype=np.float64)
    except (TypeError, ValueError):
        logger.warning("audio_math: non-numeric sequence ignored (%s)", type(values).__name__)
        return None
    return arr.reshape(-1)


# ---------------------------------------------------------------------------
# Frequency ↔ MIDI ↔ note name
# ---------------------------------------------------------------------------


def frequency_to_midi(frequency: Any) -> int | None:
    """Convert a frequency in Hz to the nearest MIDI note number.

    Formula: midi = round(69 + 12 × log₂(f / 440)), rounding half up.

    Args:
        frequency: Frequency in Hz.

    Returns:
        MIDI note number in [0, 127], or None when ``frequency`` is not a
        positive finite number or the nearest note falls outside MIDI range.
    """
    if not _is_positive(frequency):
        logger.warning("frequency_to_midi: invalid frequency %r", frequency)
        return None

    midi_raw = A4_MIDI + SEMITONES_PER_OCTAVE * math.log2(float(frequency) / A4_FREQUENCY)
    midi = math.floor(midi_raw + 0.5)

    if midi < MIDI_MIN or midi > MIDI_MAX:
        logger.debug("frequency_to_midi: %r Hz maps outside MIDI range (%d)", frequency, midi)
        return None
    return midi


def _as_midi(midi: Any) -> int | None:
    """Integral MIDI number in range, or None. ``60.0`` is accepted as 60."""
    if not _is_number(midi):
        return None
    value = float(midi)
    if not value.is_integer():
        return None
    as_int = int(value)
    if as_int < MIDI_MIN or as_int > MIDI_MAX:
        return None
    return as_int


def midi_to_frequency(midi: Any) -> float | None:
    """Convert a MIDI note number to its equal-tempered frequency.

    Formula: f = 440 × 2^((midi − 69) / 12)

    Args:
        midi: Integral MIDI note number in [0, 127].

    Returns:
        Frequency in Hz, or None for non-integral or out-of-range input.
    """
    value = _as_midi(midi)
    if value is None:
        logger.warning("midi_to_frequency: invalid MIDI number %r", midi)
        return None
    return A4_FREQUENCY * 2.0 ** ((value - A4_MIDI) / SEMITONES_PER_OCTAVE)


def midi_to_note_name(midi: Any) -> str | None:
    """Convert a MIDI note number to scientific pitch notation.

    Examples:
        69 → 'A4'
        60 → 'C4'
        0  → 'C-1'
    """
    value = _as_midi(midi)
    if value is None:
        return None
    octave = value // SEMITONES_PER_OCTAVE - 1
    return f"{NOTE_NAMES_CHROMATIC[value % SEMITONES_PER_OCTAVE]}{octave}"


def frequency_to_note_name(frequency: Any) -> str | None:
    """Name of the nearest note to ``frequency`` (e.g. 'A4'), None if invalid."""
    midi = frequency_to_midi(frequency)
    if midi is None:
        return None
    return midi_to_note_name(midi)


# ---------------------------------------------------------------------------
# Cents
# ---------------------------------------------------------------------------


def calculate_cents(measured: Any, target: Any) -> float:
    """Signed deviation of ``measured`` from ``target`` in cents.

    Formula: cents = 1200 × log₂(measured / target)
    Positive = sharp, negative = flat.

    Returns:
        Deviation in cents, or 0.0 when either frequency is not positive.
        Callers that must tell "exactly in tune" from "invalid" check the
        inputs themselves.
    """
    if not (_is_positive(measured) and _is_positive(target)):
        logger.warning(
            "calculate_cents: invalid frequencies (measured=%r, target=%r)", measured, target
        )
        return 0.0
    return CENTS_PER_OCTAVE * math.log2(float(measured) / float(target))


def apply_cents(frequency: Any, cents: Any) -> Any:
    """Shift ``frequency`` by ``cents``: f × 2^(cents / 1200).

    Invalid frequency or cents → the input frequency, unchanged.
    """
    if not _is_positive(frequency) or not _is_number(cents):
        logger.warning("apply_cents: invalid input (frequency=%r, cents=%r)", frequency, cents)
        return frequency
    return float(frequency) * _exp(2.0, float(cents) / CENTS_PER_OCTAVE)


def cents_to_ratio(cents: Any) -> float:
    """Frequency ratio for a cent offset (100 cents → 1.0595). 1.0 if invalid."""
    if not _is_number(cents):
        return 1.0
    return _exp(2.0, float(cents) / CENTS_PER_OCTAVE)


def categorize_accuracy(
    cents: Any,
    thresholds: AccuracyThresholds = DEFAULT_THRESHOLDS,
) -> Accuracy:
    """Map an absolute cent deviation to an intonation tier.

    Boundaries are inclusive (``<=``): with default thresholds 10 cents is
    EXCELLENT, 20 GOOD, 35 FAIR, anything above 35 POOR.
    Non-numeric input is POOR.
    """
    if not _is_number(cents):
        return Accuracy.POOR
    deviation = abs(float(cents))
    if deviation <= thresholds.excellent:
        return Accuracy.EXCELLENT
    if deviation <= thresholds.good:
        return Accuracy.GOOD
    if deviation <= thresholds.fair:
        return Accuracy.FAIR
    return Accuracy.POOR


def is_in_tune(cents: Any, tolerance: float = 20.0) -> bool:
    """True when ``|cents| <= tolerance``."""
    if not _is_number(cents):
        return False
    return abs(float(cents)) <= tolerance


# ---------------------------------------------------------------------------
# Intervals
# ---------------------------------------------------------------------------


def calculate_interval(freq1: Any, freq2: Any) -> float:
    """Interval from ``freq1`` to ``freq2`` in (fractional) semitones.

    Formula: 12 × log₂(f2 / f1). 0.0 when either frequency is invalid.
    """
    if not (_is_positive(freq1) and _is_positive(freq2)):
        logger.warning("calculate_interval: invalid frequencies (%r, %r)", freq1, freq2)
        return 0.0
    return SEMITONES_PER_OCTAVE * math.log2(float(freq2) / float(freq1))


def transpose(frequency: Any, semitones: Any) -> Any:
    """Transpose by ``semitones``: f × 2^(semitones / 12).

    Invalid input → the input frequency, unchanged.
    """
    if not _is_positive(frequency) or not _is_number(semitones):
        logger.warning("transpose: invalid input (frequency=%r, semitones=%r)", frequency, semitones)
        return frequency
    return float(frequency) * _exp(2.0, float(semitones) / SEMITONES_PER_OCTAVE)


# ---------------------------------------------------------------------------
# Loudness
# ---------------------------------------------------------------------------


def linear_to_db(linear: Any) -> float:
    """Linear amplitude to decibels: 20 × log₁₀(x).

    Silence (``x <= 0``) is -inf, not an error.
    """
    if not _is_number(linear):
        return -math.inf
    value = float(linear)
    if value <= 0.0:
        return -math.inf
    return 20.0 * math.log10(value)


def db_to_linear(db: Any) -> float:
    """Decibels to linear amplitude: 10^(dB / 20). 0.0 for non-finite input."""
    if not _is_number(db):
        return 0.0
    return _exp(10.0, float(db) / 20.0)


def calculate_rms(buffer: Any) -> float:
    """Root mean square of a sample buffer. 0.0 for an empty buffer."""
    arr = _as_array(buffer)
    if arr is None or arr.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(arr))))


def calculate_level(buffer: Any) -> float:
    """Buffer level in dBFS (dB of the RMS). -inf for silence."""
    return linear_to_db(calculate_rms(buffer))


def normalize_buffer(buffer: Any, target_peak: float = DEFAULT_TARGET_PEAK) -> Any:
    """Peak-normalize a buffer so its largest absolute sample equals ``target_peak``.

    Args:
        buffer: Sample sequence (list, tuple or numpy array).
        target_peak: Desired peak amplitude, default 0.95.

    Returns:
        A new float array scaled by ``target_peak / peak``. An empty or
        all-silent buffer (peak == 0) is returned unchanged, as the same
        object. So is any buffer when ``target_peak`` is not a positive
        finite number or a sample is NaN or infinite.
    """
    arr = _as_array(buffer)
    if arr is None or arr.size == 0:
        return buffer

    if not _is_positive(target_peak):
        logger.warning("normalize_buffer: invalid target peak %r, buffer unchanged", target_peak)
        return buffer

    peak = float(np.max(np.abs(arr)))
    if peak == 0.0:
        return buffer
    if not math.isfinite(peak):
        logger.warning("normalize_buffer: non-finite sample in buffer, buffer unchanged")
        return buffer

    gain = float(target_peak) / peak
    logger.debug("normalize_buffer: peak=%.6f gain=%.6f", peak, gain)
    return arr * gain


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def average(values: Sequence[float] | np.ndarray) -> float:
    """Arithmetic mean. 0.0 for empty input."""
    arr = _as_array(values)
    if arr is None or arr.size == 0:
        return 0.0
    return float(np.mean(arr))


def standard_deviation(values: Sequence[float] | np.ndarray) -> float:
    """Population standard deviation. 0.0 for empty input."""
    arr = _as_array(values)
    if arr is None or arr.size == 0:
        return 0.0
    return float(np.std(arr))


def min_max(values: Sequence[float] | np.ndarray) -> MinMax:
    """Smallest and largest value. ``MinMax(0.0, 0.0)`` for empty input."""
    arr = _as_array(values)
    if arr is None or arr.size == 0:
        return MinMax(0.0, 0.0)
    return MinMax(float(np.min(arr)), float(np.max(arr)))


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------


def clamp(value: float, lo: float, hi: float) -> float:
    if not (_is_real(lo) and _is_real(hi)):
        logger.warning("clamp: invalid bounds (%r, %r)", lo, hi)
        return value if _is_real(value) else 0.0
    if not _is_real(value):
        logger.warning("clamp: invalid value %r, using lower bound", value)
        return lo
    return max(lo, min(hi, value))


def lerp(a: float, b: float, t: float) -> float:
    """Linear interpolation with ``t`` clamped to [0, 1]."""
    if not (_is_real(a) and _is_real(b) and _is_real(t)):
        logger.warning("lerp: invalid operands (%r, %r, %r)", a, b, t)
        return a if _is_real(a) else 0.0
    return a + (b - a) * clamp(t, 0.0, 1.0)


def is_audible_frequency(frequency: Any) -> bool:
    if not _is_number(frequency):
        return False
    lo, hi = AUDIBLE_RANGE_HZ
    return lo <= float(frequency) <= hi


def is_vocal_frequency(frequency: Any) -> bool:
    if not _is_number(frequency):
        return False
    lo, hi = VOCAL_RANGE_HZ
    return lo <= float(frequency) <= hi

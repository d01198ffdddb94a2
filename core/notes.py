"""
core/notes.py — Immutable MIDI note reference table (A4 = 440 Hz).

The table maps MIDI 0–127 ↔ scientific pitch name ↔ frequency. It is a pure
function of the 440 Hz standard, built lazily on first use and cached for the
lifetime of the process.

Design:
    - NoteReference is frozen; ``by_name`` is a read-only mapping.
    - Name lookup is case-insensitive ("a4", "A4", "c#5").
    - Every lookup resolves invalid input to None / [] instead of raising,
      the same contract as core/audio_math.py.

Used by:
    consumers that turn PitchPoints into coaching feedback (closest note,
    cent deviation, voice ranges).
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Mapping

from core.audio_math import (
    MIDI_MAX,
    MIDI_MIN,
    NOTE_NAMES_CHROMATIC,
    SEMITONES_PER_OCTAVE,
    calculate_cents,
    frequency_to_midi,
    midi_to_frequency,
    midi_to_note_name,
)
from core.types import ClosestNote, NoteEntry, PitchReading

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

IN_TUNE_CENTS: float = 10.0
"""``describe_pitch`` flags a reading in tune strictly inside ±10 cents."""

_NOTE_PATTERN = re.compile(r"^([A-G]#?)(-?\d+)$")

# Solfège ↔ letter names. "Re" accepts names typed without the accent.
_FRENCH_TO_ENGLISH: tuple[tuple[str, str], ...] = (
    ("Sol", "G"),
    ("Do", "C"),
    ("Ré", "D"),
    ("Re", "D"),
    ("Mi", "E"),
    ("Fa", "F"),
    ("La", "A"),
    ("Si", "B"),
)

_ENGLISH_TO_FRENCH: dict[str, str] = {
    "C": "Do",
    "D": "Ré",
    "E": "Mi",
    "F": "Fa",
    "G": "Sol",
    "A": "La",
    "B": "Si",
}

VOICE_RANGES: Mapping[str, tuple[str, str]] = MappingProxyType(
    {
        "bass": ("E2", "D4"),
        "baritone": ("G2", "G4"),
        "tenor": ("C3", "C5"),
        "alto": ("F3", "F5"),
        "mezzo": ("G3", "G5"),
        "soprano": ("C4", "C6"),
    }
)
"""Standard voice classifications as (lowest, highest) note names."""


# ---------------------------------------------------------------------------
# Table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class NoteReference:
    """The full MIDI note table.

    Invariants:
        len(by_midi) == 128 and by_midi[m].midi == m
        by_name[e.name] is e for every entry e
    """

    by_midi: tuple[NoteEntry, ...]
    by_name: Mapping[str, NoteEntry]

    def entry(self, midi: int) -> NoteEntry | None:
        if not isinstance(midi, int) or isinstance(midi, bool):
            return None
        if midi < MIDI_MIN or midi > MIDI_MAX:
            return None
        return self.by_midi[midi]


@functools.lru_cache(maxsize=1)
def note_reference() -> NoteReference:
    """Build (once) and return the note table."""
    entries: list[NoteEntry] = []
    for midi in range(MIDI_MIN, MIDI_MAX + 1):
        frequency = midi_to_frequency(midi)
        name = midi_to_note_name(midi)
        # Both are defined for every in-range MIDI number.
        assert frequency is not None and name is not None
        entries.append(
            NoteEntry(
                midi=midi,
                name=name,
                pitch_class=NOTE_NAMES_CHROMATIC[midi % SEMITONES_PER_OCTAVE],
                octave=midi // SEMITONES_PER_OCTAVE - 1,
                frequency=frequency,
            )
        )
    by_name = MappingProxyType({e.name: e for e in entries})
    logger.debug("note reference built (%d notes)", len(entries))
    return NoteReference(by_midi=tuple(entries), by_name=by_name)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


def _normalize_name(name: Any) -> str | None:
    if not isinstance(name, str):
        return None
    stripped = name.strip()
    if not stripped:
        return None
    return stripped[0].upper() + stripped[1:]


def find_note(name: Any) -> NoteEntry | None:
    """Table entry for a note name such as 'A4' or 'c#5', None if unknown."""
    normalized = _normalize_name(name)
    if normalized is None:
        logger.warning("find_note: invalid note name %r", name)
        return None
    return note_reference().by_name.get(normalized)


def get_frequency(name: Any) -> float | None:
    """Frequency of a named note in Hz, None if the name is not in the table."""
    entry = find_note(name)
    return entry.frequency if entry is not None else None


def exists(name: Any) -> bool:
    return find_note(name) is not None


def all_note_names() -> list[str]:
    """All 128 note names in MIDI order."""
    return [e.name for e in note_reference().by_midi]


def get_closest_note(frequency: Any) -> ClosestNote | None:
    """Nearest equal-tempered note and the cent deviation from it.

    Returns:
        ClosestNote, or None when the frequency is invalid or outside MIDI range.
    """
    midi = frequency_to_midi(frequency)
    if midi is None:
        return None
    entry = note_reference().by_midi[midi]
    return ClosestNote(
        note=entry.name,
        frequency=entry.frequency,
        cents=calculate_cents(frequency, entry.frequency),
        midi=midi,
    )


def describe_pitch(frequency: Any) -> PitchReading | None:
    """Coaching reading of a measured frequency.

    Example:
        >>> reading = describe_pitch(445.0)
        >>> reading.note, reading.octave, reading.cents, reading.is_sharp
        ('A', 4, 20, True)
    """
    closest = get_closest_note(frequency)
    if closest is None:
        return None
    entry = note_reference().by_midi[closest.midi]
    deviation = closest.cents
    return PitchReading(
        note=entry.pitch_class,
        octave=entry.octave,
        cents=int(round(deviation)),
        deviation=deviation,
        target_frequency=entry.frequency,
        frequency=float(frequency),
        is_flat=deviation < 0,
        is_sharp=deviation > 0,
        is_in_tune=abs(deviation) < IN_TUNE_CENTS,
    )


def get_octave(octave: Any) -> list[NoteEntry]:
    """The 12 notes of one octave (C..B). Octave 9 stops at G9 (MIDI 127)."""
    if not isinstance(octave, int) or isinstance(octave, bool):
        logger.warning("get_octave: invalid octave %r", octave)
        return []
    first = (octave + 1) * SEMITONES_PER_OCTAVE
    table = note_reference()
    return [
        table.by_midi[m]
        for m in range(first, first + SEMITONES_PER_OCTAVE)
        if MIDI_MIN <= m <= MIDI_MAX
    ]


def get_range(start: Any, end: Any) -> list[NoteEntry]:
    """All notes between two named notes, inclusive, in ascending order.

    The order of ``start`` and ``end`` does not matter. Returns [] if either
    name is unknown.
    """
    first = find_note(start)
    last = find_note(end)
    if first is None or last is None:
        logger.warning("get_range: invalid note range (%r, %r)", start, end)
        return []
    lo, hi = sorted((first.midi, last.midi))
    return list(note_reference().by_midi[lo : hi + 1])


def voice_range(voice: str) -> tuple[NoteEntry, NoteEntry] | None:
    """(lowest, highest) entries for a voice type such as 'tenor'."""
    bounds = VOICE_RANGES.get(voice.lower()) if isinstance(voice, str) else None
    if bounds is None:
        return None
    low, high = find_note(bounds[0]), find_note(bounds[1])
    if low is None or high is None:
        return None
    return low, high


# ---------------------------------------------------------------------------
# Solfège
# ---------------------------------------------------------------------------


def french_to_english(name: Any) -> str | None:
    """'Do4' → 'C4', 'Ré#5' → 'D#5'. None if the name has no solfège prefix."""
    if not isinstance(name, str):
        return None
    for french, english in _FRENCH_TO_ENGLISH:
        if name.startswith(french):
            return english + name[len(french) :]
    return None


def english_to_french(name: Any) -> str | None:
    """'C4' → 'Do4', 'D#5' → 'Ré#5'. None for anything that is not a note name."""
    normalized = _normalize_name(name)
    if normalized is None or not _NOTE_PATTERN.match(normalized):
        return None
    return _ENGLISH_TO_FRENCH[normalized[0]] + normalized[1:]

"""
core/types.py — Frozen value types shared by the math engine and the engine layer.

All types are immutable value objects. No I/O, no state, no side effects.

Design principles:
    - Enums carry the exact lowercase strings the platform and the bus use,
      so ``ResourceState("running")`` maps a raw platform state directly.
    - ``MinMax`` and ``ClosestNote`` are named results instead of ad-hoc dicts.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ResourceState(Enum):
    """States of the platform audio resource handle."""

    UNINITIALIZED = "uninitialized"
    RUNNING = "running"
    SUSPENDED = "suspended"
    CLOSED = "closed"


class EngineState(Enum):
    """Engine facade lifecycle.

    uninitialized → initialized → running ⇄ stopped, with ``error``
    reachable from any state on unrecoverable failure.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    RUNNING = "running"
    STOPPED = "stopped"
    ERROR = "error"

    @property
    def is_ready(self) -> bool:
        """``initialized`` and ``running`` both count as ready."""
        return self in (EngineState.INITIALIZED, EngineState.RUNNING)


class Accuracy(Enum):
    """Intonation tiers, tightest first."""

    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


@dataclass(frozen=True)
class MinMax:
    """Extremes of a numeric sequence. ``(0.0, 0.0)`` for empty input."""

    minimum: float
    maximum: float


@dataclass(frozen=True)
class NoteEntry:
    """One row of the MIDI note table.

    Invariants:
        0 <= midi <= 127
        frequency == 440 * 2 ** ((midi - 69) / 12)
    """

    midi: int
    name: str
    """Scientific pitch notation, e.g. 'A4', 'C#5'."""

    pitch_class: str
    """Note name without octave, e.g. 'C#'."""

    octave: int
    frequency: float


@dataclass(frozen=True)
class ClosestNote:
    """Nearest equal-tempered note to a measured frequency."""

    note: str
    frequency: float
    """Target frequency of the nearest note in Hz."""

    cents: float
    """Signed deviation of the measured frequency from ``frequency``."""

    midi: int


@dataclass(frozen=True)
class PitchReading:
    """Coaching view of a single measured frequency."""

    note: str
    """Pitch class of the nearest note, e.g. 'A'."""

    octave: int
    cents: int
    """Deviation rounded to the nearest cent (display value)."""

    deviation: float
    """Exact deviation in cents."""

    target_frequency: float
    frequency: float
    is_flat: bool
    is_sharp: bool
    is_in_tune: bool

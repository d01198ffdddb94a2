"""
core/errors.py — Error payloads and user-facing error classification.

Pure: builds classification-ready payloads ``{message, stack, name}`` and maps
them to a severity, a category and a user message. Rendering belongs to the
Notification Surface; reporting (logging, dedupe, bus events) lives in
engine/errors.py.
"""

from __future__ import annotations

import traceback
from dataclasses import asdict, dataclass
from enum import Enum


class EngineError(Exception):
    """Base class for failures raised inside the engine layer and reported, never propagated."""


class CapabilityError(EngineError):
    """The platform cannot create an audio resource (Web Audio unsupported)."""


class ResourceCreationError(EngineError):
    """The audio resource factory returned nothing."""


class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    AUDIO = "audio"
    MICROPHONE = "microphone"
    LOADING = "loading"
    STORAGE = "storage"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorPayload:
    """Classification-ready description of a failure."""

    message: str
    stack: str
    name: str
    context: str = "unknown"

    @classmethod
    def from_exception(cls, exc: BaseException, context: str = "unknown") -> ErrorPayload:
        """Build a payload from an exception, including its formatted traceback."""
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(message=str(exc), stack=stack, name=type(exc).__name__, context=context)

    def as_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass(frozen=True)
class ErrorAnalysis:
    """What the Notification Surface needs to render an error."""

    severity: Severity
    category: ErrorCategory
    user_message: str
    solution: str
    payload: ErrorPayload


# Ordered rules: first match wins. Keywords are matched against the
# lowercased message and exception name.
_RULES: tuple[tuple[tuple[str, ...], ErrorCategory, Severity, str, str], ...] = (
    (
        ("audiocontext", "webaudio", "web audio", "audio resource", "capabilityerror"),
        ErrorCategory.AUDIO,
        Severity.CRITICAL,
        "Unable to start the audio system. Try reloading the page.",
        "Reload the page or try another browser",
    ),
    (
        ("notfounderror", "no microphone"),
        ErrorCategory.MICROPHONE,
        Severity.CRITICAL,
        "No microphone detected. Check that your microphone is plugged in.",
        "Plug in a microphone and reload the page",
    ),
    (
        ("getusermedia", "notallowederror", "permission"),
        ErrorCategory.MICROPHONE,
        Severity.CRITICAL,
        "Microphone permission denied. Allow access in your browser settings.",
        "Allow microphone access in your browser settings",
    ),
    (
        ("failed to load", "module"),
        ErrorCategory.LOADING,
        Severity.CRITICAL,
        "The application failed to load.",
        "Reload the page",
    ),
    (
        ("quota", "storage"),
        ErrorCategory.STORAGE,
        Severity.WARNING,
        "Storage is full. Delete old recordings.",
        "Delete old recordings or clear the cache",
    ),
)


def classify_error(payload: ErrorPayload) -> ErrorAnalysis:
    """Determine severity, category and user message for an error payload.

    Example:
        >>> classify_error(ErrorPayload("NotAllowedError: denied", "", "DOMException")).category
        <ErrorCategory.MICROPHONE: 'microphone'>
    """
    haystack = f"{payload.message} {payload.name}".lower()
    for keywords, category, severity, user_message, solution in _RULES:
        if any(k in haystack for k in keywords):
            return ErrorAnalysis(severity, category, user_message, solution, payload)
    return ErrorAnalysis(
        Severity.ERROR,
        ErrorCategory.UNKNOWN,
        "An unexpected error occurred.",
        "Reload the page or contact support",
        payload,
    )

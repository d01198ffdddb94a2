"""Logging setup and the in-memory diagnostics buffer.

Every module logs through ``logging.getLogger(__name__)``. The logger name is
the diagnostics *component*; structured context travels in
``extra={"data": {...}}``. This module only wires handlers, it never formats
or persists anything beyond the bounded in-memory ring.

Usage::

    from infrastructure.diagnostics import DiagnosticsBuffer, configure_logging

    configure_logging("DEBUG")
    buffer = DiagnosticsBuffer(capacity=500)
    buffer.install()
    ...
    for record in buffer.records(level="CRITICAL"):
        print(record.component, record.message, record.data)
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any

# Top-level packages whose loggers make up the diagnostics stream.
PACKAGE_LOGGERS: tuple[str, ...] = ("core", "engine", "infrastructure")

_LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
_HANDLER_MARKER = "_vocal_coach_console"


@dataclass(frozen=True)
class DiagnosticRecord:
    """One structured ``(component, message, data)`` entry."""

    timestamp: float
    level: str
    component: str
    message: str
    data: Any = None


def configure_logging(level: str = "INFO") -> None:
    """Attach a console handler to the package loggers and set their level.

    Idempotent: calling it again only updates the level.
    """
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level {level!r}")

    for name in PACKAGE_LOGGERS:
        pkg_logger = logging.getLogger(name)
        pkg_logger.setLevel(numeric)
        if not any(getattr(h, _HANDLER_MARKER, False) for h in pkg_logger.handlers):
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            setattr(handler, _HANDLER_MARKER, True)
            pkg_logger.addHandler(handler)


class DiagnosticsBuffer(logging.Handler):
    """Bounded ring of the most recent diagnostic records.

    Args:
        capacity: Maximum records kept; the oldest are dropped first.
        level: Minimum level captured.
    """

    def __init__(self, capacity: int = 1000, level: int = logging.DEBUG) -> None:
        """Initialize an empty buffer."""
        super().__init__(level=level)
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._records: deque[DiagnosticRecord] = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        """Store the record (never raises into the logging call site)."""
        try:
            self._records.append(
                DiagnosticRecord(
                    timestamp=record.created,
                    level=record.levelname,
                    component=record.name,
                    message=record.getMessage(),
                    data=getattr(record, "data", None),
                )
            )
        except Exception:
            self.handleError(record)

    def records(self, level: str | None = None) -> list[DiagnosticRecord]:
        """Snapshot of stored records, optionally filtered by level name."""
        if level is None:
            return list(self._records)
        wanted = level.upper()
        return [r for r in self._records if r.level == wanted]

    def clear(self) -> None:
        self._records.clear()

    def install(self, names: tuple[str, ...] = PACKAGE_LOGGERS) -> None:
        """Attach this buffer to the package loggers."""
        for name in names:
            logging.getLogger(name).addHandler(self)

    def uninstall(self, names: tuple[str, ...] = PACKAGE_LOGGERS) -> None:
        for name in names:
            logging.getLogger(name).removeHandler(self)

"""Error reporting: log, deduplicate, publish and optionally surface failures.

``ErrorReporter.handle`` is the single exit for operational failures of the
engine. It never raises. Every accepted error is:

1. logged with its traceback,
2. published as ``error:occurred`` with ``{message, stack, name, context}``,
3. counted (instance counter and Prometheus),
4. classified and handed to the Notification Surface when ``show_user``.

Identical messages inside ``dedupe_seconds`` are dropped so a failing loop
does not flood the log and the user.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from collections.abc import Callable

from core.errors import ErrorAnalysis, ErrorPayload, classify_error
from engine.bus import CoordinationBus
from engine.protocols import NotificationSurface
from infrastructure.metrics import record_error_reported

logger = logging.getLogger(__name__)

ERROR_EVENT = "error:occurred"
DEFAULT_HISTORY_SIZE = 100


class ErrorReporter:
    """Reports failures to the log, the bus and the user.

    Args:
        bus: Bus receiving ``error:occurred``. Can be attached later via ``set_bus``.
        surface: Optional Notification Surface for user-visible errors.
        dedupe_seconds: Window in which an identical message is reported once.
        clock: Monotonic time source, injectable for tests.
        history_size: Number of recent payloads kept for diagnostics.
    """

    def __init__(
        self,
        bus: CoordinationBus | None = None,
        surface: NotificationSurface | None = None,
        dedupe_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        if dedupe_seconds < 0:
            raise ValueError(f"dedupe_seconds must be non-negative, got {dedupe_seconds}")
        self._bus = bus
        self._surface = surface
        self._dedupe_seconds = dedupe_seconds
        self._clock = clock
        self._last_seen: dict[str, float] = {}
        self._history: deque[ErrorPayload] = deque(maxlen=history_size)
        self._error_count = 0

    @property
    def error_count(self) -> int:
        return self._error_count

    def reset_error_count(self) -> None:
        self._error_count = 0

    def set_bus(self, bus: CoordinationBus | None) -> None:
        self._bus = bus

    def history(self) -> list[ErrorPayload]:
        """Most recent reported payloads, oldest first."""
        return list(self._history)

    def handle(
        self, exc: BaseException, context: str = "unknown", show_user: bool = False
    ) -> ErrorPayload | None:
        """Report ``exc``.

        Args:
            exc: The failure.
            context: Where it happened, e.g. "engine.init".
            show_user: Pass the classified error to the Notification Surface.

        Returns:
            The published payload, or None when the error was deduplicated.
        """
        payload = ErrorPayload.from_exception(exc, context)

        now = self._clock()
        self._forget_expired(now)
        last = self._last_seen.get(payload.message)
        if last is not None and now - last < self._dedupe_seconds:
            logger.debug("duplicate error suppressed: %s", payload.message)
            return None
        self._last_seen[payload.message] = now

        self._error_count += 1
        self._history.append(payload)
        analysis = classify_error(payload)
        record_error_reported(analysis.category.value)

        logger.error(
            "[%s] %s: %s",
            context,
            payload.name,
            payload.message,
            exc_info=(type(exc), exc, exc.__traceback__),
            extra={"data": {"context": context, "category": analysis.category.value}},
        )

        if self._bus is not None:
            self._bus.publish(ERROR_EVENT, payload.as_dict())

        if show_user:
            self._notify(analysis)

        return payload

    def _forget_expired(self, now: float) -> None:
        """Drop dedupe entries whose window has closed."""
        expired = [m for m, seen in self._last_seen.items() if now - seen >= self._dedupe_seconds]
        for message in expired:
            del self._last_seen[message]

    def _notify(self, analysis: ErrorAnalysis) -> None:
        if self._surface is None:
            logger.debug("no notification surface; %r not shown", analysis.user_message)
            return
        try:
            self._surface.notify(analysis)
        except Exception:
            logger.error("notification surface failed", exc_info=True)

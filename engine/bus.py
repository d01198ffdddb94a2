"""
Coordination bus — priority-ordered publish/subscribe for engine modules.

Modules coordinate through colon-delimited topics (``domain:action``, e.g.
``microphone:granted``, ``context:resumed``, ``error:occurred``). Payloads are
opaque to the bus.

Guarantees:
    - Subscribers of one event are kept sorted by descending priority;
      ties keep registration order.
    - ``publish`` is synchronous: every subscriber runs on the caller's
      control flow before ``publish`` returns.
    - Dispatch iterates over a snapshot taken when ``publish`` starts, so
      subscribe/unsubscribe calls made by a callback affect later publishes only.
    - A subscriber that raises is logged and counted; the remaining
      subscribers still run and nothing propagates to the publisher.
    - Invalid arguments (including non-finite priorities) never raise: they
      are logged and yield a no-op token.

Usage::

    bus = CoordinationBus(clock=lambda: handle.current_time)
    unsubscribe = bus.subscribe("microphone:granted", on_granted, priority=10)
    bus.publish("microphone:granted", {"deviceId": "default"})
    unsubscribe()
"""

from __future__ import annotations

import itertools
import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, field
from numbers import Real
from typing import Any

from infrastructure.metrics import record_bus_event, record_subscriber_error

logger = logging.getLogger(__name__)

Clock = Callable[[], float | None]
Unsubscribe = Callable[[], None]
NAMESPACE_SEPARATOR = ":"


def _noop() -> None:
    return None


@dataclass(frozen=True)
class EventEnvelope:
    """What a subscriber receives. Not retained after dispatch."""

    event_name: str
    data: Any = None
    timestamp: float | None = None


Callback = Callable[[EventEnvelope], Any]


@dataclass(frozen=True)
class Subscription:
    """One registered callback.

    ``seq`` is a bus-wide registration counter; it is the stable tie-break
    for equal priorities.
    """

    event_name: str
    callback: Callback
    priority: float
    seq: int


@dataclass
class BusStats:
    """Diagnostic counters. Only aggregates survive a publish."""

    total_events: int = 0
    event_counts: dict[str, int] = field(default_factory=dict)
    subscriber_errors: int = 0
    registered_events: int = 0
    total_subscribers: int = 0


class CoordinationBus:
    """Priority-ordered publish/subscribe registry.

    Args:
        clock: Optional zero-argument callable returning the resource clock.
            Used as the envelope timestamp when ``publish`` gets none.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        """Initialize an empty registry."""
        self._subscribers: dict[str, list[Subscription]] = {}
        self._clock = clock
        self._seq = itertools.count()
        self._total_events = 0
        self._event_counts: dict[str, int] = {}
        self._subscriber_errors = 0
        logger.info("CoordinationBus initialized (clock=%s)", clock is not None)

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def set_clock(self, clock: Clock | None) -> None:
        """Inject or replace the timestamp source (None detaches it)."""
        self._clock = clock
        logger.debug("bus clock %s", "attached" if clock is not None else "detached")

    def _now(self) -> float | None:
        if self._clock is None:
            return None
        try:
            return self._clock()
        except Exception:
            logger.warning("bus clock raised; publishing without timestamp", exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def subscribe(self, event_name: str, callback: Callback, priority: float = 0) -> Unsubscribe:
        """Register ``callback`` for ``event_name``.

        Args:
            event_name: Non-empty topic string.
            callback: Called with an EventEnvelope.
            priority: Higher runs earlier. Equal priorities run in
                registration order.

        Returns:
            A token that removes this callback when called. A no-op token
            when the arguments are invalid.
        """
        if not isinstance(event_name, str) or not event_name:
            logger.warning("subscribe: invalid event name %r", event_name)
            return _noop
        if not callable(callback):
            logger.warning("subscribe: callback for %r is not callable", event_name)
            return _noop
        if (
            isinstance(priority, bool)
            or not isinstance(priority, Real)
            or not math.isfinite(priority)
        ):
            logger.warning("subscribe: invalid priority %r for %r", priority, event_name)
            return _noop

        bucket = self._subscribers.setdefault(event_name, [])
        bucket.append(Subscription(event_name, callback, priority, next(self._seq)))
        bucket.sort(key=lambda s: (-s.priority, s.seq))

        logger.debug(
            "subscribed to %r (priority=%s, total=%d)", event_name, priority, len(bucket)
        )
        return lambda: self.unsubscribe(event_name, callback)

    def unsubscribe(self, event_name: str, callback: Callback) -> None:
        """Remove every registration of ``callback`` for ``event_name``.

        The event's bucket disappears with its last subscriber.
        """
        bucket = self._subscribers.get(event_name)
        if bucket is None:
            logger.debug("unsubscribe: no subscribers for %r", event_name)
            return

        remaining = [s for s in bucket if s.callback is not callback]
        removed = len(bucket) - len(remaining)
        if remaining:
            self._subscribers[event_name] = remaining
        else:
            del self._subscribers[event_name]

        logger.debug(
            "unsubscribed from %r (removed=%d, remaining=%d)", event_name, removed, len(remaining)
        )

    def once(self, event_name: str, callback: Callback, priority: float = 0) -> Unsubscribe:
        """Subscribe for a single dispatch.

        The wrapper removes itself before invoking ``callback``, so a callback
        that raises is still removed.
        """
        if not callable(callback):
            logger.warning("once: callback for %r is not callable", event_name)
            return _noop

        def wrapper(envelope: EventEnvelope) -> Any:
            self.unsubscribe(event_name, wrapper)
            return callback(envelope)

        return self.subscribe(event_name, wrapper, priority)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def publish(self, event_name: str, data: Any = None, timestamp: float | None = None) -> int:
        """Dispatch ``data`` to the current subscribers of ``event_name``.

        Args:
            event_name: Topic string.
            data: Producer-defined payload.
            timestamp: Explicit timestamp. Falls back to the clock, then None.

        Returns:
            Number of subscribers that completed without raising.
        """
        if not isinstance(event_name, str) or not event_name:
            logger.warning("publish: invalid event name %r", event_name)
            return 0

        effective = timestamp if timestamp is not None else self._now()

        self._total_events += 1
        self._event_counts[event_name] = self._event_counts.get(event_name, 0) + 1
        record_bus_event(event_name)

        snapshot = tuple(self._subscribers.get(event_name, ()))
        if not snapshot:
            logger.debug("publish %r: no subscribers", event_name)
            return 0

        envelope = EventEnvelope(event_name=event_name, data=data, timestamp=effective)
        delivered = 0
        errors = 0
        for sub in snapshot:
            try:
                sub.callback(envelope)
                delivered += 1
            except Exception:
                errors += 1
                self._subscriber_errors += 1
                record_subscriber_error(event_name)
                logger.error(
                    "subscriber of %r (priority=%s) raised",
                    event_name,
                    sub.priority,
                    exc_info=True,
                    extra={"data": {"event": event_name, "priority": sub.priority}},
                )

        logger.debug("publish %r: delivered=%d errors=%d", event_name, delivered, errors)
        return delivered

    # ------------------------------------------------------------------
    # Introspection & teardown
    # ------------------------------------------------------------------

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, ()))

    def has_subscribers(self, event_name: str) -> bool:
        return self.subscriber_count(event_name) > 0

    def event_names(self) -> list[str]:
        return list(self._subscribers)

    def subscriptions(self, event_name: str) -> tuple[Subscription, ...]:
        """Current subscriptions of an event in dispatch order."""
        return tuple(self._subscribers.get(event_name, ()))

    def clear(self, event_name: str | None = None) -> None:
        """Drop the subscribers of one event, or of every event."""
        if event_name is not None:
            count = len(self._subscribers.pop(event_name, ()))
            logger.info("cleared subscribers for %r (count=%d)", event_name, count)
            return
        total = sum(len(b) for b in self._subscribers.values())
        self._subscribers.clear()
        logger.info("cleared ALL subscribers (count=%d)", total)

    def stats(self) -> BusStats:
        return BusStats(
            total_events=self._total_events,
            event_counts=dict(self._event_counts),
            subscriber_errors=self._subscriber_errors,
            registered_events=len(self._subscribers),
            total_subscribers=sum(len(b) for b in self._subscribers.values()),
        )

    def reset_stats(self) -> None:
        self._total_events = 0
        self._event_counts = {}
        self._subscriber_errors = 0

    def namespace(self, prefix: str) -> BusNamespace:
        """Bound view that prefixes every event name with ``prefix:``."""
        return BusNamespace(self, prefix)

    def destroy(self) -> None:
        """Drop every subscriber, detach the clock and reset counters."""
        self.clear()
        self._clock = None
        self.reset_stats()
        logger.info("CoordinationBus destroyed")


class BusNamespace:
    """Event-name-prefixing view over a CoordinationBus.

    Example:
        >>> mic = bus.namespace("microphone")
        >>> mic.publish("granted", {"deviceId": "default"})   # → "microphone:granted"
    """

    def __init__(self, bus: CoordinationBus, prefix: str) -> None:
        self.bus = bus
        self.prefix = prefix

    def qualify(self, event_name: str) -> str:
        return f"{self.prefix}{NAMESPACE_SEPARATOR}{event_name}"

    def subscribe(self, event_name: str, callback: Callback, priority: float = 0) -> Unsubscribe:
        return self.bus.subscribe(self.qualify(event_name), callback, priority)

    def unsubscribe(self, event_name: str, callback: Callback) -> None:
        self.bus.unsubscribe(self.qualify(event_name), callback)

    def once(self, event_name: str, callback: Callback, priority: float = 0) -> Unsubscribe:
        return self.bus.once(self.qualify(event_name), callback, priority)

    def publish(self, event_name: str, data: Any = None, timestamp: float | None = None) -> int:
        return self.bus.publish(self.qualify(event_name), data, timestamp)

    def clear(self) -> None:
        """Drop the subscribers of every event under this prefix."""
        head = f"{self.prefix}{NAMESPACE_SEPARATOR}"
        for name in [n for n in self.bus.event_names() if n.startswith(head)]:
            self.bus.clear(name)

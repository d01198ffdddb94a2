"""Prometheus metrics for the audio engine core.

Exposes lifecycle and coordination context in metrics so dashboards show how
often the audio resource fails to resume, which bus topics are hot, and which
subscribers misbehave.

Metrics:
    vc_bus_events_total                 Counter of published events by name
    vc_bus_subscriber_errors_total      Subscriber callbacks that raised, by event name
    vc_resource_transitions_total       Resource state changes by resulting state
    vc_resource_resume_failures_total   Failed resume attempts
    vc_resource_escalations_total       Times the resume retry cap was reached
    vc_engine_init_total                Engine init() outcomes (success/error)
    vc_engine_init_seconds              Histogram of init() duration
    vc_errors_reported_total            Errors handed to the reporter, by category

All metrics live on a dedicated registry so importing this module never
collides with the process-global default registry.

Usage::

    from infrastructure.metrics import record_bus_event, record_escalation
"""

from __future__ import annotations

import logging
import time

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

bus_events_total = Counter(
    "vc_bus_events_total",
    "Events published on the coordination bus",
    ["event"],
    registry=REGISTRY,
)

bus_subscriber_errors_total = Counter(
    "vc_bus_subscriber_errors_total",
    "Subscriber callbacks that raised during dispatch",
    ["event"],
    registry=REGISTRY,
)

resource_transitions_total = Counter(
    "vc_resource_transitions_total",
    "Audio resource state transitions by resulting state",
    ["state"],
    registry=REGISTRY,
)

resource_resume_failures_total = Counter(
    "vc_resource_resume_failures_total",
    "Failed attempts to resume the audio resource",
    registry=REGISTRY,
)

resource_escalations_total = Counter(
    "vc_resource_escalations_total",
    "Times the resume retry cap was reached",
    registry=REGISTRY,
)

engine_init_total = Counter(
    "vc_engine_init_total",
    "Engine init() outcomes",
    ["outcome"],
    registry=REGISTRY,
)

engine_init_seconds = Histogram(
    "vc_engine_init_seconds",
    "Wall-clock duration of engine init()",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY,
)

errors_reported_total = Counter(
    "vc_errors_reported_total",
    "Errors handed to the error reporter, by category",
    ["category"],
    registry=REGISTRY,
)


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------


def record_bus_event(event: str) -> None:
    """Increment the published-event counter for ``event``."""
    bus_events_total.labels(event=event).inc()


def record_subscriber_error(event: str) -> None:
    """Increment the subscriber-failure counter for ``event``."""
    bus_subscriber_errors_total.labels(event=event).inc()


def record_transition(state: str) -> None:
    """Record a resource state transition.

    Args:
        state: Resulting state value, e.g. "running".
    """
    resource_transitions_total.labels(state=state).inc()


def record_resume_failure() -> None:
    resource_resume_failures_total.inc()


def record_escalation() -> None:
    resource_escalations_total.inc()


def record_engine_init(*, outcome: str, latency_seconds: float) -> None:
    """Record a completed init() call.

    Args:
        outcome: "success" or "error".
        latency_seconds: Wall-clock time in seconds.
    """
    engine_init_total.labels(outcome=outcome).inc()
    engine_init_seconds.observe(latency_seconds)


def record_error_reported(category: str) -> None:
    errors_reported_total.labels(category=category).inc()


def get_metrics_response() -> tuple[bytes, str]:
    """Generate Prometheus text exposition format.

    Returns:
        Tuple of (body_bytes, content_type_string).
    """
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST


class LatencyTimer:
    """Context manager for measuring latency.

    Usage::

        with LatencyTimer() as t:
            ok = await self._initialize()
        record_engine_init(outcome="success", latency_seconds=t.elapsed)
    """

    def __init__(self) -> None:
        """Initialize timer."""
        self._start: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> LatencyTimer:
        """Start timing."""
        self._start = time.perf_counter()
        return self

    def __exit__(self, *_: object) -> None:
        """Stop timing and record elapsed."""
        self.elapsed = time.perf_counter() - self._start

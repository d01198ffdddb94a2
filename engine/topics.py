"""Typed topics over the string-keyed coordination bus.

The bus keeps free-form event names for compatibility with external
producers. A ``Topic`` pairs a name with a pydantic schema so in-process
producers get their payload validated before anything is dispatched.

Usage::

    publish_topic(bus, MICROPHONE_GRANTED, {"device_id": "default"})
    subscribe_topic(bus, MICROPHONE_GRANTED, on_granted, priority=5)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from engine.bus import NAMESPACE_SEPARATOR, CoordinationBus, EventEnvelope, Unsubscribe

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Payload schemas
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")


class StateChangePayload(_Payload):
    state: str
    previous: str | None = None


class EscalationPayload(_Payload):
    attempts: int = Field(ge=1)


class ResumeFailedPayload(_Payload):
    attempts: int = Field(ge=1)
    error: str = ""


class EngineStatePayload(_Payload):
    state: str
    previous: str


class ErrorOccurredPayload(_Payload):
    """Classification-ready error, as published by the error reporter."""

    message: str
    stack: str = ""
    name: str = "Error"
    context: str = "unknown"


class MicrophoneGrantedPayload(_Payload):
    device_id: str | None = None


class MicrophoneDeniedPayload(_Payload):
    reason: str = ""


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Topic(Generic[M]):
    """An event name bound to its payload schema."""

    name: str
    schema: type[M]

    def validate(self, payload: M | dict[str, Any]) -> M:
        """Return a schema instance.

        Raises:
            ValidationError: If the payload does not match the schema.
        """
        if isinstance(payload, self.schema):
            return payload
        return self.schema.model_validate(payload)

    @property
    def local_name(self) -> str:
        """Event name without its namespace prefix (``"context:escalated"`` → ``"escalated"``)."""
        return self.name.split(NAMESPACE_SEPARATOR, 1)[-1]


CONTEXT_RESUMED = Topic("context:resumed", StateChangePayload)
CONTEXT_SUSPENDED = Topic("context:suspended", StateChangePayload)
CONTEXT_CLOSED = Topic("context:closed", StateChangePayload)
CONTEXT_RESUME_FAILED = Topic("context:resume-failed", ResumeFailedPayload)
CONTEXT_STATECHANGE = Topic("context:statechange", StateChangePayload)
CONTEXT_ESCALATED = Topic("context:escalated", EscalationPayload)
ENGINE_STATE = Topic("engine:state", EngineStatePayload)
ERROR_OCCURRED = Topic("error:occurred", ErrorOccurredPayload)
MICROPHONE_GRANTED = Topic("microphone:granted", MicrophoneGrantedPayload)
MICROPHONE_DENIED = Topic("microphone:denied", MicrophoneDeniedPayload)


def publish_topic(
    bus: CoordinationBus,
    topic: Topic[M],
    payload: M | dict[str, Any],
    timestamp: float | None = None,
) -> int:
    """Validate ``payload`` against the topic schema, then publish it.

    The dispatched data is the validated model instance.

    Returns:
        Subscribers reached; 0 (nothing dispatched) when validation fails.
    """
    model = validate_payload(topic, payload)
    if model is None:
        return 0
    return bus.publish(topic.name, model, timestamp)


def validate_payload(topic: Topic[M], payload: M | dict[str, Any]) -> M | None:
    """``topic.validate`` that logs and returns None instead of raising."""
    try:
        return topic.validate(payload)
    except ValidationError as exc:
        logger.error(
            "payload rejected for %r: %d validation error(s)",
            topic.name,
            exc.error_count(),
            extra={"data": {"topic": topic.name, "errors": exc.errors()}},
        )
        return None


def subscribe_topic(
    bus: CoordinationBus,
    topic: Topic[M],
    callback: Callable[[EventEnvelope], Any],
    priority: float = 0,
) -> Unsubscribe:
    """Subscribe to a typed topic. Plain ``bus.subscribe`` under the hood."""
    return bus.subscribe(topic.name, callback, priority)

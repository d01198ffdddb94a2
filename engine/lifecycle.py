"""Lifecycle manager for the platform audio resource.

The resource is a small state machine the platform also writes to::

    uninitialized ──resume──→ running ⇄ suspended
          │                      │          │
          └────────close─────────┴──close───┴──→ closed (terminal)

The platform may demote ``running → suspended`` on its own (tab hidden,
phone call, ...). Those external changes arrive through the handle's state
listener: the cached state is updated and a ``context:statechange`` event is
published, but the manager never resumes on its own. Activation always needs
a fresh user gesture, so a resume attempted outside one is rejected by the
platform rather than crashing anything.

Resume failures are counted. Reaching ``max_resume_attempts`` consecutive
failures escalates once per failure streak (critical log, ``context:escalated``
event, metric). The automatic retry path stops there; a manual ``resume()``
from a later user gesture is still attempted.

Usage::

    manager = ResourceLifecycleManager(handle, events=bus.namespace("context"))
    if not await manager.resume():
        ...  # show "tap to enable audio"
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from core.config import LifecycleConfig
from core.types import ResourceState
from engine.bus import BusNamespace
from engine.protocols import AudioResourceHandle
from engine.topics import (
    CONTEXT_CLOSED,
    CONTEXT_ESCALATED,
    CONTEXT_RESUME_FAILED,
    CONTEXT_RESUMED,
    CONTEXT_STATECHANGE,
    CONTEXT_SUSPENDED,
    validate_payload,
)
from infrastructure.metrics import record_escalation, record_resume_failure, record_transition
from infrastructure.retry import backoff_seconds

logger = logging.getLogger(__name__)

_EVENT_TOPICS = {
    topic.local_name: topic
    for topic in (
        CONTEXT_RESUMED,
        CONTEXT_SUSPENDED,
        CONTEXT_CLOSED,
        CONTEXT_RESUME_FAILED,
        CONTEXT_STATECHANGE,
        CONTEXT_ESCALATED,
    )
}


@dataclass
class LifecycleStats:
    """Runtime statistics for a lifecycle manager instance."""

    resume_failures: int = 0
    escalations: int = 0
    transitions: list[tuple[str, float]] = field(default_factory=list)

    def record_transition(self, new_state: ResourceState) -> None:
        """Record a state transition with timestamp."""
        self.transitions.append((new_state.value, time.time()))


def _coerce_state(raw: Any, fallback: ResourceState) -> ResourceState:
    try:
        return ResourceState(raw)
    except ValueError:
        logger.warning("unknown resource state %r, keeping %s", raw, fallback.value)
        return fallback


class ResourceLifecycleManager:
    """Owns every mutation of the audio resource handle.

    Args:
        handle: The platform audio resource. Required.
        config: Resume retry policy.
        events: Optional bus namespace (normally ``bus.namespace("context")``)
            that receives ``resumed``, ``suspended``, ``closed``,
            ``resume-failed``, ``escalated`` and ``statechange``. Payloads
            are the validated models of the matching ``context:*`` topics.

    Raises:
        ValueError: If ``handle`` is None.
    """

    def __init__(
        self,
        handle: AudioResourceHandle,
        config: LifecycleConfig | None = None,
        events: BusNamespace | None = None,
    ) -> None:
        """Adopt the handle's current state; never resumes here."""
        if handle is None:
            raise ValueError("ResourceLifecycleManager requires an audio resource handle")

        self._handle = handle
        self._config = config or LifecycleConfig()
        self._events = events
        self._state = _coerce_state(getattr(handle, "state", None), ResourceState.SUSPENDED)
        self._resume_attempts = 0
        self._escalated = False
        self._detached = False
        self.stats = LifecycleStats()

        self._listen_for_external_changes()
        logger.info(
            "ResourceLifecycleManager initialized (state=%s, max_resume_attempts=%d)",
            self._state.value,
            self._config.max_resume_attempts,
            extra={"data": {"state": self._state.value}},
        )

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ResourceState:
        return self._state

    @property
    def handle(self) -> AudioResourceHandle:
        return self._handle

    @property
    def resume_attempts(self) -> int:
        """Consecutive failed resumes, capped at ``max_resume_attempts``."""
        return self._resume_attempts

    @property
    def is_escalated(self) -> bool:
        return self._escalated

    def is_ready(self) -> bool:
        return self._state is ResourceState.RUNNING

    def debug_info(self) -> dict[str, Any]:
        """Latency and clock snapshot for diagnostics."""
        return {
            "state": self._state.value,
            "sample_rate": getattr(self._handle, "sample_rate", 0) or 0,
            "current_time": getattr(self._handle, "current_time", 0.0) or 0.0,
            "base_latency": getattr(self._handle, "base_latency", 0.0) or 0.0,
            "output_latency": getattr(self._handle, "output_latency", 0.0) or 0.0,
            "resume_attempts": self._resume_attempts,
        }

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def resume(self) -> bool:
        """Activate the resource. Must be called from a user gesture.

        Returns:
            True if the resource is running afterwards (including when it
            already was, in which case the platform is not called).
        """
        if self._state is ResourceState.RUNNING:
            logger.debug("resume: already running")
            return True
        if self._state is ResourceState.CLOSED:
            logger.warning("resume refused: resource is closed")
            return False

        logger.info(
            "resume requested (state=%s, attempts=%d)", self._state.value, self._resume_attempts
        )
        try:
            await self._handle.resume()
        except Exception as exc:
            self._sync_from_handle()
            self._on_resume_failure(str(exc), exc)
            return False

        observed = self._sync_from_handle()
        if observed is not ResourceState.RUNNING:
            self._on_resume_failure(f"resource still {observed.value} after resume", None)
            return False

        self._resume_attempts = 0
        self._escalated = False
        logger.info("resume successful")
        self._emit("resumed", {"state": observed.value})
        return True

    async def resume_with_retry(self) -> bool:
        """Automatic retry path: resume with exponential backoff until escalation.

        Returns:
            True on success. False once escalated or closed; when already
            escalated the platform is not called at all.
        """
        if self._escalated:
            logger.warning(
                "automatic resume skipped: escalated after %d attempts", self._resume_attempts
            )
            return False

        while True:
            if await self.resume():
                return True
            if self._escalated or self._state is ResourceState.CLOSED:
                return False
            delay = backoff_seconds(
                self._resume_attempts,
                base_seconds=self._config.retry_base_seconds,
                max_seconds=self._config.retry_max_seconds,
                jitter=self._config.retry_jitter,
            )
            logger.info(
                "retrying resume in %.2fs (attempt %d/%d)",
                delay,
                self._resume_attempts,
                self._config.max_resume_attempts,
            )
            await asyncio.sleep(delay)

    async def suspend(self) -> bool:
        """Suspend the resource and mirror the state the platform reports."""
        if self._state is ResourceState.SUSPENDED:
            logger.debug("suspend: already suspended")
            return True
        if self._state is ResourceState.CLOSED:
            logger.warning("suspend refused: resource is closed")
            return False

        logger.info("suspend requested (state=%s)", self._state.value)
        try:
            await self._handle.suspend()
        except Exception:
            logger.error("suspend failed", exc_info=True)
            self._sync_from_handle()
            return False

        observed = self._sync_from_handle()
        if observed is not ResourceState.SUSPENDED:
            logger.warning("resource reports %s after suspend", observed.value)
            return False

        logger.info("suspend successful")
        self._emit("suspended", {"state": observed.value})
        return True

    async def close(self) -> bool:
        """Release the resource. ``closed`` is terminal."""
        if self._state is ResourceState.CLOSED:
            logger.debug("close: already closed")
            return True

        logger.info("close requested (state=%s)", self._state.value)
        try:
            await self._handle.close()
        except Exception:
            logger.error("close failed", exc_info=True)
            return False

        self._transition(ResourceState.CLOSED)
        logger.info("close successful")
        self._emit("closed", {"state": ResourceState.CLOSED.value})
        return True

    def detach(self) -> None:
        """Stop observing the handle and stop publishing events.

        Called when the owner drops this manager. Notifications the platform
        still delivers afterwards are ignored.
        """
        if self._detached:
            return
        self._detached = True
        self._events = None
        remove_listener = getattr(self._handle, "remove_state_listener", None)
        if remove_listener is not None:
            try:
                remove_listener(self._on_external_state_change)
            except Exception:
                logger.warning("state listener removal failed", exc_info=True)
        logger.debug("detached from audio resource handle")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _listen_for_external_changes(self) -> None:
        add_listener = getattr(self._handle, "add_state_listener", None)
        if add_listener is None:
            logger.warning("handle exposes no state listener; external changes go unobserved")
            return
        try:
            add_listener(self._on_external_state_change)
        except Exception:
            logger.warning("state listener registration failed", exc_info=True)

    def _on_external_state_change(self, raw_state: Any) -> None:
        """Platform-driven change. Updates the cache only; never resumes."""
        if self._detached:
            logger.debug("ignoring state %r from a detached handle", raw_state)
            return
        previous = self._state
        new_state = _coerce_state(raw_state, previous)
        if new_state is previous:
            return
        logger.info(
            "external state change %s → %s",
            previous.value,
            new_state.value,
            extra={"data": {"from": previous.value, "to": new_state.value}},
        )
        self._transition(new_state)
        self._emit("statechange", {"state": new_state.value, "previous": previous.value})

    def _sync_from_handle(self) -> ResourceState:
        observed = _coerce_state(getattr(self._handle, "state", None), self._state)
        self._transition(observed)
        return observed

    def _transition(self, new_state: ResourceState) -> None:
        if new_state is self._state:
            return
        logger.debug("state %s → %s", self._state.value, new_state.value)
        self._state = new_state
        self.stats.record_transition(new_state)
        record_transition(new_state.value)

    def _on_resume_failure(self, reason: str, exc: Exception | None) -> None:
        cap = self._config.max_resume_attempts
        self._resume_attempts = min(self._resume_attempts + 1, cap)
        self.stats.resume_failures += 1
        record_resume_failure()
        logger.warning(
            "resume failed (attempt %d/%d): %s",
            self._resume_attempts,
            cap,
            reason,
            exc_info=exc,
            extra={"data": {"attempts": self._resume_attempts, "state": self._state.value}},
        )
        self._emit("resume-failed", {"attempts": self._resume_attempts, "error": reason})

        if self._resume_attempts >= cap and not self._escalated:
            self._escalate()

    def _escalate(self) -> None:
        self._escalated = True
        self.stats.escalations += 1
        record_escalation()
        logger.critical(
            "audio resource failed to resume %d times in a row; waiting for a user gesture",
            self._resume_attempts,
            extra={"data": {"attempts": self._resume_attempts}},
        )
        self._emit("escalated", {"attempts": self._resume_attempts})

    def _emit(self, event: str, data: dict[str, Any]) -> None:
        if self._events is None:
            return
        payload = validate_payload(_EVENT_TOPICS[event], data)
        if payload is not None:
            self._events.publish(event, payload)

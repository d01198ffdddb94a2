"""
Shared fixtures for the test suite.

Centralizes the platform fakes so individual test files don't need to
repeat handle/probe boilerplate. No test touches a real audio device.
"""

from __future__ import annotations

from typing import Any

import pytest

from core.errors import ErrorAnalysis
from engine.bus import CoordinationBus, EventEnvelope
from engine.facade import EngineFacade

# ---------------------------------------------------------------------------
# Fake audio resource handle
# ---------------------------------------------------------------------------


class FakeAudioHandle:
    """Scriptable stand-in for the platform audio context.

    Args:
        state: Initial raw state.
        resume_failures: Number of upcoming ``resume()`` calls that raise.
        resume_leaves_state: If set, a non-raising ``resume()`` leaves the
            handle in this state instead of "running".
        suspend_raises: ``suspend()`` raises.
        close_raises: ``close()`` raises.
    """

    def __init__(
        self,
        state: str = "suspended",
        *,
        sample_rate: float = 48000,
        resume_failures: int = 0,
        resume_leaves_state: str | None = None,
        suspend_raises: bool = False,
        close_raises: bool = False,
    ) -> None:
        self._state = state
        self.sample_rate = sample_rate
        self.current_time = 0.0
        self.base_latency = 0.005
        self.output_latency = 0.02
        self.resume_failures = resume_failures
        self.resume_leaves_state = resume_leaves_state
        self.suspend_raises = suspend_raises
        self.close_raises = close_raises
        self.resume_calls = 0
        self.suspend_calls = 0
        self.close_calls = 0
        self.listeners: list[Any] = []

    @property
    def state(self) -> str:
        return self._state

    async def resume(self) -> None:
        self.resume_calls += 1
        if self.resume_failures > 0:
            self.resume_failures -= 1
            raise RuntimeError("NotAllowedError: resume requires a user gesture")
        self._state = self.resume_leaves_state or "running"

    async def suspend(self) -> None:
        self.suspend_calls += 1
        if self.suspend_raises:
            raise RuntimeError("suspend rejected")
        self._state = "suspended"

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_raises:
            raise RuntimeError("close rejected")
        self._state = "closed"

    def add_state_listener(self, listener: Any) -> None:
        self.listeners.append(listener)

    def remove_state_listener(self, listener: Any) -> None:
        self.listeners.remove(listener)

    def simulate_external_change(self, state: str) -> None:
        """Platform-driven transition (tab hidden, interruption, ...)."""
        self._state = state
        for listener in list(self.listeners):
            listener(state)


class HandleWithoutListener:
    """Minimal handle exposing no state notifications."""

    state = "running"
    sample_rate = 44100
    current_time = 1.5

    async def resume(self) -> None:
        return None

    async def suspend(self) -> None:
        return None

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Fake capability probe
# ---------------------------------------------------------------------------


class FakeProbe:
    """Capability probe returning a preconfigured handle."""

    def __init__(
        self,
        handle: FakeAudioHandle | None = None,
        *,
        capable: bool = True,
        factory_raises: Exception | None = None,
        returns_none: bool = False,
    ) -> None:
        self.handle = handle if handle is not None else FakeAudioHandle()
        self.capable = capable
        self.factory_raises = factory_raises
        self.returns_none = returns_none
        self.created_with: list[dict[str, Any]] = []

    def can_create_audio_resource(self) -> bool:
        return self.capable

    def create_audio_resource(self, config: dict[str, Any]) -> FakeAudioHandle | None:
        self.created_with.append(config)
        if self.factory_raises is not None:
            raise self.factory_raises
        if self.returns_none:
            return None
        return self.handle


# ---------------------------------------------------------------------------
# Recording collaborators
# ---------------------------------------------------------------------------


class RecordingSurface:
    """Notification surface that keeps every analysis it is given."""

    def __init__(self, raises: bool = False) -> None:
        self.raises = raises
        self.notified: list[ErrorAnalysis] = []

    def notify(self, analysis: ErrorAnalysis) -> None:
        self.notified.append(analysis)
        if self.raises:
            raise RuntimeError("surface broken")


class Recorder:
    """Bus callback recording every envelope it receives."""

    def __init__(self) -> None:
        self.envelopes: list[EventEnvelope] = []

    def __call__(self, envelope: EventEnvelope) -> None:
        self.envelopes.append(envelope)

    @property
    def data(self) -> list[Any]:
        return [e.data for e in self.envelopes]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def bus() -> CoordinationBus:
    return CoordinationBus()


@pytest.fixture()
def handle() -> FakeAudioHandle:
    return FakeAudioHandle()


@pytest.fixture(autouse=True)
def _release_engine_slot():
    """Every test starts and ends without a process-wide engine."""
    EngineFacade._instance = None
    yield
    EngineFacade._instance = None

"""Tests for engine/lifecycle.py.

Covers:
- Initial state adopted from the handle, no resume on construction
- resume(): running no-op, closed refusal, success resets attempts
- Escalation at the cap, exactly once per failure streak
- resume_with_retry(): backoff loop, stops at escalation
- suspend() / close() idempotence and terminal closed state
- External state changes: cache updated, statechange published, no auto-resume
- Stats, metrics and debug info
"""

from __future__ import annotations

import logging

import pytest

from conftest import FakeAudioHandle, HandleWithoutListener, Recorder
from core.config import LifecycleConfig
from core.types import ResourceState
from engine.bus import CoordinationBus
from engine.lifecycle import ResourceLifecycleManager
from engine.topics import (
    CONTEXT_STATECHANGE,
    EscalationPayload,
    StateChangePayload,
    subscribe_topic,
)
from infrastructure.metrics import resource_escalations_total, resource_resume_failures_total

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

FAST_RETRY = LifecycleConfig(retry_base_seconds=0.0, retry_max_seconds=0.0)


def _make_manager(
    handle: FakeAudioHandle | None = None, bus: CoordinationBus | None = None, **config
) -> ResourceLifecycleManager:
    events = bus.namespace("context") if bus is not None else None
    cfg = LifecycleConfig(**config) if config else FAST_RETRY
    return ResourceLifecycleManager(handle or FakeAudioHandle(), cfg, events=events)


def _listen(bus: CoordinationBus, event: str) -> Recorder:
    rec = Recorder()
    bus.subscribe(f"context:{event}", rec)
    return rec


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_requires_handle(self) -> None:
        with pytest.raises(ValueError, match="handle"):
            ResourceLifecycleManager(None)  # type: ignore[arg-type]

    @pytest.mark.parametrize("raw", ["suspended", "running", "closed", "uninitialized"])
    def test_adopts_handle_state(self, raw: str) -> None:
        manager = _make_manager(FakeAudioHandle(state=raw))
        assert manager.state is ResourceState(raw)

    def test_never_resumes_on_construction(self, handle: FakeAudioHandle) -> None:
        _make_manager(handle)
        assert handle.resume_calls == 0

    def test_registers_state_listener(self, handle: FakeAudioHandle) -> None:
        _make_manager(handle)
        assert len(handle.listeners) == 1

    def test_handle_without_listener_hook(self, caplog) -> None:
        with caplog.at_level(logging.WARNING, logger="engine.lifecycle"):
            manager = ResourceLifecycleManager(HandleWithoutListener())  # type: ignore[arg-type]
        assert manager.state is ResourceState.RUNNING
        assert "no state listener" in caplog.text

    def test_unknown_raw_state_falls_back_to_suspended(self) -> None:
        manager = _make_manager(FakeAudioHandle(state="interrupted"))
        assert manager.state is ResourceState.SUSPENDED


# ---------------------------------------------------------------------------
# resume()
# ---------------------------------------------------------------------------


class TestResume:
    @pytest.mark.asyncio
    async def test_running_is_noop_without_platform_call(self) -> None:
        handle = FakeAudioHandle(state="running")
        manager = _make_manager(handle)
        assert await manager.resume() is True
        assert handle.resume_calls == 0

    @pytest.mark.asyncio
    async def test_closed_always_fails(self) -> None:
        handle = FakeAudioHandle(state="closed")
        manager = _make_manager(handle)
        assert await manager.resume() is False
        assert await manager.resume() is False
        assert handle.resume_calls == 0
        assert manager.resume_attempts == 0

    @pytest.mark.asyncio
    async def test_success(self, handle: FakeAudioHandle, bus: CoordinationBus) -> None:
        resumed = _listen(bus, "resumed")
        manager = _make_manager(handle, bus)
        assert await manager.resume() is True
        assert manager.state is ResourceState.RUNNING
        assert manager.is_ready()
        assert resumed.data == [StateChangePayload(state="running")]

    @pytest.mark.asyncio
    async def test_failure_increments_attempts(self, bus: CoordinationBus) -> None:
        failed = _listen(bus, "resume-failed")
        manager = _make_manager(FakeAudioHandle(resume_failures=1), bus)
        assert await manager.resume() is False
        assert manager.resume_attempts == 1
        assert manager.state is ResourceState.SUSPENDED
        assert failed.data[0].attempts == 1
        assert "user gesture" in failed.data[0].error

    @pytest.mark.asyncio
    async def test_platform_not_running_after_resume_is_failure(self) -> None:
        handle = FakeAudioHandle(resume_leaves_state="suspended")
        manager = _make_manager(handle)
        assert await manager.resume() is False
        assert manager.resume_attempts == 1

    @pytest.mark.asyncio
    async def test_success_resets_attempts(self) -> None:
        manager = _make_manager(FakeAudioHandle(resume_failures=2))
        await manager.resume()
        await manager.resume()
        assert manager.resume_attempts == 2
        assert await manager.resume() is True
        assert manager.resume_attempts == 0
        assert not manager.is_escalated


# ---------------------------------------------------------------------------
# Escalation
# ---------------------------------------------------------------------------


class TestEscalation:
    @pytest.mark.asyncio
    async def test_three_failures_escalate_once(self, bus: CoordinationBus, caplog) -> None:
        escalated = _listen(bus, "escalated")
        handle = FakeAudioHandle(resume_failures=10)
        manager = _make_manager(handle, bus)
        metric_before = resource_escalations_total._value.get()

        with caplog.at_level(logging.CRITICAL, logger="engine.lifecycle"):
            results = [await manager.resume() for _ in range(3)]

        assert results == [False, False, False]
        assert manager.is_escalated
        assert manager.resume_attempts == 3
        assert escalated.data == [EscalationPayload(attempts=3)]
        assert manager.stats.escalations == 1
        assert resource_escalations_total._value.get() - metric_before == 1
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)

    @pytest.mark.asyncio
    async def test_fourth_failure_has_no_further_escalation(self, bus: CoordinationBus) -> None:
        escalated = _listen(bus, "escalated")
        handle = FakeAudioHandle(resume_failures=10)
        manager = _make_manager(handle, bus)
        for _ in range(3):
            await manager.resume()

        assert await manager.resume() is False
        assert handle.resume_calls == 4
        assert manager.resume_attempts == 3
        assert len(escalated.envelopes) == 1
        assert manager.stats.escalations == 1
        assert manager.stats.resume_failures == 4

    @pytest.mark.asyncio
    async def test_manual_resume_after_escalation_can_recover(self) -> None:
        handle = FakeAudioHandle(resume_failures=3)
        manager = _make_manager(handle)
        for _ in range(3):
            await manager.resume()
        assert manager.is_escalated

        assert await manager.resume() is True
        assert not manager.is_escalated
        assert manager.resume_attempts == 0

    @pytest.mark.asyncio
    async def test_new_streak_escalates_again(self, bus: CoordinationBus) -> None:
        escalated = _listen(bus, "escalated")
        handle = FakeAudioHandle(resume_failures=3)
        manager = _make_manager(handle, bus, max_resume_attempts=3)
        for _ in range(4):
            await manager.resume()
        handle.simulate_external_change("suspended")
        handle.resume_failures = 3
        for _ in range(3):
            await manager.resume()
        assert len(escalated.envelopes) == 2

    @pytest.mark.asyncio
    async def test_failure_metric(self) -> None:
        before = resource_resume_failures_total._value.get()
        manager = _make_manager(FakeAudioHandle(resume_failures=2))
        await manager.resume()
        await manager.resume()
        assert resource_resume_failures_total._value.get() - before == 2


# ---------------------------------------------------------------------------
# resume_with_retry()
# ---------------------------------------------------------------------------


class TestResumeWithRetry:
    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self) -> None:
        handle = FakeAudioHandle(resume_failures=2)
        manager = _make_manager(handle)
        assert await manager.resume_with_retry() is True
        assert handle.resume_calls == 3

    @pytest.mark.asyncio
    async def test_stops_at_escalation(self) -> None:
        handle = FakeAudioHandle(resume_failures=10)
        manager = _make_manager(handle)
        assert await manager.resume_with_retry() is False
        assert handle.resume_calls == 3
        assert manager.is_escalated

    @pytest.mark.asyncio
    async def test_escalated_skips_platform_call(self) -> None:
        handle = FakeAudioHandle(resume_failures=10)
        manager = _make_manager(handle)
        await manager.resume_with_retry()
        calls = handle.resume_calls
        assert await manager.resume_with_retry() is False
        assert handle.resume_calls == calls

    @pytest.mark.asyncio
    async def test_closed_stops_immediately(self) -> None:
        handle = FakeAudioHandle(state="closed")
        manager = _make_manager(handle)
        assert await manager.resume_with_retry() is False
        assert handle.resume_calls == 0

    @pytest.mark.asyncio
    async def test_waits_with_backoff(self, monkeypatch) -> None:
        delays: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            delays.append(seconds)

        monkeypatch.setattr("engine.lifecycle.asyncio.sleep", fake_sleep)
        manager = _make_manager(
            FakeAudioHandle(resume_failures=10),
            max_resume_attempts=4,
            retry_base_seconds=0.5,
            retry_max_seconds=1.5,
        )
        await manager.resume_with_retry()
        assert delays == [0.5, 1.0, 1.5]


# ---------------------------------------------------------------------------
# suspend() / close()
# ---------------------------------------------------------------------------


class TestSuspend:
    @pytest.mark.asyncio
    async def test_already_suspended_is_noop(self, handle: FakeAudioHandle) -> None:
        manager = _make_manager(handle)
        assert await manager.suspend() is True
        assert handle.suspend_calls == 0

    @pytest.mark.asyncio
    async def test_suspends_running(self, bus: CoordinationBus) -> None:
        suspended = _listen(bus, "suspended")
        handle = FakeAudioHandle(state="running")
        manager = _make_manager(handle, bus)
        assert await manager.suspend() is True
        assert manager.state is ResourceState.SUSPENDED
        assert len(suspended.envelopes) == 1

    @pytest.mark.asyncio
    async def test_closed_fails(self) -> None:
        manager = _make_manager(FakeAudioHandle(state="closed"))
        assert await manager.suspend() is False

    @pytest.mark.asyncio
    async def test_platform_rejection(self) -> None:
        manager = _make_manager(FakeAudioHandle(state="running", suspend_raises=True))
        assert await manager.suspend() is False
        assert manager.state is ResourceState.RUNNING


class TestClose:
    @pytest.mark.asyncio
    async def test_close_is_terminal(self, handle: FakeAudioHandle, bus: CoordinationBus) -> None:
        closed = _listen(bus, "closed")
        manager = _make_manager(handle, bus)
        assert await manager.close() is True
        assert manager.state is ResourceState.CLOSED
        assert await manager.resume() is False
        assert await manager.suspend() is False
        assert len(closed.envelopes) == 1

    @pytest.mark.asyncio
    async def test_close_idempotent(self, handle: FakeAudioHandle) -> None:
        manager = _make_manager(handle)
        await manager.close()
        assert await manager.close() is True
        assert handle.close_calls == 1

    @pytest.mark.asyncio
    async def test_close_failure(self) -> None:
        manager = _make_manager(FakeAudioHandle(close_raises=True))
        assert await manager.close() is False
        assert manager.state is ResourceState.SUSPENDED


# ---------------------------------------------------------------------------
# External state changes
# ---------------------------------------------------------------------------


class TestExternalStateChange:
    @pytest.mark.asyncio
    async def test_demotion_updates_cache_without_resuming(self, bus: CoordinationBus) -> None:
        changes = _listen(bus, "statechange")
        handle = FakeAudioHandle(state="running")
        manager = _make_manager(handle, bus)

        handle.simulate_external_change("suspended")

        assert manager.state is ResourceState.SUSPENDED
        assert handle.resume_calls == 0
        assert changes.data == [StateChangePayload(state="suspended", previous="running")]

    def test_topic_subscriber_receives_model(self, bus: CoordinationBus) -> None:
        rec = Recorder()
        subscribe_topic(bus, CONTEXT_STATECHANGE, rec)
        handle = FakeAudioHandle(state="running")
        _make_manager(handle, bus)

        handle.simulate_external_change("suspended")

        (payload,) = rec.data
        assert isinstance(payload, StateChangePayload)
        assert (payload.state, payload.previous) == ("suspended", "running")

    def test_detach_stops_observing(self, bus: CoordinationBus) -> None:
        changes = _listen(bus, "statechange")
        handle = FakeAudioHandle(state="running")
        manager = _make_manager(handle, bus)

        manager.detach()
        manager.detach()

        assert handle.listeners == []
        manager._on_external_state_change("suspended")
        assert manager.state is ResourceState.RUNNING
        assert changes.envelopes == []

    def test_same_state_is_ignored(self, bus: CoordinationBus) -> None:
        changes = _listen(bus, "statechange")
        handle = FakeAudioHandle(state="running")
        _make_manager(handle, bus)
        handle.simulate_external_change("running")
        assert changes.envelopes == []

    @pytest.mark.asyncio
    async def test_resume_after_demotion_calls_platform(self) -> None:
        handle = FakeAudioHandle(state="running")
        manager = _make_manager(handle)
        handle.simulate_external_change("suspended")
        assert await manager.resume() is True
        assert handle.resume_calls == 1


# ---------------------------------------------------------------------------
# Read API
# ---------------------------------------------------------------------------


class TestReadApi:
    @pytest.mark.asyncio
    async def test_stats_record_transitions(self, handle: FakeAudioHandle) -> None:
        manager = _make_manager(handle)
        await manager.resume()
        await manager.suspend()
        await manager.close()
        assert [s for s, _ in manager.stats.transitions] == ["running", "suspended", "closed"]

    def test_debug_info(self) -> None:
        handle = FakeAudioHandle(state="running", sample_rate=44100)
        handle.current_time = 12.5
        info = _make_manager(handle).debug_info()
        assert info == {
            "state": "running",
            "sample_rate": 44100,
            "current_time": 12.5,
            "base_latency": 0.005,
            "output_latency": 0.02,
            "resume_attempts": 0,
        }

    def test_handle_property(self, handle: FakeAudioHandle) -> None:
        assert _make_manager(handle).handle is handle

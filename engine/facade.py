"""Engine facade: composition root for the audio resource, its lifecycle and the bus.

Engine state machine::

    uninitialized ──init──→ initialized ──start──→ running ⇄ stopped
          │                                           (stop / start, resume)
          └──(capability absent, factory failure)──→ error

No public method raises. Failures are reported through the ErrorReporter
(``error:occurred`` on the bus) and surface as ``False``.

The facade is an ordinary object: construct it at the composition root and
pass it by reference. ``get_instance()`` keeps a process-wide slot for code
that expects one engine per process; ``destroy()`` releases it so a later
``get_instance()`` builds fresh state.

Usage::

    engine = EngineFacade(probe=browser_probe, config=bootstrap())
    await engine.init()          # creates the resource, one resume attempt
    ...
    await engine.resume()        # from a click handler
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import asdict
from typing import Any, ClassVar

from core.audio_math import categorize_accuracy
from core.config import AudioResourceConfig, EngineConfig
from core.errors import CapabilityError, ResourceCreationError
from core.types import Accuracy, EngineState, ResourceState
from engine.bus import CoordinationBus
from engine.errors import ErrorReporter
from engine.lifecycle import ResourceLifecycleManager
from engine.protocols import AudioResourceHandle, CapabilityProbe
from engine.topics import ENGINE_STATE, publish_topic
from infrastructure.metrics import LatencyTimer, record_engine_init

logger = logging.getLogger(__name__)

ConfigTuner = Callable[[AudioResourceConfig], AudioResourceConfig]


class EngineFacade:
    """Owns the audio resource handle, its lifecycle manager and the bus.

    Args:
        probe: Capability probe and resource factory. Required.
        config: Engine configuration.
        bus: Coordination bus to publish on. A private one is created if omitted.
        reporter: Error reporter. Defaults to one publishing on ``bus``.
        config_tuner: Optional environment heuristic adjusting the resource
            config (e.g. a balanced latency hint on mobile). Its failure is
            non-fatal: the base config is used.

    Raises:
        ValueError: If ``probe`` is None.
    """

    _instance: ClassVar[EngineFacade | None] = None

    def __init__(
        self,
        probe: CapabilityProbe,
        config: EngineConfig | None = None,
        bus: CoordinationBus | None = None,
        reporter: ErrorReporter | None = None,
        config_tuner: ConfigTuner | None = None,
    ) -> None:
        if probe is None:
            raise ValueError("EngineFacade requires a capability probe")

        self._probe = probe
        self._config = config or EngineConfig()
        self._owns_bus = bus is None
        self._bus = bus if bus is not None else CoordinationBus()
        self._reporter = reporter or ErrorReporter(
            bus=self._bus, dedupe_seconds=self._config.error_dedupe_seconds
        )
        self._config_tuner = config_tuner

        self._state = EngineState.UNINITIALIZED
        self._handle: AudioResourceHandle | None = None
        self._manager: ResourceLifecycleManager | None = None
        self._resource_config: AudioResourceConfig | None = None
        self._lifecycle_lock = asyncio.Lock()

        logger.info("EngineFacade created (owns_bus=%s)", self._owns_bus)

    # ------------------------------------------------------------------
    # Process-wide slot
    # ------------------------------------------------------------------

    @classmethod
    def get_instance(
        cls, probe: CapabilityProbe | None = None, config: EngineConfig | None = None
    ) -> EngineFacade:
        """Return the process-wide engine, creating it on first call.

        Raises:
            ValueError: On first call without a probe.
        """
        if cls._instance is None:
            if probe is None:
                raise ValueError("first EngineFacade.get_instance() call requires a probe")
            cls._instance = cls(probe, config)
        return cls._instance

    @classmethod
    def has_instance(cls) -> bool:
        return cls._instance is not None

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def bus(self) -> CoordinationBus:
        return self._bus

    @property
    def reporter(self) -> ErrorReporter:
        return self._reporter

    @property
    def manager(self) -> ResourceLifecycleManager | None:
        return self._manager

    @property
    def handle(self) -> AudioResourceHandle | None:
        return self._handle

    @property
    def config(self) -> EngineConfig:
        return self._config

    @property
    def resource_config(self) -> AudioResourceConfig | None:
        """Config actually handed to the factory (after tuning)."""
        return self._resource_config

    @property
    def sample_rate(self) -> float:
        return self._handle.sample_rate if self._handle is not None else 0

    @property
    def current_time(self) -> float:
        return self._handle.current_time if self._handle is not None else 0.0

    def categorize_accuracy(self, cents: float) -> Accuracy:
        """Intonation tier of ``cents`` under the configured thresholds."""
        return categorize_accuracy(cents, self._config.thresholds)

    def is_ready(self) -> bool:
        return self._state.is_ready

    def is_running(self) -> bool:
        return self._state is EngineState.RUNNING

    def debug_info(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "resource": self._manager.debug_info() if self._manager is not None else None,
            "resource_config": (
                self._resource_config.as_dict() if self._resource_config is not None else None
            ),
            "bus": asdict(self._bus.stats()),
            "errors": self._reporter.error_count,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> bool:
        """Create the audio resource and wrap it in a lifecycle manager.

        Only acts from ``uninitialized``; otherwise returns the outcome of
        the earlier init (False after an error). Overlapping calls wait for
        the one in flight, so at most one resource is ever created.

        Returns:
            True once ``initialized``, even when the resource is still
            suspended waiting for a user gesture.
        """
        async with self._lifecycle_lock:
            if self._state is not EngineState.UNINITIALIZED:
                logger.debug("init: already done (state=%s)", self._state.value)
                return self._state is not EngineState.ERROR

            with LatencyTimer() as timer:
                ok = await self._initialize()
            record_engine_init(outcome="success" if ok else "error", latency_seconds=timer.elapsed)
            logger.info("init %s in %.1fms", "succeeded" if ok else "failed", timer.elapsed * 1000)
            return ok

    async def start(self) -> bool:
        """``init()`` if needed, then resume the resource if it is not running."""
        if self._state is EngineState.UNINITIALIZED and not await self.init():
            return False
        if self._state is EngineState.ERROR or self._manager is None:
            logger.warning("start refused (state=%s)", self._state.value)
            return False
        if self._state is EngineState.RUNNING:
            return True

        if not self._manager.is_ready() and not await self._manager.resume():
            logger.warning("start: resource did not resume (state=%s)", self._manager.state.value)
            return False

        self._set_state(EngineState.RUNNING)
        return True

    async def stop(self) -> bool:
        """Suspend the resource. Idempotent; an engine never initialized counts as stopped."""
        if self._state in (EngineState.STOPPED, EngineState.UNINITIALIZED):
            return True
        if self._manager is None:
            logger.debug("stop: nothing to stop (state=%s)", self._state.value)
            return False

        if not await self._manager.suspend():
            return False
        self._set_state(EngineState.STOPPED)
        return True

    async def resume(self) -> bool:
        """User-gesture entry point: resume the resource.

        An initialized or stopped engine moves to ``running`` on success.
        """
        if self._manager is None:
            logger.warning("resume: no audio resource (state=%s)", self._state.value)
            return False

        ok = await self._manager.resume()
        if ok and self._state in (EngineState.INITIALIZED, EngineState.STOPPED):
            self._set_state(EngineState.RUNNING)
        return ok

    async def destroy(self) -> bool:
        """Close the resource, drop owned references and release the process slot.

        Waits for an init in flight. The dropped manager stops listening to
        the handle, so late platform notifications publish nothing.

        Returns:
            False if the resource failed to close; teardown still completes.
        """
        async with self._lifecycle_lock:
            closed = True
            if self._manager is not None:
                closed = await self._manager.close()
                if not closed:
                    logger.warning("destroy: resource did not close cleanly")
                self._manager.detach()

            if self._state is not EngineState.UNINITIALIZED:
                self._set_state(EngineState.UNINITIALIZED)

            if self._owns_bus:
                self._bus.destroy()
            else:
                self._bus.set_clock(None)

            self._manager = None
            self._handle = None
            self._resource_config = None

            if EngineFacade._instance is self:
                EngineFacade._instance = None
            logger.info("EngineFacade destroyed")
            return closed

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _initialize(self) -> bool:
        try:
            capable = self._probe.can_create_audio_resource()
        except Exception as exc:
            return self._fail(exc, "engine.init.probe")
        if not capable:
            return self._fail(
                CapabilityError("cannot create an audio resource: Web Audio unsupported"),
                "engine.init.probe",
            )

        resource_config = self._tuned_resource_config()
        try:
            handle = self._probe.create_audio_resource(resource_config.as_dict())
        except Exception as exc:
            return self._fail(exc, "engine.init.create")
        if handle is None:
            return self._fail(
                ResourceCreationError("audio resource factory returned nothing"),
                "engine.init.create",
            )

        self._handle = handle
        self._resource_config = resource_config
        self._manager = ResourceLifecycleManager(
            handle, self._config.lifecycle, events=self._bus.namespace("context")
        )
        self._bus.set_clock(lambda: handle.current_time)

        if self._manager.state is ResourceState.SUSPENDED and not await self._manager.resume():
            logger.info("resource stays suspended until a user gesture")

        self._set_state(EngineState.INITIALIZED)
        return True

    def _tuned_resource_config(self) -> AudioResourceConfig:
        base = self._config.resource
        if self._config_tuner is None:
            return base
        try:
            tuned = self._config_tuner(base)
        except Exception:
            logger.warning("config tuner failed; using base resource config", exc_info=True)
            return base
        if not isinstance(tuned, AudioResourceConfig):
            logger.warning("config tuner returned %r; using base resource config", tuned)
            return base
        logger.info("resource config tuned: %s", tuned.as_dict())
        return tuned

    def _fail(self, exc: Exception, context: str) -> bool:
        self._reporter.handle(exc, context=context, show_user=True)
        self._set_state(EngineState.ERROR)
        return False

    def _set_state(self, new_state: EngineState) -> None:
        previous = self._state
        if new_state is previous:
            return
        self._state = new_state
        logger.info("engine state %s → %s", previous.value, new_state.value)
        publish_topic(
            self._bus, ENGINE_STATE, {"state": new_state.value, "previous": previous.value}
        )

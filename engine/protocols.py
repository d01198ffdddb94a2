"""
Protocols for the external collaborators of the engine layer.

Defines the contracts the platform must satisfy. Concrete implementations
(the browser bridge, test fakes) live outside this package.

    CapabilityProbe      can the platform create an audio resource, and the factory
    AudioResourceHandle  the single platform audio processing context
    NotificationSurface  renders classified errors to the user
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from core.errors import ErrorAnalysis

StateListener = Callable[[str], None]
"""Called by the platform with the new raw state string."""


@runtime_checkable
class AudioResourceHandle(Protocol):
    """
    Platform audio context.

    ``state`` is one of "suspended", "running", "closed" (platforms may also
    report "uninitialized" before first activation). The platform can change
    it without being asked, e.g. demote running → suspended when the tab is
    hidden; such changes are announced to listeners registered through
    ``add_state_listener``. Listener methods are optional: a handle without
    them is still accepted, its external changes just go unobserved.
    """

    @property
    def state(self) -> str: ...

    @property
    def sample_rate(self) -> float: ...

    @property
    def current_time(self) -> float:
        """Monotonic clock of the resource in seconds."""
        ...

    async def resume(self) -> None:
        """Activate the resource. Rejected unless triggered by a user gesture."""
        ...

    async def suspend(self) -> None: ...

    async def close(self) -> None:
        """Release the resource. Irreversible."""
        ...

    def add_state_listener(self, listener: StateListener) -> None: ...

    def remove_state_listener(self, listener: StateListener) -> None: ...


@runtime_checkable
class CapabilityProbe(Protocol):
    """Environment probe and capability-gated resource factory."""

    def can_create_audio_resource(self) -> bool: ...

    def create_audio_resource(self, config: dict[str, Any]) -> AudioResourceHandle | None:
        """
        Create the audio resource.

        Args:
            config: ``{"sampleRate": int, "latencyHint": str}``.

        Returns:
            A handle, or None when the platform refused.
        """
        ...


@runtime_checkable
class NotificationSurface(Protocol):
    """User-facing error rendering (banner, toast, ...)."""

    def notify(self, analysis: ErrorAnalysis) -> None: ...

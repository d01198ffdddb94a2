"""
Configuration dataclasses for the audio engine and the intonation metrics.

These immutable config objects decouple parameter passing from function signatures,
making it easier to define standard configurations and reuse them across the
engine facade, the lifecycle manager and the math engine.

Environment overrides are applied outside core/ (see engine/settings.py) so this
module stays pure.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# Latency hints recognized by the audio resource factory.
VALID_LATENCY_HINTS: frozenset[str] = frozenset({"interactive", "balanced", "playback"})

MIN_SAMPLE_RATE: int = 8000
MAX_SAMPLE_RATE: int = 192000

VALID_LOG_LEVELS: frozenset[str] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class AudioResourceConfig:
    """
    Settings handed to the capability-gated audio resource factory.

    Attributes:
        sample_rate: Requested sample rate in Hz. Defaults to 48000, the
            standard rate for voice capture. The platform may ignore it.
        latency_hint: One of "interactive", "balanced", "playback".
            Defaults to "interactive" for real-time pitch feedback.

    Example:
        >>> config = AudioResourceConfig(latency_hint="balanced")
        >>> config.as_dict()
        {'sampleRate': 48000, 'latencyHint': 'balanced'}
    """

    sample_rate: int = 48000
    latency_hint: str = "interactive"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not MIN_SAMPLE_RATE <= self.sample_rate <= MAX_SAMPLE_RATE:
            raise ValueError(
                f"sample_rate must be in [{MIN_SAMPLE_RATE}, {MAX_SAMPLE_RATE}], "
                f"got {self.sample_rate}"
            )
        if self.latency_hint not in VALID_LATENCY_HINTS:
            raise ValueError(
                f"Unknown latency_hint {self.latency_hint!r}, "
                f"valid options: {sorted(VALID_LATENCY_HINTS)}"
            )

    def as_dict(self) -> dict[str, object]:
        """Wire form expected by the resource factory."""
        return {"sampleRate": self.sample_rate, "latencyHint": self.latency_hint}


@dataclass(frozen=True)
class LifecycleConfig:
    """
    Resume retry policy for the resource lifecycle manager.

    Attributes:
        max_resume_attempts: Consecutive failed resumes before escalation.
            Automatic retry stops at this cap; manual resume stays allowed.
        retry_base_seconds: First backoff delay of the automatic retry path.
        retry_max_seconds: Backoff delay cap.
        retry_jitter: Add ±25% jitter to backoff delays.
    """

    max_resume_attempts: int = 3
    retry_base_seconds: float = 0.25
    retry_max_seconds: float = 2.0
    retry_jitter: bool = False

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.max_resume_attempts < 1:
            raise ValueError(
                f"max_resume_attempts must be at least 1, got {self.max_resume_attempts}"
            )
        if self.retry_base_seconds < 0:
            raise ValueError(
                f"retry_base_seconds must be non-negative, got {self.retry_base_seconds}"
            )
        if self.retry_max_seconds < self.retry_base_seconds:
            raise ValueError(
                f"retry_max_seconds ({self.retry_max_seconds}) must be >= "
                f"retry_base_seconds ({self.retry_base_seconds})"
            )


@dataclass(frozen=True)
class AccuracyThresholds:
    """
    Absolute cent deviations bounding each intonation tier.

    Comparison uses ``<=`` so a value on a boundary lands in the tighter tier.
    ``poor`` is informational: anything above ``fair`` is poor.

    Attributes:
        excellent: ±10 cents, elite classical intonation.
        good: ±20 cents, professional.
        fair: ±35 cents, solid amateur.
        poor: ±50 cents and beyond, beginner.
    """

    excellent: float = 10.0
    good: float = 20.0
    fair: float = 35.0
    poor: float = 50.0

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.excellent <= 0:
            raise ValueError(f"excellent must be positive, got {self.excellent}")
        if not self.excellent < self.good < self.fair < self.poor:
            raise ValueError(
                "thresholds must be strictly ascending: "
                f"excellent={self.excellent}, good={self.good}, "
                f"fair={self.fair}, poor={self.poor}"
            )


@dataclass(frozen=True)
class EngineConfig:
    """
    Top-level configuration for the engine facade.

    Attributes:
        resource: Base settings for the audio resource (before tuning).
        lifecycle: Resume retry policy.
        thresholds: Intonation tiers applied by ``EngineFacade.categorize_accuracy``.
        error_dedupe_seconds: Identical error messages inside this window
            are reported once.
        log_level: Package log level, applied at startup by ``engine.settings.bootstrap``.
    """

    resource: AudioResourceConfig = field(default_factory=AudioResourceConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    thresholds: AccuracyThresholds = field(default_factory=AccuracyThresholds)
    error_dedupe_seconds: float = 1.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if self.error_dedupe_seconds < 0:
            raise ValueError(
                f"error_dedupe_seconds must be non-negative, got {self.error_dedupe_seconds}"
            )
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Unknown log_level {self.log_level!r}, valid options: {sorted(VALID_LOG_LEVELS)}"
            )


# Pre-defined configurations

DEFAULT_THRESHOLDS = AccuracyThresholds()
"""Default intonation tiers: 10 / 20 / 35 / 50 cents."""

DEFAULT_RESOURCE_CONFIG = AudioResourceConfig()
"""48 kHz, interactive latency."""

MOBILE_RESOURCE_CONFIG = AudioResourceConfig(latency_hint="balanced")
"""Balanced latency, more stable on mobile Safari."""

DEFAULT_ENGINE_CONFIG = EngineConfig()
"""Defaults for every section."""

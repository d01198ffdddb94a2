"""Environment-driven engine configuration.

Reads ``.env`` (python-dotenv) then the process environment:

    VOCAL_COACH_SAMPLE_RATE            int, 8000..192000          (48000)
    VOCAL_COACH_LATENCY_HINT           interactive|balanced|playback (interactive)
    VOCAL_COACH_MAX_RESUME_ATTEMPTS    int >= 1                   (3)
    VOCAL_COACH_LOG_LEVEL              DEBUG..CRITICAL            (INFO)
    VOCAL_COACH_ERROR_DEDUPE_SECONDS   float >= 0                 (1.0)

A malformed value never aborts startup: it is logged and the default is used.
``bootstrap()`` loads the config and applies ``VOCAL_COACH_LOG_LEVEL`` to the
package loggers.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable, Mapping
from typing import TypeVar

from dotenv import load_dotenv

from core.config import (
    MAX_SAMPLE_RATE,
    MIN_SAMPLE_RATE,
    VALID_LATENCY_HINTS,
    VALID_LOG_LEVELS,
    AudioResourceConfig,
    EngineConfig,
    LifecycleConfig,
)
from infrastructure.diagnostics import configure_logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENV_PREFIX = "VOCAL_COACH_"


def _read(
    env: Mapping[str, str],
    key: str,
    parse: Callable[[str], T],
    default: T,
    valid: Callable[[T], bool] = lambda _: True,
) -> T:
    raw = env.get(ENV_PREFIX + key)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = parse(raw.strip())
    except ValueError:
        logger.warning("%s%s=%r is malformed, using default %r", ENV_PREFIX, key, raw, default)
        return default
    if not valid(value):
        logger.warning("%s%s=%r is out of range, using default %r", ENV_PREFIX, key, raw, default)
        return default
    return value


def load_engine_config(
    env: Mapping[str, str] | None = None, dotenv_path: str | os.PathLike[str] | None = None
) -> EngineConfig:
    """Build an EngineConfig from the environment.

    Args:
        env: Mapping to read instead of ``os.environ``. When given, ``.env``
            is not loaded.
        dotenv_path: Explicit ``.env`` file. Searched for when omitted.

    Returns:
        A validated EngineConfig.
    """
    if env is None:
        load_dotenv(dotenv_path)
        env = os.environ

    base_resource = AudioResourceConfig()
    base_lifecycle = LifecycleConfig()
    base = EngineConfig()

    sample_rate = _read(
        env,
        "SAMPLE_RATE",
        int,
        base_resource.sample_rate,
        lambda v: MIN_SAMPLE_RATE <= v <= MAX_SAMPLE_RATE,
    )
    latency_hint = _read(
        env,
        "LATENCY_HINT",
        str.lower,
        base_resource.latency_hint,
        lambda v: v in VALID_LATENCY_HINTS,
    )
    max_attempts = _read(
        env, "MAX_RESUME_ATTEMPTS", int, base_lifecycle.max_resume_attempts, lambda v: v >= 1
    )
    log_level = _read(env, "LOG_LEVEL", str.upper, base.log_level, lambda v: v in VALID_LOG_LEVELS)
    dedupe = _read(
        env,
        "ERROR_DEDUPE_SECONDS",
        float,
        base.error_dedupe_seconds,
        lambda v: 0 <= v < float("inf"),
    )

    config = EngineConfig(
        resource=AudioResourceConfig(sample_rate=sample_rate, latency_hint=latency_hint),
        lifecycle=LifecycleConfig(max_resume_attempts=max_attempts),
        error_dedupe_seconds=dedupe,
        log_level=log_level,
    )
    logger.debug(
        "engine config loaded: %s, max_resume_attempts=%d, log_level=%s",
        config.resource.as_dict(),
        max_attempts,
        log_level,
    )
    return config


def bootstrap(
    env: Mapping[str, str] | None = None, dotenv_path: str | os.PathLike[str] | None = None
) -> EngineConfig:
    """Load the engine config and apply its log level.

    Call once at startup, before constructing the EngineFacade.

    Returns:
        The loaded EngineConfig.
    """
    config = load_engine_config(env, dotenv_path)
    configure_logging(config.log_level)
    logger.info("logging configured at %s", config.log_level)
    return config

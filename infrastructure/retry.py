"""Exponential backoff delays for the automatic resume retry path.

The lifecycle manager retries a failed resume a bounded number of times.
Each wait grows exponentially from ``base_seconds`` and is capped at
``max_seconds``. The manager awaits the delay itself (``asyncio.sleep``) so
the event loop is never blocked.

Usage::

    from infrastructure.retry import backoff_seconds

    for attempt in range(1, max_attempts + 1):
        ...
        await asyncio.sleep(backoff_seconds(attempt, base_seconds=0.25, max_seconds=2.0))
"""

from __future__ import annotations

import random


def backoff_seconds(
    attempt: int,
    *,
    base_seconds: float = 0.25,
    max_seconds: float = 2.0,
    jitter: bool = False,
) -> float:
    """Delay before retry number ``attempt`` (1-based).

    Args:
        attempt: Failed attempts so far (1 = first retry).
        base_seconds: Delay after the first failure.
        max_seconds: Upper bound on any delay.
        jitter: Add random jitter ±25% to desynchronize retries.

    Returns:
        Seconds to wait, never negative.

    Example::

        >>> [backoff_seconds(n, base_seconds=0.5, max_seconds=2.0) for n in (1, 2, 3, 4)]
        [0.5, 1.0, 2.0, 2.0]
    """
    exponent = max(0, attempt - 1)
    wait = min(base_seconds * (2**exponent), max_seconds)
    if jitter:
        wait *= 1 + random.uniform(-0.25, 0.25)  # noqa: S311
    return max(0.0, wait)

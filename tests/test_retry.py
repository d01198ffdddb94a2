"""Tests for infrastructure/retry.py."""

from __future__ import annotations

import pytest

from infrastructure.retry import backoff_seconds


class TestBackoffSeconds:
    def test_doubles_then_caps(self) -> None:
        delays = [backoff_seconds(n, base_seconds=0.5, max_seconds=2.0) for n in (1, 2, 3, 4)]
        assert delays == [0.5, 1.0, 2.0, 2.0]

    def test_attempt_zero_uses_base(self) -> None:
        assert backoff_seconds(0, base_seconds=0.25) == 0.25

    def test_zero_base(self) -> None:
        assert backoff_seconds(3, base_seconds=0.0, max_seconds=0.0) == 0.0

    @pytest.mark.parametrize("attempt", [1, 2, 3])
    def test_jitter_stays_within_25_percent(self, attempt: int) -> None:
        plain = backoff_seconds(attempt)
        for _ in range(50):
            jittered = backoff_seconds(attempt, jitter=True)
            assert 0.75 * plain <= jittered <= 1.25 * plain

"""Tests for infrastructure/diagnostics.py."""

from __future__ import annotations

import logging

import pytest

from infrastructure.diagnostics import (
    PACKAGE_LOGGERS,
    DiagnosticsBuffer,
    configure_logging,
)


@pytest.fixture()
def buffer():
    buf = DiagnosticsBuffer(capacity=3)
    buf.install()
    previous = {name: logging.getLogger(name).level for name in PACKAGE_LOGGERS}
    for name in PACKAGE_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)
    yield buf
    buf.uninstall()
    for name, level in previous.items():
        logging.getLogger(name).setLevel(level)


class TestDiagnosticsBuffer:
    def test_captures_component_and_data(self, buffer: DiagnosticsBuffer) -> None:
        logging.getLogger("engine.lifecycle").info(
            "resume failed (attempt %d/%d)", 1, 3, extra={"data": {"attempts": 1}}
        )
        (record,) = buffer.records()
        assert record.component == "engine.lifecycle"
        assert record.level == "INFO"
        assert record.message == "resume failed (attempt 1/3)"
        assert record.data == {"attempts": 1}

    def test_bounded(self, buffer: DiagnosticsBuffer) -> None:
        log = logging.getLogger("core.audio_math")
        for i in range(5):
            log.warning("w%d", i)
        assert [r.message for r in buffer.records()] == ["w2", "w3", "w4"]

    def test_filter_by_level(self, buffer: DiagnosticsBuffer) -> None:
        log = logging.getLogger("engine.bus")
        log.debug("d")
        log.critical("c")
        assert [r.message for r in buffer.records(level="critical")] == ["c"]

    def test_ignores_foreign_loggers(self, buffer: DiagnosticsBuffer) -> None:
        logging.getLogger("somewhere.else").error("not ours")
        assert buffer.records() == []

    def test_clear(self, buffer: DiagnosticsBuffer) -> None:
        logging.getLogger("engine").info("x")
        buffer.clear()
        assert buffer.records() == []

    def test_rejects_zero_capacity(self) -> None:
        with pytest.raises(ValueError):
            DiagnosticsBuffer(capacity=0)


class TestConfigureLogging:
    def test_idempotent_handler(self) -> None:
        log = logging.getLogger("engine")
        previous_level = log.level
        try:
            configure_logging("DEBUG")
            configure_logging("WARNING")
            marked = [h for h in log.handlers if getattr(h, "_vocal_coach_console", False)]
            assert len(marked) == 1
            assert log.level == logging.WARNING
        finally:
            for h in [h for h in log.handlers if getattr(h, "_vocal_coach_console", False)]:
                log.removeHandler(h)
            log.setLevel(previous_level)

    def test_unknown_level(self) -> None:
        with pytest.raises(ValueError, match="Unknown log level"):
            configure_logging("LOUD")

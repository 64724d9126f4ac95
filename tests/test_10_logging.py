"""Tests for the logging level system, formatters and JSONL persistence."""
from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from uuid import uuid4


class TestLogLevel:
    """Numeric levels and coercion."""

    def test_level_values(self):
        from snipr.core.logging import LogLevel

        assert LogLevel.MINIMAL == 1
        assert LogLevel.NORMAL == 2
        assert LogLevel.VERBOSE == 3
        assert LogLevel.DEBUG == 4
        assert LogLevel.MINIMAL < LogLevel.DEBUG

    def test_coerce_int_and_names(self):
        from snipr.core.logging import LogLevel, coerce_level

        assert coerce_level(3) == LogLevel.VERBOSE
        assert coerce_level("minimal") == LogLevel.MINIMAL
        assert coerce_level("4") == LogLevel.DEBUG
        assert coerce_level("INFO") == LogLevel.NORMAL
        assert coerce_level("ERROR") == LogLevel.MINIMAL

    def test_coerce_stdlib_ints(self):
        from snipr.core.logging import LogLevel, coerce_level

        assert coerce_level(logging.WARNING) == LogLevel.MINIMAL
        assert coerce_level(logging.INFO) == LogLevel.NORMAL
        assert coerce_level(logging.DEBUG) == LogLevel.DEBUG

    def test_unknown_defaults_to_normal(self):
        from snipr.core.logging import LogLevel, coerce_level

        assert coerce_level("loud") == LogLevel.NORMAL
        assert coerce_level(None) == LogLevel.NORMAL

    def test_level_map(self):
        from snipr.core.logging import LEVEL_MAP, LogLevel

        assert LEVEL_MAP[LogLevel.MINIMAL] == logging.WARNING
        assert LEVEL_MAP[LogLevel.NORMAL] == logging.INFO
        assert LEVEL_MAP[LogLevel.VERBOSE] == logging.DEBUG


class TestTraceId:

    def test_default_is_dash(self):
        import contextvars

        from snipr.core.logging import get_trace_id

        assert contextvars.Context().run(get_trace_id) == "-"

    def test_set_and_get(self):
        import contextvars

        from snipr.core.logging import get_trace_id, set_trace_id

        def _inner():
            set_trace_id("job-1234")
            return get_trace_id()

        assert contextvars.Context().run(_inner) == "job-1234"


class TestFormatters:

    def _record(self, **extra):
        record = logging.LogRecord("snipr.test", logging.INFO, __file__, 1, "job_completed", None, None)
        for k, v in extra.items():
            setattr(record, k, v)
        return record

    def test_jsonl_fields(self):
        from snipr.core.logging import JsonlFormatter

        line = JsonlFormatter().format(self._record(
            tag="SUCCESS",
            trace_id="3f9a1c2e",
            numeric_level=2,
            seconds=1.5,
            extra_data={"chunks": 3},
        ))
        payload = json.loads(line)

        assert payload["message"] == "job_completed"
        assert payload["tag"] == "SUCCESS"
        assert payload["trace_id"] == "3f9a1c2e"
        assert payload["level"] == 2
        assert payload["seconds"] == 1.5
        assert payload["extra"] == {"chunks": 3}

    def test_jsonl_omits_empty_optionals(self):
        from snipr.core.logging import JsonlFormatter

        payload = json.loads(JsonlFormatter().format(self._record()))
        assert "extra" not in payload
        assert "seconds" not in payload
        assert payload["trace_id"] == "-"

    def test_console_without_colors(self, monkeypatch):
        from snipr.core.logging import ColoredConsoleFormatter, formatters

        monkeypatch.setattr(formatters, "USE_COLORS", False)
        line = ColoredConsoleFormatter().format(self._record(
            tag="INFO",
            trace_id="abc",
            extra_data={"status": "completed"},
        ))

        assert "\033[" not in line
        assert "(abc)" in line
        assert "job_completed status=completed" in line

    def test_console_with_colors(self, monkeypatch):
        from snipr.core.logging import ColoredConsoleFormatter, Colors, formatters

        monkeypatch.setattr(formatters, "USE_COLORS", True)
        line = ColoredConsoleFormatter().format(self._record(tag="FAIL", trace_id="-"))
        assert Colors.BRIGHT_RED in line
        assert Colors.RESET in line

    def test_no_color_env(self, monkeypatch):
        from snipr.core.logging import supports_color

        monkeypatch.setenv("SNIPR_NO_COLOR", "1")
        assert supports_color() is False


def test_logging_jsonl_persistence(monkeypatch):
    from snipr.core.logging import configure_logging, get_logger, info, set_trace_id

    base_dir = Path("logs_test") / str(uuid4())
    base_dir.mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("SNIPR_LOG_DIR", str(base_dir))
    monkeypatch.setenv("SNIPR_JSONL_FILE", "test.jsonl")

    try:
        configure_logging(force=True)
        log = get_logger("test")
        set_trace_id("rid-1")
        info(log, "hello", event="logging_test", foo="bar")

        for handler in logging.getLogger().handlers:
            if hasattr(handler, "flush"):
                handler.flush()

        log_path = base_dir / "test.jsonl"
        assert log_path.exists()

        payload = json.loads(log_path.read_text(encoding="utf-8").strip().splitlines()[-1])
        assert payload["message"] == "hello"
        assert payload["trace_id"] == "rid-1"
        assert payload["event"] == "logging_test"
        assert payload["extra"]["foo"] == "bar"
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        monkeypatch.delenv("SNIPR_LOG_DIR")
        configure_logging(force=True)
        shutil.rmtree(Path("logs_test"), ignore_errors=True)


def test_level_filtering(monkeypatch):
    from snipr.core.logging import configure_logging, get_level, verbose, get_logger

    records = []

    class Capture(logging.Handler):
        def emit(self, record):
            records.append(record)

    monkeypatch.setenv("SNIPR_LOG_LEVEL", "1")
    try:
        configure_logging(force=True)
        assert get_level() == 1

        root = logging.getLogger()
        handler = Capture(level=0)
        root.addHandler(handler)
        verbose(get_logger("test"), "too_chatty")
        root.removeHandler(handler)

        assert records == []
    finally:
        monkeypatch.delenv("SNIPR_LOG_LEVEL")
        configure_logging(force=True)

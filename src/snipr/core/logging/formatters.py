"""
Log Formatters for JSON and Console Output.

    JsonlFormatter: one JSON object per line for file output.
    ColoredConsoleFormatter: human-readable line for the terminal.

Output Examples:
    JSONL (file):
        {"ts":"2026-01-15T14:30:05+00:00","level":2,"tag":"INFO","message":"job_completed","trace_id":"3f9a1c2e","extra":{"chunks":3}}

    Console:
        14:30:05 [ INFO  ] (3f9a1c2e) job_completed chunks=3 1.204s

Colors are disabled when stdout is not a TTY, or when NO_COLOR or
SNIPR_NO_COLOR=1 is set. Tests may flip USE_COLORS directly.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime
from typing import Any, Dict


class Colors:
    """ANSI escape codes. Always follow colored text with RESET."""
    RESET = "\033[0m"
    DIM = "\033[2m"

    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"
    WHITE = "\033[37m"
    GRAY = "\033[90m"

    BRIGHT_RED = "\033[91m"
    BRIGHT_GREEN = "\033[92m"
    BRIGHT_YELLOW = "\033[93m"
    BRIGHT_CYAN = "\033[96m"


_TAG_COLORS = {
    "SUCCESS": Colors.BRIGHT_GREEN,
    "FAIL": Colors.BRIGHT_RED,
    "ERROR": Colors.BRIGHT_RED,
    "WARN": Colors.BRIGHT_YELLOW,
    "WARNING": Colors.BRIGHT_YELLOW,
    "INFO": Colors.BRIGHT_CYAN,
    "DEBUG": Colors.GRAY,
}

# Status values get the color of their outcome
_STATUS_COLORS = {
    "completed": Colors.GREEN,
    "failed": Colors.RED,
    "processing": Colors.YELLOW,
    "pending": Colors.DIM,
}


def supports_color() -> bool:
    """Return True when ANSI colors should be written to stdout."""
    if os.getenv("SNIPR_NO_COLOR", "0") == "1":
        return False
    if os.getenv("NO_COLOR"):
        return False
    if not hasattr(sys.stdout, "isatty") or not sys.stdout.isatty():
        return False
    return True


USE_COLORS = supports_color()


def colorize(text: str, color: str) -> str:
    """Wrap text in a color code when colors are enabled."""
    if not USE_COLORS:
        return text
    return f"{color}{text}{Colors.RESET}"


def get_tag_color(tag: str) -> str:
    return _TAG_COLORS.get(tag.upper(), Colors.WHITE)


def _seconds_color(seconds: float) -> str:
    if seconds < 0.1:
        return Colors.GREEN
    return Colors.YELLOW if seconds < 1.0 else Colors.RED


class JsonlFormatter(logging.Formatter):
    """
    Format log records as JSON Lines.

    Output Format:
        {
            "ts": "...",             # ISO timestamp, local timezone
            "level": 2,              # Numeric level (1-4)
            "tag": "INFO",
            "message": "job_completed",
            "trace_id": "3f9a1c2e",
            "event": "synthesis",    # Optional
            "seconds": 0.5,          # Optional
            "extra": {...}           # Optional structured fields
        }
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).astimezone().isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": getattr(record, "numeric_level", 2),
            "tag": getattr(record, "tag", record.levelname),
            "message": record.getMessage(),
            "trace_id": getattr(record, "trace_id", "-"),
        }

        event = getattr(record, "event", None)
        if event:
            payload["event"] = event

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            payload["seconds"] = seconds

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            payload["extra"] = extra_data

        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColoredConsoleFormatter(logging.Formatter):
    """
    Format log records for the console.

    Output Format:
        HH:MM:SS [ TAG   ] (trace) message key=value 0.123s

    Timing is green under 0.1s, yellow under 1s, red otherwise.
    A `status` field takes the color of the job state it names.
    """

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tag = getattr(record, "tag", record.levelname)
        tid = getattr(record, "trace_id", "-")

        parts = [
            colorize(ts, Colors.DIM),
            colorize(f"[{tag:^7}]", get_tag_color(tag)),
        ]
        if tid != "-":
            parts.append(colorize(f"({tid})", Colors.DIM + Colors.CYAN))
        parts.append(record.getMessage())

        event = getattr(record, "event", None)
        if event:
            parts.append(colorize(f"event={event}", Colors.BLUE))

        seconds = getattr(record, "seconds", None)
        if seconds is not None:
            parts.append(colorize(f"{seconds:.3f}s", _seconds_color(seconds)))

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            for k, v in extra_data.items():
                parts.append(colorize(f"{k}={v}", self._field_color(k, v)))

        line = " ".join(parts)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line

    @staticmethod
    def _field_color(key: str, value: Any) -> str:
        if key == "status" and isinstance(value, str):
            return _STATUS_COLORS.get(value, Colors.DIM)
        if key == "attempt" and isinstance(value, int) and value > 1:
            return Colors.YELLOW
        return Colors.DIM

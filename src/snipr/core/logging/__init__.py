"""
snipr Structured Logging Module.

Numeric log levels (1-4), a colored console handler, an optional rotating
JSONL file handler, and a trace id stamped on every record.

Log Levels:
    1 = MINIMAL  - Startup, shutdown, job failures
    2 = NORMAL   - Job lifecycle, stage milestones (default)
    3 = VERBOSE  - Per-stage timing, per-chunk progress
    4 = DEBUG    - Internal state

Configuration:
    export SNIPR_LOG_LEVEL=3   # VERBOSE
    export SNIPR_NO_COLOR=1    # Disable colors

    In settings.yaml:
        logging:
          level: 2
          log_dir: logs
          jsonl_file: snipr.jsonl

Usage:
    from snipr.core.logging import get_logger, info, warn, error

    log = get_logger("snipr.pipeline")

    info(log, "job_started", job_id="3f9a...", kind="url")
    warn(log, "upload_retry", attempt=2, delay_s=2.0)
    error(log, "job_failed", error="Synthesis timed out")
    verbose(log, "chunk_synthesized", chunk=1, total=3)
    debug(log, "feed_state", entries=12)

Module Structure:
    - levels.py: LogLevel enum and level mapping
    - context.py: Trace id and configuration state
    - formatters.py: Colors, JsonlFormatter and ColoredConsoleFormatter
"""
from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .levels import LogLevel, LEVEL_MAP, LEVEL_NAMES, coerce_level
from .context import (
    get_trace_id,
    set_trace_id,
    get_level,
    set_level,
    get_level_name,
    is_configured,
    set_configured,
    get_log_config,
    set_log_config,
    read_logging_config,
)
from .formatters import Colors, JsonlFormatter, ColoredConsoleFormatter, supports_color


_HANDLER_FLOOR = logging.DEBUG - 10

# Client libraries that log every request at INFO/DEBUG
_CHATTY_LOGGERS = ("httpx", "httpcore", "botocore", "boto3", "urllib3", "openai")


def _console_handler(level: LogLevel) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level.stdlib_level)
    handler.setFormatter(ColoredConsoleFormatter())
    return handler


def _jsonl_handler(log_config: Dict[str, Any]) -> Optional[logging.Handler]:
    """Rotating JSONL file handler, or None when no log_dir is configured."""
    log_dir = log_config.get("log_dir")
    if not log_dir:
        return None
    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        directory / str(log_config.get("jsonl_file", "snipr.jsonl")),
        maxBytes=int(log_config.get("rotate_max_bytes", 10 * 1024 * 1024)),
        backupCount=int(log_config.get("rotate_backup_count", 5)),
        encoding="utf-8",
        delay=True,
    )
    # The file keeps every record; level filtering happens in _log
    handler.setLevel(_HANDLER_FLOOR)
    handler.setFormatter(JsonlFormatter())
    return handler


def configure_logging(level: Optional[int | str | LogLevel] = None, force: bool = False) -> None:
    """
    Install snipr's handlers on the root logger.

    Called lazily by get_logger(); the API and CLI entry points call it
    explicitly so the level from settings.yaml applies before startup
    messages are written.

    Args:
        level: Log level (1-4, level name, or LogLevel). Defaults to
            SNIPR_LOG_LEVEL, then the settings file.
        force: Replace existing handlers even if already configured.
    """
    from . import formatters

    if is_configured() and not force:
        return

    formatters.USE_COLORS = supports_color()

    log_config = read_logging_config()
    set_log_config(log_config)

    current_level = coerce_level(level or log_config.get("level", LogLevel.NORMAL))
    set_level(current_level)

    root = logging.getLogger()
    root.setLevel(_HANDLER_FLOOR)
    root.handlers = [_console_handler(current_level)]
    file_handler = _jsonl_handler(log_config)
    if file_handler is not None:
        root.addHandler(file_handler)

    quiet = logging.WARNING if current_level < LogLevel.VERBOSE else logging.NOTSET
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    set_configured(True)


def _log(
    logger: logging.Logger,
    level: int,
    tag: str,
    msg: str,
    numeric_level: int = 2,
    exc_info: Any = None,
    **fields: Any
) -> None:
    if numeric_level > get_level():
        return

    event = fields.pop("event", None)
    seconds = fields.pop("seconds", None)
    logger.log(
        level,
        msg,
        exc_info=exc_info,
        extra={
            "tag": tag,
            "trace_id": get_trace_id(),
            "event": event,
            "seconds": seconds,
            "extra_data": fields or None,
            "numeric_level": numeric_level,
        },
    )


def get_logger(name: str = "snipr") -> logging.Logger:
    """Get a logger, configuring logging on first use."""
    configure_logging()
    return logging.getLogger(name)


def info(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log an info message (level 2 = NORMAL)."""
    _log(logger, logging.INFO, "INFO", msg, numeric_level=2, **fields)


def warn(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a warning (level 2 = NORMAL)."""
    _log(logger, logging.WARNING, "WARN", msg, numeric_level=2, **fields)


def error(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log an error (level 1 = MINIMAL). Pass exc_info=True for a traceback."""
    _log(logger, logging.ERROR, "ERROR", msg, numeric_level=1, **fields)


def success(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a success (level 2 = NORMAL)."""
    _log(logger, logging.INFO, "SUCCESS", msg, numeric_level=2, **fields)


def fail(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a failure (level 1 = MINIMAL)."""
    _log(logger, logging.ERROR, "FAIL", msg, numeric_level=1, **fields)


def verbose(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a verbose message (level 3 = VERBOSE)."""
    _log(logger, logging.DEBUG, "INFO", msg, numeric_level=3, **fields)


def debug(logger: logging.Logger, msg: str, **fields: Any) -> None:
    """Log a debug message (level 4 = DEBUG)."""
    _log(logger, logging.DEBUG - 5, "DEBUG", msg, numeric_level=4, **fields)


__all__ = [
    "LogLevel",
    "LEVEL_MAP",
    "LEVEL_NAMES",
    "coerce_level",
    "Colors",
    "supports_color",
    "get_trace_id",
    "set_trace_id",
    "get_level",
    "set_level",
    "get_level_name",
    "get_log_config",
    "JsonlFormatter",
    "ColoredConsoleFormatter",
    "configure_logging",
    "get_logger",
    "info",
    "warn",
    "error",
    "success",
    "fail",
    "verbose",
    "debug",
]

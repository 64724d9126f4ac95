"""
Trace Context and Configuration State for Logging.

A contextvar carries the trace id stamped on every record:
    - On the request path it is a short request id set by middleware.
    - Inside a background job it is the job id prefix, set by the worker.

Worker threads do not inherit the submitting thread's context, so the
job runner sets the trace id itself at the start of each run.

Environment Variables:
    - SNIPR_LOG_LEVEL: Override log level (1-4 or name)
    - SNIPR_LOG_DIR: Directory for the JSONL log file
    - SNIPR_JSONL_FILE: JSONL filename
    - SNIPR_LOG_ROTATE_BYTES: Max file size before rotation
    - SNIPR_LOG_ROTATE_BACKUP: Number of rotated files to keep
"""
from __future__ import annotations

import os
from contextvars import ContextVar
from typing import Any, Dict

import yaml

from .levels import LEVEL_NAMES, LogLevel

_trace_id: ContextVar[str] = ContextVar("trace_id", default="-")

_configured: bool = False
_log_config: Dict[str, Any] = {}
_current_level: LogLevel = LogLevel.NORMAL


def get_trace_id() -> str:
    """Return the trace id of the current context, or "-" if unset."""
    return _trace_id.get()


def set_trace_id(tid: str) -> None:
    """Set the trace id for all subsequent records in this context."""
    _trace_id.set(tid)


def get_level() -> LogLevel:
    return _current_level


def set_level(level: LogLevel) -> None:
    global _current_level
    _current_level = level


def get_level_name() -> str:
    """Current level as a name ("MINIMAL", "NORMAL", "VERBOSE", "DEBUG")."""
    return LEVEL_NAMES.get(_current_level, "NORMAL")


def is_configured() -> bool:
    return _configured


def set_configured(value: bool) -> None:
    global _configured
    _configured = value


def get_log_config() -> Dict[str, Any]:
    return _log_config


def set_log_config(config: Dict[str, Any]) -> None:
    global _log_config
    _log_config = config


def _read_int_env(name: str, cfg: Dict[str, Any], key: str) -> None:
    raw = os.getenv(name)
    if not raw:
        return
    try:
        cfg[key] = int(raw)
    except ValueError:
        pass  # keep file/default value


def read_logging_config() -> Dict[str, Any]:
    """
    Read logging configuration from the settings file and environment.

    Priority (highest first): SNIPR_* environment variables, the
    `logging` section of $SNIPR_SETTINGS (default config/settings.yaml),
    built-in defaults.
    """
    cfg: Dict[str, Any] = {}

    settings_path = os.getenv("SNIPR_SETTINGS", "config/settings.yaml")
    if os.path.exists(settings_path):
        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            cfg.update(raw.get("logging", {}) or {})
        except (OSError, yaml.YAMLError):
            pass  # unreadable settings: logging falls back to defaults

    if os.getenv("SNIPR_LOG_LEVEL"):
        cfg["level"] = os.environ["SNIPR_LOG_LEVEL"]
    if os.getenv("SNIPR_LOG_DIR"):
        cfg["log_dir"] = os.environ["SNIPR_LOG_DIR"]
    if os.getenv("SNIPR_JSONL_FILE"):
        cfg["jsonl_file"] = os.environ["SNIPR_JSONL_FILE"]
    _read_int_env("SNIPR_LOG_ROTATE_BYTES", cfg, "rotate_max_bytes")
    _read_int_env("SNIPR_LOG_ROTATE_BACKUP", cfg, "rotate_backup_count")

    return cfg

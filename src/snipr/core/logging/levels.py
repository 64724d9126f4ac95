"""
Log Level Definitions.

snipr filters on four numeric levels rather than the standard library
names, so a job's lifecycle can be followed at NORMAL without per-chunk
noise:

    1 = MINIMAL  - Startup, shutdown, job failures
    2 = NORMAL   - Job lifecycle and stage milestones (default)
    3 = VERBOSE  - Per-stage timing, per-chunk progress
    4 = DEBUG    - Repository writes, owner checks

Each level maps onto a stdlib level for handler filtering:
MINIMAL -> WARNING, NORMAL -> INFO, VERBOSE -> DEBUG, DEBUG -> 5.
"""
from __future__ import annotations

import logging
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """Numeric log levels, increasing in verbosity."""
    MINIMAL = 1
    NORMAL = 2
    VERBOSE = 3
    DEBUG = 4

    @property
    def stdlib_level(self) -> int:
        return LEVEL_MAP[self]


LEVEL_MAP = {
    LogLevel.MINIMAL: logging.WARNING,
    LogLevel.NORMAL: logging.INFO,
    LogLevel.VERBOSE: logging.DEBUG,
    LogLevel.DEBUG: logging.DEBUG - 5,
}

LEVEL_NAMES = {level.value: level.name for level in LogLevel}

# Accepted spellings beyond the member names and digits
_ALIASES = {
    "TRACE": LogLevel.DEBUG,
    "INFO": LogLevel.NORMAL,
    "WARN": LogLevel.MINIMAL,
    "WARNING": LogLevel.MINIMAL,
    "ERROR": LogLevel.MINIMAL,
    "CRITICAL": LogLevel.MINIMAL,
}


def _from_stdlib(value: int) -> LogLevel:
    # logging.DEBUG itself reads as "show everything"
    if value >= logging.WARNING:
        return LogLevel.MINIMAL
    if value >= logging.INFO:
        return LogLevel.NORMAL
    if value > logging.DEBUG:
        return LogLevel.VERBOSE
    return LogLevel.DEBUG


def coerce_level(value: Any) -> LogLevel:
    """
    Convert settings and environment values to a LogLevel.

    Integers 1-4 are taken as-is and larger integers as stdlib levels;
    strings may be a member name, a digit or a stdlib name. Anything
    unrecognized falls back to NORMAL.

    Examples:
        >>> coerce_level("verbose")
        <LogLevel.VERBOSE: 3>
        >>> coerce_level(logging.WARNING)
        <LogLevel.MINIMAL: 1>
    """
    if isinstance(value, LogLevel):
        return value
    if isinstance(value, bool):
        return LogLevel.NORMAL
    if isinstance(value, int):
        if value in LEVEL_NAMES:
            return LogLevel(value)
        return _from_stdlib(value)
    if isinstance(value, str):
        key = value.strip().upper()
        if key.isdigit() and int(key) in LEVEL_NAMES:
            return LogLevel(int(key))
        if key in LogLevel.__members__:
            return LogLevel[key]
        return _ALIASES.get(key, LogLevel.NORMAL)
    return LogLevel.NORMAL

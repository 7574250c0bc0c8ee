"""Centralized logging for buildcache.

Four verbosity levels, same model as the rest of the tooling:
- QUIET (0): Warnings + errors
- NORMAL (1): Info + warnings + errors
- VERBOSE (2): Detailed info (every spawned command)
- DEBUG (3): Everything including probe output

Lines are structured: a message followed by sorted ``key=value`` fields.
Inside a GitHub Actions job the debug/warning/error lines are emitted as
workflow commands (``::debug::``, ``::warning::``, ``::error::``) so the
runner renders them as annotations.

Usage:
    from buildcache.core.logging import get_logger

    log = get_logger(__name__)
    log.info("Restored from cache", key=key, full_match=True)
"""

from __future__ import annotations

import contextlib
import os
import sys
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class VerbosityLevel(IntEnum):
    """Verbosity levels for buildcache."""

    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3


_LEVEL_NAMES = {
    "quiet": VerbosityLevel.QUIET,
    "normal": VerbosityLevel.NORMAL,
    "verbose": VerbosityLevel.VERBOSE,
    "debug": VerbosityLevel.DEBUG,
}

_VERBOSITY: VerbosityLevel = VerbosityLevel.NORMAL
_USE_COLORS: bool = True
_ACTIONS_COMMANDS: bool | None = None
_SINKS: list[Callable[[LogRecord], None]] = []


@dataclass(frozen=True)
class LogRecord:
    level_name: str
    message: str
    logger_name: str
    fields: dict[str, Any] = field(default_factory=dict)

    @property
    def plain(self) -> str:
        return f"[{self.level_name.lower()}] {format_line(self.message, self.fields)}"


def format_line(message: str, fields: dict[str, Any]) -> str:
    if not fields:
        return message
    parts = [f"{k}={_format_value(fields[k])}" for k in sorted(fields)]
    return f"{message} " + " ".join(parts)


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value)
    if not text or any(c.isspace() for c in text):
        return repr(text)
    return text


def set_verbosity(level: int | str | VerbosityLevel) -> None:
    """Set global verbosity level.

    Args:
        level: 0-3, a VerbosityLevel, or one of quiet|normal|verbose|debug
    """
    global _VERBOSITY

    if isinstance(level, str):
        level = _LEVEL_NAMES[level.strip().lower()]
    elif isinstance(level, int):
        level = VerbosityLevel(level)

    _VERBOSITY = level


def get_verbosity() -> VerbosityLevel:
    return _VERBOSITY


def set_colors(enabled: bool) -> None:
    global _USE_COLORS
    _USE_COLORS = enabled


def set_actions_commands(enabled: bool | None) -> None:
    """Force workflow-command output on or off; None means detect from env."""
    global _ACTIONS_COMMANDS
    _ACTIONS_COMMANDS = enabled


def add_log_sink(sink: Callable[[LogRecord], None]) -> None:
    _SINKS.append(sink)


def remove_log_sink(sink: Callable[[LogRecord], None]) -> None:
    with contextlib.suppress(ValueError):
        _SINKS.remove(sink)


def clear_log_sinks() -> None:
    _SINKS.clear()


def _actions_commands_enabled() -> bool:
    if _ACTIONS_COMMANDS is not None:
        return _ACTIONS_COMMANDS
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


def _publish(record: LogRecord) -> None:
    for sink in list(_SINKS):
        try:
            sink(record)
        except Exception:
            # Sinks must never break logging; do not log from here.
            with contextlib.suppress(Exception):
                sys.stderr.write("log sink raised; suppressed\n")


class BuildCacheLogger:
    """Logger with verbosity support."""

    COLORS = {
        "DEBUG": "\033[36m",
        "VERBOSE": "\033[34m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "RESET": "\033[0m",
    }

    _COMMANDS = {"DEBUG": "debug", "WARNING": "warning", "ERROR": "error"}

    def __init__(self, name: str):
        self.name = name

    def _format_message(self, level: str, line: str) -> str:
        if _actions_commands_enabled():
            command = self._COMMANDS.get(level)
            if command:
                return f"::{command}::{line}"
            return line
        if _USE_COLORS and sys.stdout.isatty():
            color = self.COLORS.get(level, "")
            reset = self.COLORS["RESET"]
            return f"{color}[{level.lower()}]{reset} {line}"
        return f"[{level.lower()}] {line}"

    def _log(self, level: VerbosityLevel, level_name: str, message: str, fields: dict[str, Any]) -> None:
        if level > _VERBOSITY:
            return

        record = LogRecord(level_name=level_name, message=message, logger_name=self.name, fields=fields)
        _publish(record)

        formatted = self._format_message(level_name, format_line(message, fields))
        print(formatted, file=sys.stderr if level_name == "ERROR" else sys.stdout)

    def debug(self, message: str, **fields: Any) -> None:
        self._log(VerbosityLevel.DEBUG, "DEBUG", message, fields)

    def verbose(self, message: str, **fields: Any) -> None:
        self._log(VerbosityLevel.VERBOSE, "VERBOSE", message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self._log(VerbosityLevel.NORMAL, "INFO", message, fields)

    def warning(self, message: str, **fields: Any) -> None:
        self._log(VerbosityLevel.QUIET, "WARNING", message, fields)

    def error(self, message: str, **fields: Any) -> None:
        """Log error message (always shown)."""
        self._log(VerbosityLevel.QUIET, "ERROR", message, fields)


_LOGGERS: dict[str, BuildCacheLogger] = {}


def get_logger(name: str = __name__) -> BuildCacheLogger:
    """Get logger instance for module.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Logger instance
    """
    if name not in _LOGGERS:
        _LOGGERS[name] = BuildCacheLogger(name)

    return _LOGGERS[name]

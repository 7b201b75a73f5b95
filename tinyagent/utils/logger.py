"""
Logger Utility
==============

Context-aware logging for the agent runtime:

1. Log levels (DEBUG, INFO, WARNING, ERROR) filtered by LOG_LEVEL
2. Timestamped, color-coded terminal output
3. Child loggers for nested contexts ("Agent:Tools")
4. Optional structured data dumped as JSON under the message

Tool providers and the memory server talk over stdio, so their stdout belongs
to the protocol. `redirect_output()` sends every level to a single stream
(usually stderr) for those processes.

Usage:
    from tinyagent.utils.logger import Logger, logger

    logger.info("Runtime started")

    registry_logger = Logger("Registry")
    registry_logger.debug("Listing tools", {"providers": 3})
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any, TextIO


class LogLevel(IntEnum):
    """Numeric log levels; higher is more severe."""
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40


class Colors:
    """ANSI escape codes for colored terminal output."""
    RESET = "\033[0m"
    DEBUG = "\033[36m"    # Cyan
    INFO = "\033[32m"     # Green
    WARNING = "\033[33m"  # Yellow
    ERROR = "\033[31m"    # Red
    DIM = "\033[2m"


# When set, every log line goes to this stream instead of stdout/stderr
_output_override: TextIO | None = None


def redirect_output(stream: TextIO | None) -> None:
    """
    Send all log output to a single stream.

    Pass None to restore the default (stdout for info, stderr for errors).

    Args:
        stream: The stream to write to, e.g. sys.stderr
    """
    global _output_override
    _output_override = stream


def _get_log_level_from_env() -> LogLevel:
    """LOG_LEVEL as a LogLevel; unknown or missing values mean INFO."""
    name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
    if name == "WARN":
        name = "WARNING"
    return LogLevel.__members__.get(name, LogLevel.INFO)


_LEVEL_STYLE = {
    LogLevel.DEBUG: ("DEBUG", Colors.DEBUG),
    LogLevel.INFO: ("INFO", Colors.INFO),
    LogLevel.WARNING: ("WARN", Colors.WARNING),
    LogLevel.ERROR: ("ERROR", Colors.ERROR),
}


class Logger:
    """
    Colored, level-filtered logger that prefixes every line with a context tag.

    Example:
        registry_logger = Logger("Registry")
        registry_logger.info("Provider registered")

        stdio_logger = registry_logger.child("stdio")
        stdio_logger.debug("Spawned process", {"command": "npx"})
    """

    def __init__(self, context: str = ""):
        self.context = context
        self._min_level = _get_log_level_from_env()

    def child(self, child_context: str) -> "Logger":
        """Return a logger tagged "<context>:<child_context>"."""
        if not self.context:
            return Logger(child_context)
        return Logger(f"{self.context}:{child_context}")

    def _render(self, level: LogLevel, message: str) -> str:
        # [time] [LEVEL] [context] message
        label, color = _LEVEL_STYLE[level]
        stamp = datetime.now().isoformat(timespec="seconds")
        tag = f"[{self.context}] " if self.context else ""
        return f"{Colors.DIM}[{stamp}]{Colors.RESET} {color}[{label}]{Colors.RESET} {tag}{message}"

    def _emit(self, level: LogLevel, message: str, data: dict[str, Any] | None = None) -> None:
        if level < self._min_level:
            return

        stream = _output_override
        if stream is None:
            stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout

        print(self._render(level, message), file=stream)
        if data:
            dump = json.dumps(data, indent=2, default=str)
            print(f"{Colors.DIM}{dump}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Shown only with LOG_LEVEL=DEBUG."""
        self._emit(LogLevel.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._emit(LogLevel.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        self._emit(LogLevel.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log at ERROR level, attaching the exception's type and text when given.

        Args:
            message: What went wrong, in the caller's words
            error: The exception that caused it, if any
        """
        details = None
        if error is not None:
            details = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._emit(LogLevel.ERROR, message, details)


logger = Logger("TinyAgent")

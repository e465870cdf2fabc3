"""
Logger Utility
==============

Context-prefixed, colour-coded logging used by every module in the bot.

Each module creates its own logger with a short context name so that a
single turn can be followed through the gateway, memory, tools and
transport:

    [2025-03-02T10:30:00] [INFO] [Gateway] Primary failed with 503, failing over
    [2025-03-02T10:30:01] [INFO] [Agent] Generated response (412 chars)

Usage:
    from galt.utils.logger import Logger

    logger = Logger("Gateway")
    logger.info("Routing turn", {"backend": "secondary"})

    # Errors carry the exception type and message
    logger.error("Probe failed", exc)
"""

import json
import os
import sys
from datetime import datetime
from enum import IntEnum
from typing import Any


class LogLevel(IntEnum):
    """
    Log levels with numeric values for comparison.
    Higher values = more severe.
    """
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


_LEVELS = {
    "DEBUG": LogLevel.DEBUG,
    "INFO": LogLevel.INFO,
    "WARNING": LogLevel.WARNING,
    "WARN": LogLevel.WARNING,
    "ERROR": LogLevel.ERROR,
}


def _get_log_level_from_env() -> LogLevel:
    """Parse LOG_LEVEL, defaulting to INFO for unknown values."""
    level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    return _LEVELS.get(level_str, LogLevel.INFO)


class Logger:
    """
    A context-aware logger with colored output.

    Example:
        logger = Logger("ToolExecutor")
        logger.info("Executing tool: calculator")
        # [2025-03-02T14:05:09] [INFO] [ToolExecutor] Executing tool: calculator
    """

    def __init__(self, context: str = ""):
        """
        Initialize a logger.

        Args:
            context: Prefix for every message (e.g. "Agent", "Memory")
        """
        self.context = context
        self._min_level = _get_log_level_from_env()

    def is_enabled_for(self, level: LogLevel) -> bool:
        return level >= self._min_level

    def _format_message(self, level: str, message: str, color: str) -> str:
        """Output format: [TIMESTAMP] [LEVEL] [context] message"""
        timestamp = datetime.now().isoformat(timespec="seconds")
        context_str = f"[{self.context}] " if self.context else ""

        return (
            f"{Colors.DIM}[{timestamp}]{Colors.RESET} "
            f"{color}[{level}]{Colors.RESET} "
            f"{context_str}{message}"
        )

    def _log(
        self,
        level: LogLevel,
        level_name: str,
        color: str,
        message: str,
        data: dict[str, Any] | None = None
    ) -> None:
        if not self.is_enabled_for(level):
            return

        formatted = self._format_message(level_name, message, color)

        stream = sys.stderr if level >= LogLevel.ERROR else sys.stdout
        print(formatted, file=stream)

        if data:
            data_str = json.dumps(data, indent=2, default=str)
            print(f"{Colors.DIM}{data_str}{Colors.RESET}", file=stream)

    def debug(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log a debug message (only shown when LOG_LEVEL=DEBUG)."""
        self._log(LogLevel.DEBUG, "DEBUG", Colors.DEBUG, message, data)

    def info(self, message: str, data: dict[str, Any] | None = None) -> None:
        """Log an info message."""
        self._log(LogLevel.INFO, "INFO", Colors.INFO, message, data)

    def warning(self, message: str, data: dict[str, Any] | None = None) -> None:
        """
        Log a warning.

        Warnings are for degraded-but-working situations: a failover, a
        recency-only context, a tool that failed inside an otherwise
        healthy turn.
        """
        self._log(LogLevel.WARNING, "WARN", Colors.WARNING, message, data)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """
        Log an error. Always shown.

        Args:
            message: The error message
            error: Optional exception whose type and message are attached
        """
        data = None
        if error is not None:
            data = {
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        self._log(LogLevel.ERROR, "ERROR", Colors.ERROR, message, data)


# Default logger for code without a more specific context
logger = Logger("Bot")

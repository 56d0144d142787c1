#!/usr/bin/env python3
"""
texmodbot Logging Configuration

Centralized logging setup for consistent formatting across the project.
Console output goes to stderr: stdout is reserved for extracted texture names.

Usage:
    from shared.log import get_logger

    logger = get_logger(__name__)
    logger.info("Connecting...")
    logger.error("Handshake failed", extra={"username": "alice", "phase": "Initial"})
"""

from __future__ import annotations
import logging
import sys
from pathlib import Path
from typing import Optional
import os


# ========================================
#           LOGGING FORMATTERS
# ========================================

class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI Color codes
    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'       # Reset
    }

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


class ContextFormatter(logging.Formatter):
    """Prefixes connection context passed through `extra`."""

    def format(self, record: logging.LogRecord) -> str:
        context = []

        if hasattr(record, 'username'):
            context.append(f"user={record.username}")
        if hasattr(record, 'phase'):
            context.append(f"phase={record.phase}")
        if hasattr(record, 'msg_type'):
            context.append(f"msg={record.msg_type}")

        formatted = super().format(record)
        if context:
            return f"[{' '.join(context)}] {formatted}"
        return formatted


# ========================================
#           LOGGING CONFIGURATION
# ========================================

_LOG_FORMAT = '[%(levelname)-8s][%(asctime)s][%(name)-5s]: %(message)s'


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for the given module.

    Handlers are installed once on the root logger by
    configure_root_logging(); module loggers just propagate to it.

    Args:
        name: Usually __name__ from the calling module

    Examples:
        logger = get_logger(__name__)
        logger.info("Connected")

        # With context
        logger.warning("Ignoring greeting", extra={"phase": "Complete", "msg_type": "HELLO"})
    """
    return logging.getLogger(name)


def configure_root_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """
    Configure root logging for the entire application.
    Call this once at application startup.

    Args:
        level: Root log level ("DEBUG", "INFO", "WARNING", "ERROR")
        log_file: Also write plain log lines to this file
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level(level))

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()

    _add_console_handler(root_logger, colored=True)
    if log_file is not None:
        _add_file_handler(root_logger, log_file)


def _get_log_level(level: Optional[str] = None) -> int:
    """Determine appropriate log level"""
    if level:
        return getattr(logging, level.upper(), logging.INFO)
    return logging.INFO


def _add_console_handler(logger: logging.Logger, colored: bool = True) -> None:
    """Add console handler with appropriate formatter"""

    handler = logging.StreamHandler(sys.stderr)

    if colored and _supports_color():
        formatter: logging.Formatter = ColoredFormatter(fmt=_LOG_FORMAT, datefmt='%H:%M:%S')
    else:
        formatter = ContextFormatter(fmt=_LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _add_file_handler(logger: logging.Logger, log_file: Path) -> None:
    """Add file handler for persistent logs"""

    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file)

    formatter = ContextFormatter(
        fmt='%(asctime)s | %(name)-30s | %(levelname)-8s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handler.setFormatter(formatter)
    logger.addHandler(handler)


def _supports_color() -> bool:
    """Check if the terminal behind stderr supports color output"""

    if not (hasattr(sys.stderr, "isatty") and sys.stderr.isatty()):
        return False

    # TERM should not be dumb
    if os.getenv("TERM", "") == "dumb":
        return False

    if sys.platform == "win32":
        # On modern Windows terminals, ANSI colors are supported
        return os.getenv("ANSICON") is not None or os.getenv("WT_SESSION") is not None or os.getenv("TERM_PROGRAM") == "vscode"

    return True

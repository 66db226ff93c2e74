"""
Logging utilities for IronProof.

Library modules only ever call `get_logger(name)`; handlers are installed
once by the entry points (bridge server, replay CLI) through
`setup_logging`.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER = "ironproof"


class ColorFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record):
        # Format a copy so other handlers don't see the escape codes
        record = logging.makeLogRecord(record.__dict__)
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        return super().format(record)


class MinimalConsoleFormatter(logging.Formatter):
    """Minimal formatter for essential console output."""

    def format(self, record):
        if record.levelno == logging.INFO:
            return f"[{record.name.split('.')[-1]}] {record.getMessage()}"
        elif record.levelno == logging.WARNING:
            return f"[WARNING] {record.getMessage()}"
        elif record.levelno >= logging.ERROR:
            return f"[ERROR] {record.getMessage()}"
        return record.getMessage()


def setup_logging(log_level: str = 'INFO', verbose_console: bool = False) -> logging.Logger:
    """
    Install a console handler on the package logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        verbose_console: If True, show level names and colors

    Returns:
        The package root logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.handlers = []  # Clear existing handlers

    handler = logging.StreamHandler(sys.stdout)
    if verbose_console:
        handler.setFormatter(ColorFormatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%H:%M:%S'
        ))
    else:
        handler.setFormatter(MinimalConsoleFormatter())
    logger.addHandler(handler)
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger under the package namespace.

    Args:
        name: Component name (frames, filter, velocity, pipeline, ...)

    Returns:
        Logger instance
    """
    if not name:
        return logging.getLogger(ROOT_LOGGER)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

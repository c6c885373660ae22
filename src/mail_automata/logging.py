"""Logging infrastructure for mail-automata with rotating log files.

This module writes two logs with automatic rotation:
- mail-automata.log: Activity from every module (configured level)
- mail-automata-error.log: Errors only (ERROR+ level)

Usage:
    from mail_automata.logging import setup_logging, timed

    # Initialize once at startup
    setup_logging(log_dir=settings.log_dir, log_level=settings.log_level)

    # Modules log through their own logger
    logger = logging.getLogger(__name__)

    # Time a task; the outcome is logged either way
    with timed("collectActions"):
        ...
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

ROOT_LOGGER_NAME = "mail_automata"
ERROR_LOGGER_NAME = "mail_automata.errors"

DEFAULT_LOG_DIR = Path.home() / ".local" / "state" / "mail-automata"

# Default rotation settings
DEFAULT_MAX_BYTES = 5 * 1024 * 1024  # 5MB
DEFAULT_BACKUP_COUNT = 3

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# Module-level state
_error_logger: logging.Logger | None = None
_log_dir: Path = DEFAULT_LOG_DIR
_max_bytes: int = DEFAULT_MAX_BYTES
_backup_count: int = DEFAULT_BACKUP_COUNT

logger = logging.getLogger(ROOT_LOGGER_NAME)


class ErrorPropagatingHandler(logging.Handler):
    """Handler that propagates ERROR+ messages to the error logger."""

    def __init__(self) -> None:
        super().__init__(level=logging.ERROR)

    def emit(self, record: logging.LogRecord) -> None:
        """Forward error records to the error logger."""
        get_error_logger().handle(record)


def setup_logging(
    log_dir: Path | None = None,
    log_level: str = "INFO",
    max_bytes: int | None = None,
    backup_count: int | None = None,
) -> None:
    """Initialize the logging system.

    Args:
        log_dir: Directory for log files (default: ~/.local/state/mail-automata)
        log_level: Minimum log level (default: INFO)
        max_bytes: Max size per log file before rotation (default: 5MB)
        backup_count: Number of backup files to keep (default: 3)
    """
    global _log_dir, _max_bytes, _backup_count

    # Also drops an error logger created before setup or for another directory
    reset_logging()

    _log_dir = log_dir or DEFAULT_LOG_DIR
    _max_bytes = max_bytes or DEFAULT_MAX_BYTES
    _backup_count = backup_count if backup_count is not None else DEFAULT_BACKUP_COUNT

    # Ensure log directory exists
    _log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    file_handler = RotatingFileHandler(
        _log_dir / "mail-automata.log",
        maxBytes=_max_bytes,
        backupCount=_backup_count,
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(file_handler)

    # Error propagation handler - sends ERROR+ to error log
    root_logger.addHandler(ErrorPropagatingHandler())


def get_error_logger() -> logging.Logger:
    """Get the shared error logger (ERROR+ level).

    Returns:
        Logger that writes to mail-automata-error.log
    """
    global _error_logger

    if _error_logger is not None:
        return _error_logger

    error_logger = logging.getLogger(ERROR_LOGGER_NAME)
    error_logger.setLevel(logging.ERROR)
    # Don't propagate to root to avoid duplicate messages
    error_logger.propagate = False

    # Other handlers, such as pytest capture, may already be attached
    log_path = os.path.abspath(_log_dir / "mail-automata-error.log")
    if not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == log_path
        for h in error_logger.handlers
    ):
        _log_dir.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            log_path,
            maxBytes=_max_bytes,
            backupCount=_backup_count,
        )
        handler.setLevel(logging.ERROR)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        error_logger.addHandler(handler)

    _error_logger = error_logger
    return error_logger


def reset_logging() -> None:
    """Reset logging state (primarily for testing)."""
    global _error_logger

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    error_logger = logging.getLogger(ERROR_LOGGER_NAME)
    for handler in error_logger.handlers[:]:
        handler.close()
        error_logger.removeHandler(handler)

    _error_logger = None


@contextmanager
def timed(task_name: str) -> Iterator[None]:
    """Log how long a task took and whether it succeeded."""
    start = time.monotonic()
    try:
        yield
    except Exception as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Finished %s failed in %dms: %s\nMessage: %s",
            task_name,
            elapsed_ms,
            type(e).__name__,
            e,
        )
        raise
    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info("Finished %s successfully in %dms", task_name, elapsed_ms)

"""
Logging Configuration for Loom.

Provides centralized logger setup for the runtime trace log.
The trace logger writes to a file in the log directory and to stderr.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

TRACE_LOGGER_NAME = "loom.trace"
TRACE_LOG_FILE = "loom_trace.log"


# Log directory priority:
# 1. LOOM_LOG_DIR (explicit)
# 2. CWD/.loom (fallback)
def _get_log_directory() -> Path:
    """Get the log directory path."""
    log_dir = os.getenv("LOOM_LOG_DIR")
    if not log_dir:
        log_dir = str(Path.cwd() / ".loom")
    return Path(log_dir)


def _ensure_log_directory() -> Path:
    """Ensure log directory exists and return its path."""
    log_dir = _get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def is_file_logging_enabled() -> bool:
    """File logging is on unless LOOM_DEBUG_LOG is set to an empty string."""
    return os.getenv("LOOM_DEBUG_LOG") != ""


def _create_file_handler(log_filename: str) -> Optional[logging.FileHandler]:
    """
    Create a file handler for the specified log file.

    Args:
        log_filename: Name of the log file (e.g., 'loom_trace.log')

    Returns:
        Configured FileHandler, or None if file logging is disabled or the
        directory cannot be created
    """
    if not is_file_logging_enabled():
        return None

    try:
        log_path = _ensure_log_directory() / log_filename
        handler = logging.FileHandler(log_path, mode='a', encoding='utf-8')
    except OSError:
        return None
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit.

    ::: This is-in-layer Infrastructure-Layer.
    ::: This is a handler.
    ::: This is stateless.
    """
    def emit(self, record):
        super().emit(record)
        self.flush()


def _create_stderr_handler() -> logging.StreamHandler:
    """Create a stderr handler for console output with auto-flush."""
    handler = FlushingStreamHandler(sys.stderr)
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def get_trace_logger() -> logging.Logger:
    """
    Get the trace logger shared by the runtime and the comm layer.

    Output goes to <log dir>/loom_trace.log and stderr.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(TRACE_LOGGER_NAME)

    # Only configure once
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        file_handler = _create_file_handler(TRACE_LOG_FILE)
        if file_handler:
            logger.addHandler(file_handler)

        logger.addHandler(_create_stderr_handler())

    return logger


def configure_logger_for_trace(logger_name: str) -> logging.Logger:
    """
    Configure a logger to also write to the trace log.

    Args:
        logger_name: Name of the logger to configure (e.g., __name__)

    Returns:
        Configured logger instance
    """
    trace_logger = get_trace_logger()
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    for handler in trace_logger.handlers:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    return logger


def set_stderr_level(level: int) -> None:
    """
    Change the level of the trace logger's stderr handler.

    File logging is unaffected.
    """
    for handler in get_trace_logger().handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)

"""
Logging Configuration for tuplepipe.

Provides centralized logger setup for the pipeline trace log.
Records go to stderr and, when TUPLEPIPE_LOG_DIR is set, to
debug_trace.log inside that directory.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
TRACE_LOGGER_NAME = "tuplepipe.debug_trace"


def _get_log_directory() -> Optional[Path]:
    """Get the log directory from TUPLEPIPE_LOG_DIR, or None if file logging is off."""
    log_dir = os.getenv("TUPLEPIPE_LOG_DIR")
    if not log_dir:
        return None
    return Path(log_dir)


def _get_log_level() -> int:
    """Resolve TUPLEPIPE_LOG_LEVEL (name or number), defaulting to WARNING."""
    level = os.getenv("TUPLEPIPE_LOG_LEVEL", "WARNING").strip()
    if level.isdigit():
        return int(level)
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.WARNING


def _create_file_handler(log_filename: str) -> Optional[logging.FileHandler]:
    """
    Create a file handler for the specified log file.

    Args:
        log_filename: Name of the log file (e.g., 'debug_trace.log')

    Returns:
        Configured FileHandler, or None if file logging is disabled
    """
    log_dir = _get_log_directory()
    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / log_filename, mode='a', encoding='utf-8')
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
    handler.setLevel(_get_log_level())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def get_debug_trace_logger() -> logging.Logger:
    """
    Get the trace logger shared by the evaluator, steps and jobs.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(TRACE_LOGGER_NAME)

    # Only configure once
    if not logger.handlers:
        logger.setLevel(logging.DEBUG)
        logger.propagate = False

        file_handler = _create_file_handler("debug_trace.log")
        if file_handler:
            logger.addHandler(file_handler)

        logger.addHandler(_create_stderr_handler())

    return logger


debug_trace_logger = get_debug_trace_logger()


def configure_logger_for_debug_trace(logger_name: str) -> logging.Logger:
    """
    Configure a logger to also write to the trace handlers.

    Args:
        logger_name: Name of the logger to configure (e.g., __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    for handler in debug_trace_logger.handlers:
        if handler not in logger.handlers:
            logger.addHandler(handler)
    return logger


def set_stderr_level(level: int) -> None:
    """Change the stderr threshold of the trace handlers at runtime."""
    for handler in debug_trace_logger.handlers:
        if isinstance(handler, logging.StreamHandler) and not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)

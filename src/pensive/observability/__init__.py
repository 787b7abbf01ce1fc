"""Observability helpers: structured logging for the engine and CLI."""

from pensive.observability.logging import (
    DEFAULT_LOG_FILE,
    close_file_logging,
    configure_logging,
    get_logger,
    log_context,
)

__all__ = [
    "DEFAULT_LOG_FILE",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "log_context",
]

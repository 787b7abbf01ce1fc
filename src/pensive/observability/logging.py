"""Structured logging for Pensive.

Events go through structlog into the standard ``logging`` tree. From there a
rich console handler shows them at the ``-v`` level, and with ``--log`` a
JSON-lines file receives everything. Both handlers render the same event
dict through structlog's ``ProcessorFormatter``; the console leaves out the
timestamp and level that rich prints in its own columns.

Values bound with :func:`log_context` (the discovery service binds
``fandom_id``) are merged into every event logged inside the block.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog
from rich.console import Console
from rich.logging import RichHandler

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from structlog.typing import EventDict, Processor, WrappedLogger

DEFAULT_LOG_FILE = Path("logs") / "debug.jsonl"

_VERBOSITY_LEVELS = {0: logging.WARNING, 1: logging.INFO}

_SHARED_PROCESSORS: list[Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]

_configured = False
_file_handler: logging.FileHandler | None = None


def _drop_column_keys(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    for key in ("timestamp", "level", "logger"):
        event_dict.pop(key, None)
    return event_dict


def _console_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _drop_column_keys,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )


def _jsonl_formatter() -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
    )


def configure_logging(verbosity: int = 0, log_file: Path | None = None) -> None:
    """Configure console and optional file logging.

    Calling it again replaces the handlers and closes a previous log file.

    Args:
        verbosity: 0=WARNING (default), 1=INFO, 2+=DEBUG on the console.
        log_file: JSON-lines file receiving every event at DEBUG. Parent
            directories are created.
    """
    global _configured, _file_handler

    close_file_logging()

    console_handler = RichHandler(
        console=Console(stderr=True),
        rich_tracebacks=True,
        tracebacks_show_locals=verbosity >= 2,
        show_time=verbosity >= 1,
        show_path=False,
        markup=False,
        level=_VERBOSITY_LEVELS.get(verbosity, logging.DEBUG),
    )
    console_handler.setFormatter(_console_formatter())
    handlers: list[logging.Handler] = [console_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        _file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        _file_handler.setLevel(logging.DEBUG)
        _file_handler.setFormatter(_jsonl_formatter())
        handlers.append(_file_handler)

    root_level = logging.DEBUG if (verbosity > 0 or log_file is not None) else logging.WARNING
    logging.basicConfig(level=root_level, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(root_level),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.typing.FilteringBoundLogger:
    """Structured logger for ``name``; configures defaults on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.typing.FilteringBoundLogger = structlog.get_logger(name)
    return logger


def log_context(**values: Any) -> AbstractContextManager[None]:
    """Bind ``values`` to every event logged inside the ``with`` block."""
    return structlog.contextvars.bound_contextvars(**values)


def close_file_logging() -> None:
    """Close the JSON-lines file handler, if any."""
    global _file_handler
    if _file_handler is not None:
        _file_handler.close()
        _file_handler = None

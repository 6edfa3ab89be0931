"""Logging configuration using structlog for structured logging."""

import logging
import sys
from collections.abc import MutableMapping
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

import structlog
from structlog.dev import ConsoleRenderer
from structlog.processors import JSONRenderer
from structlog.stdlib import LoggerFactory, add_log_level, add_logger_name

# Standard library logging levels mapping
_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Events that stay visible on the console at the default level
USER_FACING_EVENTS: set[str] = {
    "batch_sync_started",
    "batch_sync_finished",
    "sync_pass_completed",
    "sync_pass_failed",
    "anki_unreachable",
    "config_loaded",
}

# Keys the renderers already show on their own
_RENDERED_KEYS = frozenset({"logger", "level", "event", "timestamp", "exception"})

# Global state for handlers
_configured = False
_handlers: list[logging.Handler] = []


def _get_level_no(level_name: str) -> int:
    """Get numeric log level from name."""
    return _LOG_LEVELS.get(level_name.upper(), logging.INFO)


class UserFacingConsoleFilter(logging.Filter):
    """Only pass user-facing events (and all warnings/errors) to the console."""

    def __init__(self, verbose: bool = False) -> None:
        super().__init__()
        self.verbose = verbose

    def filter(self, record: logging.LogRecord) -> bool:
        if self.verbose or record.levelno >= logging.WARNING:
            return True
        message = record.getMessage()
        return any(event in message for event in USER_FACING_EVENTS)


def _add_formatted_extra_processor(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add a '_formatted' field with the extra fields, priority keys first."""
    priority_fields = ["file", "source_path", "note_id", "deck"]
    important_parts = []
    other_parts = []

    for key, value in event_dict.items():
        if key.startswith("_") or key in _RENDERED_KEYS:
            continue
        if key in priority_fields:
            if value:
                important_parts.append(f"{key}={value}")
        elif value is not None and value != "":
            other_parts.append(f"{key}={value}")

    all_parts = important_parts + other_parts
    event_dict["_formatted"] = " | " + " ".join(all_parts) if all_parts else ""
    return event_dict


def _base_processors() -> list[structlog.typing.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        add_log_level,
        add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]


def configure_logging(
    log_level: str = "INFO",
    log_file: Path | None = None,
    verbose: bool = False,
    json_logs: bool = False,
) -> None:
    """Configure structlog with a console handler and an optional file handler.

    Args:
        log_level: Minimum console log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional JSON log file (rotated at 10MB)
        verbose: If True, show every event on the console
        json_logs: Render console output as JSON instead of colored text
    """
    global _configured

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for handler in _handlers:
        root_logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    structlog.configure(
        processors=[
            *_base_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_get_level_no(log_level))
    console_handler.addFilter(UserFacingConsoleFilter(verbose=verbose))
    renderer: Any = (
        JSONRenderer()
        if json_logs
        else ConsoleRenderer(
            colors=True, exception_formatter=structlog.dev.plain_traceback
        )
    )
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processor=renderer,
            foreign_pre_chain=_base_processors(),
        )
    )
    root_logger.addHandler(console_handler)
    _handlers.append(console_handler)

    if log_file:
        log_file.parent.mkdir(exist_ok=True, parents=True)
        file_handler = RotatingFileHandler(
            filename=str(log_file),
            maxBytes=10 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processors=[
                    _add_formatted_extra_processor,
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    JSONRenderer(),
                ],
                foreign_pre_chain=_base_processors(),
            )
        )
        root_logger.addHandler(file_handler)
        _handlers.append(file_handler)

    _configured = True

    get_logger(__name__).debug(
        "logging_configured",
        console_level=log_level,
        log_file=str(log_file) if log_file else None,
        verbose=verbose,
    )


def get_logger(name: str) -> Any:
    """Get a structlog logger bound to the given name.

    Auto-configures console logging with defaults on first use.
    """
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)

"""Structured logging configuration using structlog."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import structlog
from structlog.contextvars import bind_contextvars, clear_contextvars, merge_contextvars

if TYPE_CHECKING:
    from structlog.types import EventDict, WrappedLogger

    from kv_cache_core.config.settings import Settings

# Event fields that may hold cached payloads
REDACTED_FIELDS = frozenset({"value", "new_value", "document", "payload"})
REDACTED = "[redacted]"


def redact_cached_values(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Mask cached payloads so they never reach a log sink."""
    for field in REDACTED_FIELDS.intersection(event_dict):
        event_dict[field] = REDACTED
    return event_dict


def configure_logging(settings: Settings) -> None:
    """Configure structlog with JSON or console rendering.

    Sets up shared processors (cached values are masked before rendering),
    routes stdlib logging through structlog, and configures the output
    format based on settings.
    """
    shared_processors: list[structlog.types.Processor] = [
        merge_contextvars,
        redact_cached_values,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.log_format == "json":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    level = _resolve_level(settings.log_level)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    # Quiet noisy third-party loggers
    for name in ("redis", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def bind_operation_context(**values: object) -> None:
    """Bind values (command, backend, ...) to all subsequent log entries."""
    bind_contextvars(**values)


def clear_operation_context() -> None:
    """Clear all bound context variables."""
    clear_contextvars()


def _resolve_level(level_name: str) -> int:
    """Convert a level name string to a logging level int."""
    mapping: dict[str, int] = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return mapping.get(level_name.upper(), logging.INFO)

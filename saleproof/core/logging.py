"""
Structured logging configuration using structlog.

Events are snake_case names with keyword context, e.g.
``logger.info("sale_recorded", transaction_id=..., fingerprint=...)``.
Output goes to stderr so that tools can print JSON results on stdout.
"""

import logging
import sys
from typing import Any, cast

import structlog
from structlog.types import Processor

from saleproof.core.config import Settings, get_settings


def configure_logging(
    settings: Settings | None = None,
    *,
    json_output: bool | None = None,
) -> None:
    """
    Configure structured logging.

    Parameters
    ----------
    settings:
        Source of ``environment`` and ``log_level``; defaults to the cached settings.
    json_output:
        Force JSON (``True``) or console (``False``) rendering. By default
        development renders for humans and staging/production render JSON.
    """
    settings = settings or get_settings()
    if json_output is None:
        json_output = settings.environment != "development"

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, settings.log_level),
    )


def bind_log_context(**values: Any) -> None:
    """Attach context (e.g. an audit ``run_id``) to every event logged afterwards."""
    structlog.contextvars.bind_contextvars(**values)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance with the given name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))

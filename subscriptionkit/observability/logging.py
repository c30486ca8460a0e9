"""
Structured Logging with Structlog.

The host application calls setup_logging() once; the library itself only
emits snake_case events through loggers from get_logger().
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from subscriptionkit import __version__
from subscriptionkit.config import Settings


def library_context(name: str) -> Processor:
    """Build a processor that stamps library name and version on every entry."""

    def add_library_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict["library"] = name
        event_dict["version"] = __version__
        return event_dict

    return add_library_context


def setup_logging(settings: Settings) -> None:
    """
    Configure structured logging with structlog.

    JSON output looks like:
    {
        "event": "customer_info_refreshed",
        "level": "info",
        "timestamp": "2025-01-08T12:00:00.123456Z",
        "logger": "subscriptionkit.services.synchronizer",
        "library": "subscriptionkit",
        "version": "0.1.0",
        "app_user_id": "$anonymous_...",
        ...additional context
    }
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        library_context(settings.library_name),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.log_level.upper() == "DEBUG":
        processors.append(structlog.processors.ExceptionRenderer())
    else:
        processors.append(structlog.processors.format_exc_info)

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("transaction_verified", transaction_id=transaction_id)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Context manager for adding structured logging context.

    Usage:
        with log_context(app_user_id="user-456"):
            logger.info("purchase_started")
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())

"""Structured logging utilities for Latchkey.

This module provides async-safe structured logging using structlog.
Every log line emitted while a request is in flight carries its request_id.
"""

import logging
import sys
import time
from contextvars import ContextVar
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

# Context variable for request tracking
request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

# Store operations slower than this are logged at WARNING instead of DEBUG.
SLOW_OPERATION_MS: float = 50.0


def add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add request_id to log context if available."""
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add epoch timestamp to log entries."""
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(
    log_level: str = "INFO",
    json_output: bool = True
) -> None:
    """Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON format. If False, use console format.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=True),
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = "latchkey") -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically module name)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


@contextmanager
def timed_store_call(operation: str, logger: structlog.stdlib.BoundLogger) -> Iterator[None]:
    """Log how long a key-store round-trip took.

    Slow calls are logged at WARNING, everything else at DEBUG. Exceptions
    are logged and re-raised.
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as exc:
        logger.error(
            "key_store_call_failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 3),
            error=str(exc),
        )
        raise
    duration_ms = (time.perf_counter() - started) * 1000
    emit = logger.warning if duration_ms > SLOW_OPERATION_MS else logger.debug
    emit("key_store_call", operation=operation, duration_ms=round(duration_ms, 3))


def set_request_id(request_id: str) -> None:
    """Set request ID in context for all subsequent logs.

    Args:
        request_id: Unique identifier for the request
    """
    request_id_var.set(request_id)


def clear_request_id() -> None:
    """Clear request ID from context."""
    request_id_var.set(None)


# Initialize logging with sensible defaults
# This will be reconfigured by main.py based on environment
configure_logging()

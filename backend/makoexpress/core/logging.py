"""
Structured logging for the MAKOEXPRESS API.

Log events are key/value pairs rendered by structlog: a coloured console
view in development and one JSON object per line everywhere else. The
request id and the authenticated user id live in structlog's context
variables, so every event emitted while a request is being served carries
them without callers passing them around.
"""

import logging
import sys
import time
from contextlib import contextmanager
from typing import Any, Iterator, Optional
from uuid import uuid4

import structlog
from structlog.types import Processor

from makoexpress.core.config import get_settings

# Loggers of libraries that are too chatty at the application level
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


def configure_logging() -> None:
    """
    Configure structlog and route standard library logging through it.

    Safe to call more than once; the last call wins.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
        force=True,
    )
    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a correlation id for the current request, generating one if absent."""
    request_id = request_id or str(uuid4())
    structlog.contextvars.bind_contextvars(request_id=request_id)
    return request_id


def get_request_id() -> str:
    return structlog.contextvars.get_contextvars().get("request_id", "")


def set_user_id(user_id: Optional[str]) -> None:
    """Attach the authenticated user to every subsequent event of the request."""
    if user_id:
        structlog.contextvars.bind_contextvars(user_id=user_id)
    else:
        structlog.contextvars.unbind_contextvars("user_id")


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    slow_threshold_ms: float = 500,
    **context: Any,
) -> Iterator[None]:
    """
    Time a block and log its duration.

    Blocks slower than ``slow_threshold_ms`` are logged as warnings, failures
    as errors (the exception still propagates).

    Example:
        >>> with log_performance(logger, "makopay_request", path="/v1/transfers"):
        ...     response = await http.post(...)
    """
    started = time.perf_counter()
    try:
        yield
    except Exception as e:
        logger.error(
            "Operation failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            error_type=type(e).__name__,
            **context,
        )
        raise

    duration_ms = round((time.perf_counter() - started) * 1000, 2)
    log = logger.warning if duration_ms > slow_threshold_ms else logger.info
    log("Operation completed", operation=operation, duration_ms=duration_ms, **context)

"""
Structured logging configuration.

Provides consistent logging across the application. The API, the CLI and the
pipeline observer all log through structlog; stdlib loggers from third-party
libraries (httpx, uvicorn) are routed to the same stream.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog
from structlog.types import Processor

NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str | Path] = None,
) -> None:
    """
    Configure application-wide structured logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_format: Whether to output logs in JSON format.
        log_file: Optional file path that receives a copy of stdlib log records.
    """
    numeric_level = getattr(logging, level.upper())

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(numeric_level)
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger for the given module name.

    Args:
        name: Logger name, typically __name__.

    Returns:
        Configured structlog logger instance.
    """
    return structlog.get_logger(name)


class LogContext:
    """Context manager binding request-scoped values (request id, lead id) to every log line."""

    def __init__(self, **kwargs):
        self.context = kwargs
        self._bound = False

    def __enter__(self):
        structlog.contextvars.bind_contextvars(**self.context)
        self._bound = True
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._bound:
            structlog.contextvars.unbind_contextvars(*self.context.keys())
            self._bound = False

"""Structured logging configuration using structlog.

JSON output for production, console output for development. Anything bound
with ``structlog.contextvars`` (request id, acting user) is merged into every
event.
"""
import os
import sys
from typing import Any, List, Optional, cast

import structlog

LOG_LEVEL = os.getenv("AUDITED_LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("AUDITED_LOG_FORMAT", "json")

_LEVELS = {
    "DEBUG": 10,
    "INFO": 20,
    "WARNING": 30,
    "ERROR": 40,
    "CRITICAL": 50,
}


def setup_logging(level: Optional[str] = None, format: Optional[str] = None) -> None:
    """Configure structlog for the process.

    Args:
        level: Minimum log level name. Defaults to ``AUDITED_LOG_LEVEL``.
        format: ``"json"`` or ``"console"``. Defaults to ``AUDITED_LOG_FORMAT``.
    """
    level = (level or LOG_LEVEL).upper()
    format = format or LOG_FORMAT

    processors: List[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS.get(level, 20)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a logger bound to the given module name."""
    return cast(structlog.stdlib.BoundLogger, structlog.get_logger(name))

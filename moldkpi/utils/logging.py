"""
Structured logging configuration using structlog.

Every event carries the service name and plant timezone; the HTTP middleware
binds ``request_id`` and the KPI router binds the machine / mold selection
through ``structlog.contextvars`` so engine events inherit them.
"""

import logging
import sys
from functools import partial
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

from moldkpi.config import get_settings

SERVICE_NAME = "moldkpi"

# Chatty third-party loggers kept at WARNING unless running at debug level
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def add_severity(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add severity level for structured logging."""
    event_dict["severity"] = method_name.upper()
    return event_dict


def add_plant_context(
    logger: Any, method_name: str, event_dict: EventDict, *, plant_timezone: str
) -> EventDict:
    """Stamp service and plant timezone on every event."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("plant_timezone", plant_timezone)
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the application.
    Uses JSON format in production, console format in development.
    """
    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    if settings.log_format == "json" and not settings.dev_mode:
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=not settings.testing)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            partial(add_plant_context, plant_timezone=settings.plant_timezone),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            add_severity,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = __name__) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_selection(machine: str, mold: str, period: Optional[str] = None) -> None:
    """Bind the KPI selection to the request's log context."""
    context = {"machine": machine, "mold": mold}
    if period is not None:
        context["period"] = period
    structlog.contextvars.bind_contextvars(**context)

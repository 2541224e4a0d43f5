"""Structured logging for the API and the worker.

Both processes log through structlog. Records emitted by libraries on the
standard ``logging`` module (uvicorn, aio-pika, httpx) are passed through the
same processor chain, so one process writes a single format: JSON lines in
production and coloured console output when ``debug`` is on.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

from ruleflow.core.config import Settings, get_settings

# Libraries that log every request or frame at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "aio_pika", "aiormq", "aiosmtplib")


def service_fields(app_name: str, version: str, component: str) -> Processor:
    """Build a processor that stamps every event with the emitting service."""

    def add_service_fields(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", app_name)
        event_dict.setdefault("version", version)
        event_dict.setdefault("component", component)
        return event_dict

    return add_service_fields


def setup_logging(component: str = "api", settings: Settings | None = None) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        component: Process role stamped on every event (``api`` or ``worker``)
        settings: Settings to read the level and debug flag from
    """
    settings = settings or get_settings()
    level = getattr(logging, settings.log_level)

    # execution_id is bound by TraceContext and merged here
    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        service_fields(settings.app_name, settings.app_version, component),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    renderer: Processor
    if settings.debug:
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *pre_chain,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    final_processors: list[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if not settings.debug:
        final_processors.append(structlog.processors.format_exc_info)
    final_processors.append(renderer)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=final_processors,
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_values: Any) -> structlog.stdlib.BoundLogger:
    """Get a logger, optionally with context already bound."""
    logger = structlog.get_logger(name)
    if initial_values:
        logger = logger.bind(**initial_values)
    return logger

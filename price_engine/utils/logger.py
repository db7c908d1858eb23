"""
Structured Logging Configuration
================================

structlog setup for the price engine. Request-scoped fields (request id,
tenant, user) are bound through contextvars by the HTTP middleware, so
every service log line emitted while handling a request carries them.
"""

import logging
import sys
from typing import Any
from uuid import UUID

import structlog

from price_engine.config.settings import get_settings

SERVICE_NAME = "price-engine"

# Libraries whose INFO output would drown request logs
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def _add_service(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    JSON lines in production, colored console output otherwise.
    """
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_service,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_production:
        renderer: list[Any] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*shared_processors, *renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_request_context(
    request_id: str,
    tenant_id: str | UUID | None = None,
    user_id: str | UUID | None = None,
) -> None:
    """Start a fresh log context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    fields: dict[str, Any] = {"request_id": request_id}
    if tenant_id:
        fields["tenant_id"] = str(tenant_id)
    if user_id:
        fields["user_id"] = str(user_id)
    structlog.contextvars.bind_contextvars(**fields)


def clear_request_context() -> None:
    structlog.contextvars.clear_contextvars()


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Logger for ``name``, typically ``__name__``."""
    return structlog.get_logger(name)

"""Structured logging setup.

Routes structlog events and plain stdlib records (SQLAlchemy, Alembic) through
one root handler, rendered as JSON in production and as console output
elsewhere.
"""

from __future__ import annotations

import logging

import structlog

from src.objectsync.config import Environment, Settings, get_settings

# Processors applied to structlog events and to foreign stdlib records alike.
_PRE_CHAIN: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
]


def _renderer(settings: Settings):
    if settings.ENVIRONMENT == Environment.production:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def configure_structlog(settings: Settings | None = None) -> logging.Handler:
    """Configure structlog and the root stdlib logger.

    Args:
        settings: Supplies ENVIRONMENT and LOG_LEVEL. Defaults to get_settings().

    Returns:
        The handler installed on the root logger.
    """
    settings = settings or get_settings()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_PRE_CHAIN,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_PRE_CHAIN,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(settings),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())
    return handler

"""Structured logging configuration using structlog.

structlog sits on top of the stdlib ``logging`` module: services log through
``get_logger(__name__)`` and every record is rendered by one root handler,
as colored console lines in development and as JSON elsewhere.

Context bound with ``structlog.contextvars`` (``bind_actor`` binds the
acting party) is merged into every entry logged while it is bound.

Usage:
    from property_settlement.logging_config import setup_logging, get_logger
    setup_logging(log_level="DEBUG", json_logs=False)
    logger = get_logger(__name__)
    logger.info("offer.submitted", offer_id="abc-123", amount_cents=85000000)
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, TextIO

import structlog

if TYPE_CHECKING:
    from property_settlement.config import Settings

# Libraries that log at INFO/DEBUG on every statement or connection
QUIET_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "aiosqlite", "asyncio")


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging through a single root handler.

    Args:
        log_level: Standard Python log level name (DEBUG, INFO, WARNING, ...).
        json_logs: Render JSON lines instead of colored console output.
        stream: Where to write; defaults to stdout.
    """
    if json_logs:
        # Tracebacks from sweep failures become a string field
        final: list[structlog.types.Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        final = [structlog.dev.ConsoleRenderer(colors=stream is None)]

    structlog.configure(
        processors=[
            *_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_processors(),
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, *final],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging_from_settings(settings: Settings, stream: TextIO | None = None) -> None:
    """JSON everywhere except development, at the configured level."""
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
        stream=stream,
    )


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)

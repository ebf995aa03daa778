"""structlog setup for the engine and its host process."""

import logging

import structlog
from structlog.types import Processor

from anglerxp.config import Settings

# Chatty at INFO; only surfaced when the engine itself runs at DEBUG.
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")


def _processors(log_format: str) -> list[Processor]:
    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if log_format == "json":
        return [*shared, structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return [*shared, structlog.processors.StackInfoRenderer(), structlog.dev.ConsoleRenderer()]


def setup_logging(settings: Settings) -> None:
    """Configure structlog with a JSON or console renderer."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    structlog.configure(
        processors=_processors(settings.log_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if level <= logging.DEBUG else logging.WARNING)

"""
Structured logging setup.

Routes structlog and stdlib records (uvicorn, SQLAlchemy) through one
handler so that every component writes the same format.
"""

import logging
import sys

import structlog

from .config import Settings


def configure_logging(settings: Settings) -> structlog.stdlib.BoundLogger:
    """
    Configure structlog on top of stdlib logging.

    Local environments get a human readable console renderer, every other
    environment emits JSON lines.

    Args:
        settings: Application settings

    Returns:
        Root bound logger for the process
    """
    level = getattr(logging, settings.LOG_LEVEL)

    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.is_local
        else structlog.processors.JSONRenderer()
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    return structlog.get_logger("scaffold").bind(
        service=settings.OTEL_SERVICE_NAME, env=settings.ENVIRONMENT
    )

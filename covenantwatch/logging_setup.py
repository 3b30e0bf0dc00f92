"""
Structured logging setup.

All modules log through structlog with snake_case event names and keyword
context. Call configure_logging() once per process (API server, scheduler).
"""

import logging
import sys

import structlog

from covenantwatch.config import settings


def configure_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Install the stdlib handler and the structlog processor chain."""
    level_name = (level or settings.log_level).upper()
    renderer_format = fmt or settings.log_format

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if renderer_format == "json"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

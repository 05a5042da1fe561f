"""
Structured logging setup.

Every module logs through ``structlog.get_logger()``; this only decides how
events are rendered.
"""

import logging
import sys
from typing import Optional, Union

import structlog

from .config import LogFormat, get_settings


def configure_logging(
    level: Optional[str] = None,
    log_format: Optional[Union[LogFormat, str]] = None,
) -> None:
    """Configure structlog and the stdlib root logger."""
    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    fmt = LogFormat(log_format or settings.log_format)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level_name, logging.INFO),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if fmt == LogFormat.JSON
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

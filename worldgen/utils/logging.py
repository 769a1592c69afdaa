"""structlog configuration for applications embedding the generator."""

import logging
import sys
from typing import Optional

import structlog

from ..config.settings import Settings, settings as default_settings


def configure_logging(settings: Optional[Settings] = None) -> None:
    """
    Install the stdlib-backed structlog processor chain.

    The library itself never calls this; scripts and services do, once,
    before generating.

    Args:
        settings: Runtime settings (log level and format)
    """
    settings = settings or default_settings
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    if settings.log_format == "console":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

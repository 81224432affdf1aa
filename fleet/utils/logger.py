# fleet/utils/logger.py

"""
Structured logging for the fleet services.

Every module grabs its logger with ``get_logger(__name__)`` and logs short
event messages with keyword context:

    logger.info("Applied payment", payment_id=12, applied_total=500)

Level and renderer come straight from the environment because the settings
module itself logs while it is being loaded.
"""

import logging
import os
import sys

import structlog

_configured = False


def configure_logging(level: str = None) -> None:
    """Configure stdlib logging and structlog once per process."""
    global _configured
    if _configured:
        return

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    environment = os.getenv("ENVIRONMENT", "local").lower()

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)

    renderer = (
        structlog.dev.ConsoleRenderer(colors=False)
        if environment in ("local", "test")
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structured logger bound to the given module name."""
    configure_logging()
    return structlog.get_logger(name)

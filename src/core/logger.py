import logging
import os

import structlog
from dotenv import load_dotenv

load_dotenv()

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def setup_logging(level: int | None = logging.INFO, json_output: bool = False) -> None:
    """
    Configure structured logging for the engine.

    Args:
        level: The logging level to use. Defaults to INFO.
        json_output: Render one JSON object per line instead of the console format.
    """
    logging.basicConfig(level=level)
    # basicConfig is a no-op once the root logger has handlers
    if level is not None:
        logging.getLogger().setLevel(level)

    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
            pad_event=50,
        )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_from_env() -> None:
    """Configure logging from LOG_LEVEL and LOG_FORMAT (DEBUG and console when unset)"""
    level = LOG_LEVELS.get(os.getenv("LOG_LEVEL", "").upper(), logging.DEBUG)
    setup_logging(level=level, json_output=os.getenv("LOG_FORMAT", "").lower() == "json")


configure_from_env()

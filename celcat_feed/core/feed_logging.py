"""
Central logging configuration for celcat_feed.

Installs a console handler that stamps every record with the request
correlation id, and quiets chatty third-party loggers so request logs stay
readable.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records for request tracing."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Imported lazily: the middleware module pulls in aiohttp
        from celcat_feed.api.middleware.correlation_id import get_request_id

        record.request_id = get_request_id()
        return True


def _build_formatter() -> logging.Formatter:
    """Colorized console formatter: only the level name is colored."""
    fmt = (
        "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s "
        "[%(request_id)s] %(name)s: %(message)s"
    )
    log_colors = {
        "DEBUG": "cyan",
        "INFO": "green",
        "WARNING": "yellow",
        "ERROR": "red",
        "CRITICAL": "bold_red",
    }
    return ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors)


def configure_feed_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for celcat_feed.

    Args:
        debug_mode: Whether to enable debug logging for celcat_feed modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        CELCAT_FEED_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CELCAT_FEED_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CELCAT_FEED_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CELCAT_FEED_LOG_LEVEL", "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug:
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    if not root_logger.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setLevel(root_level)
        handler.setFormatter(_build_formatter())
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "httpx": logging.WARNING,
        "httpcore": logging.WARNING,
        "asyncio": logging.WARNING,
        "redis": logging.WARNING,
        "celcat_feed": logging.DEBUG if final_debug else logging.INFO,
    }

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for celcat_feed modules")
    else:
        root_logger.info("Production logging configuration applied")

"""
Logging Configuration

Centralized logging configuration for the tracking core.
All modules should use this logger for consistent, structured output.

Usage:
    from orbit_tracker.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("tle_merged", norad_id=25544, source="network")
    logger.warning("cache_entry_stale", norad_id=25544, age_days=9.2)
    logger.error("propagation_failed", norad_id=25544, kind="decayed")
"""

import logging
import sys
from typing import Optional

import structlog

# Default logging format for the stdlib handlers that structlog writes through
LOG_FORMAT = "%(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_configured = False


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None,
                      json_output: bool = False) -> None:
    """
    Configure logging for the entire application.

    Parameters
    ----------
    level : int
        Logging level (e.g., logging.DEBUG, logging.INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console.
    json_output : bool
        Render events as JSON lines instead of the console format.
    """
    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )

    _configure_structlog(json_output)


def _configure_structlog(json_output: bool = False) -> None:
    global _configured

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
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
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Parameters
    ----------
    name : str
        Name of the logger (typically __name__)

    Returns
    -------
    structlog.stdlib.BoundLogger
        Structured logger bound to the stdlib logger of that name
    """
    if not _configured:
        # Route through stdlib logging; handlers are left to the application
        _configure_structlog()
    return structlog.get_logger(name)

"""
Centralized logging configuration for the gates service.

Usage:
    from gates.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Processing envelope %s", envelope.id)
"""

import logging
import sys
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "redis")


def setup_logging(level: str = "INFO", quiet: Iterable[str] = NOISY_LOGGERS) -> None:
    """
    Configure the root logger for the web process and the queue workers.

    Called once from the application lifespan. Unknown level names fall
    back to INFO.

    Args:
        level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        quiet: Logger names capped at WARNING.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    for name in quiet:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.
    """
    return logging.getLogger(name)

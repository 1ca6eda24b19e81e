"""Logging helpers.

Usage:
    from .logging_utils import get_logger

    logger = get_logger(__name__)
    logger.info("Search finished")
"""

import logging
import logging.config

from .config import LOGGING_CONFIG

_configured = False


def setup_logging():
    """Apply LOGGING_CONFIG once. Safe to call repeatedly."""
    global _configured
    if _configured:
        return
    logging.config.dictConfig(LOGGING_CONFIG)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)

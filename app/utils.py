"""
Shared helpers.
"""
import logging
import sys

from app.core import config


_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(
    logging.Formatter("%(asctime)s %(levelname)-8s %(name)s: %(message)s")
)


def get_logger(name: str) -> logging.Logger:
    """
    Get a module logger sharing the application's stream handler.

    Usage:
        log = get_logger(__name__)
        log.info("Something happened")
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(_handler)
        logger.setLevel(config.LOG_LEVEL)
        logger.propagate = False
    return logger

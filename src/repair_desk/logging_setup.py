"""Logging configuration for the repair_desk logger hierarchy."""

import logging
import sys
import threading
from typing import Optional

from repair_desk.config import Config

_LOGGER_NAME = "repair_desk"
_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_lock = threading.Lock()
_handler: Optional[logging.Handler] = None


def configure_logging(level: Optional[str] = None,
                      stream=None) -> logging.Logger:
    """Attach one stream handler to the ``repair_desk`` logger.

    Calling it again only updates the level. *level* defaults to
    ``Config.LOG_LEVEL``.
    """
    global _handler
    logger = logging.getLogger(_LOGGER_NAME)
    level_name = (level or Config.LOG_LEVEL).upper()
    numeric = logging.getLevelName(level_name)
    if not isinstance(numeric, int):
        numeric = logging.INFO
    with _lock:
        if _handler is None:
            _handler = logging.StreamHandler(stream or sys.stderr)
            _handler.setFormatter(logging.Formatter(_FORMAT))
            logger.addHandler(_handler)
        logger.setLevel(numeric)
    return logger


def reset_logging():
    """Remove the handler installed by configure_logging (used by tests)."""
    global _handler
    logger = logging.getLogger(_LOGGER_NAME)
    with _lock:
        if _handler is not None:
            logger.removeHandler(_handler)
            _handler = None
        logger.setLevel(logging.NOTSET)

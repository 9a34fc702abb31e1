from __future__ import annotations

import logging
import sys
from typing import Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
PACKAGE_LOGGER = "chat_relay"


def configure_logging(level: Union[int, str] = logging.INFO) -> logging.Logger:
    """Attach a single stdout handler to the package logger.

    Modules log through ``logging.getLogger(__name__)``; calling this more
    than once only updates the level.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level)

    # Avoid adding duplicate handlers on reload
    if not any(getattr(h, "_chat_relay", False) for h in logger.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        handler._chat_relay = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    for h in logger.handlers:
        h.setLevel(level)
    return logger

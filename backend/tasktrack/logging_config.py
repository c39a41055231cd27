from __future__ import annotations

import logging
from typing import Optional

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
HANDLER_NAME = "tasktrack-console"


def configure_logging(level: Optional[str] = None) -> None:
    """Install one stream handler on the package logger."""
    logger = logging.getLogger("tasktrack")
    logger.setLevel((level or settings.log_level).upper())
    if any(handler.get_name() == HANDLER_NAME for handler in logger.handlers):
        return
    handler = logging.StreamHandler()
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)

"""Logging setup shared by the engine and its host processes."""

import logging
from typing import Optional

from leavedesk.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger from ``settings.LOG_LEVEL`` (or *level*)."""
    resolved = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    # SQL echo is governed by the engine, keep the logger itself quiet
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

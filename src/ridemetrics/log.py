"""Logging bootstrap for the command line.

Library modules only create loggers; call :func:`setup_logging` once from
an entry point.
"""

from __future__ import annotations

import logging
import os

LOG_LEVEL_ENV = "RIDEMETRICS_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger.

    Args:
        level: Level name.  Falls back to ``$RIDEMETRICS_LOG_LEVEL``, then INFO.
    """
    log_level = (level or os.environ.get(LOG_LEVEL_ENV, "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format=LOG_FORMAT,
    )

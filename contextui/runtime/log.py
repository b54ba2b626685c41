"""File logging for the ``contextui`` logger tree.

The terminal belongs to the preview, so records go to a rotating file under
the platform log directory instead of stderr.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from platformdirs import user_log_dir

from .config import APP_NAME

LOG_LEVEL_ENV = "CONTEXTUI_LOG_LEVEL"
LOG_FILENAME = "contextui.log"
DEFAULT_LOG_PATH = Path(user_log_dir(APP_NAME, appauthor=False)) / LOG_FILENAME
LOG_FORMAT = "%(asctime)s %(threadName)s %(name)s %(levelname)s %(message)s"


def resolve_level(level: str | None = None) -> int:
    """Pick the level from ``CONTEXTUI_LOG_LEVEL``, then ``level``, then WARNING."""
    name = (os.environ.get(LOG_LEVEL_ENV) or level or "WARNING").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.WARNING


def configure_logging(level: str | None = None, log_path: Path | None = None) -> logging.Logger:
    """Attach one file handler to the package logger; safe to call repeatedly."""
    logger = logging.getLogger(APP_NAME)
    logger.setLevel(resolve_level(level))
    logger.propagate = False

    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    target = Path(log_path) if log_path is not None else DEFAULT_LOG_PATH
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.handlers.RotatingFileHandler(
            target,
            maxBytes=2 * 1024 * 1024,
            backupCount=2,
            encoding="utf-8",
        )
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


__all__ = ["DEFAULT_LOG_PATH", "LOG_LEVEL_ENV", "configure_logging", "resolve_level"]

"""livedash logging configuration.

All modules log through the stdlib `logging` tree rooted at `livedash`.
The level comes from `LIVEDASH_LOG_LEVEL` (default INFO); the optional
`LIVEDASH_LOG_FILE` adds a file handler next to the stderr one.
"""

from __future__ import annotations

import logging.config
import os
from typing import Any, Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure livedash logging.

    Args:
        level: Optional override for `LIVEDASH_LOG_LEVEL`.
    """
    if level:
        os.environ["LIVEDASH_LOG_LEVEL"] = level

    resolved = os.getenv("LIVEDASH_LOG_LEVEL", "INFO").upper()
    handlers: dict[str, dict[str, Any]] = {
        "stderr": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    }
    log_file = os.getenv("LIVEDASH_LOG_FILE")
    if log_file:
        handlers["file"] = {
            "class": "logging.handlers.WatchedFileHandler",
            "formatter": "default",
            "filename": os.path.expanduser(log_file),
        }

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": _FORMAT}},
            "handlers": handlers,
            "loggers": {
                "livedash": {"level": resolved, "handlers": list(handlers), "propagate": False},
                "uvicorn.error": {"level": resolved},
            },
        }
    )

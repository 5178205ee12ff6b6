from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
from typing import Optional


_DEFAULT_MAX_BYTES = 5 * 1024 * 1024
_DEFAULT_BACKUP_COUNT = 5
_ENV_LOG_PATH = "FBS_LOG_PATH"


def get_logger(
    name: str,
    log_path: Optional[str] = None,
    max_bytes: int = _DEFAULT_MAX_BYTES,
    backup_count: int = _DEFAULT_BACKUP_COUNT,
) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    resolved_path = log_path or os.environ.get(_ENV_LOG_PATH) or "fbs.log"
    resolved_path = os.path.abspath(resolved_path)

    for handler in logger.handlers:
        if isinstance(handler, RotatingFileHandler) and os.path.normcase(
            getattr(handler, "baseFilename", "")
        ) == os.path.normcase(resolved_path):
            return logger

    parent = os.path.dirname(resolved_path)
    if parent:
        os.makedirs(parent, exist_ok=True)

    handler = RotatingFileHandler(
        resolved_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    return logger


class LogSink:
    """
    The one logging seam the pipeline talks to.

    Components never reach for a module-level logger of their own; they get a
    sink at construction and call record(). Where the messages end up is the
    logger's business.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger("fbs")

    def record(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, message)

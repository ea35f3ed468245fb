from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from core.settings import LOG_LEVEL, SYNC_LOG_PATH


def get_sync_logger(log_path: Path = SYNC_LOG_PATH) -> logging.Logger:
    logger = logging.getLogger("shopsync.sync")
    if not logger.handlers:
        Path(log_path).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
        formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, LOG_LEVEL, logging.INFO))
    return logger


__all__ = ["get_sync_logger"]

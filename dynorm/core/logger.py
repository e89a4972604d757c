from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


def setup_logging(
    log_dir: str = "logs",
    *,
    level: str = "INFO",
    max_bytes: int = 1_000_000,
    backup_count: int = 5,
    config: Optional[object] = None,
) -> logging.Logger:
    """
    Configure the shared "dynorm" logger (rotating file + console).

    `config` may be a LoggingConfig; its values override the keyword arguments.
    """
    if config is not None:
        log_dir = str(getattr(config, "log_dir", log_dir))
        level = str(getattr(config, "level", level))
        max_bytes = int(getattr(config, "max_bytes", max_bytes))
        backup_count = int(getattr(config, "backup_count", backup_count))
    os.makedirs(log_dir, exist_ok=True)

    logger = logging.getLogger("dynorm")
    logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    logger.propagate = False

    if not any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        text_path = os.path.join(log_dir, "dynorm.log")
        h = RotatingFileHandler(text_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        fmt = logging.Formatter("%(asctime)s | %(levelname)s | %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)

    if not any(isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler) for h in logger.handlers):
        sh = logging.StreamHandler()
        sh.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(sh)

    return logger

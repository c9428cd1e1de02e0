from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional

from deepdex_bot.core.logging import ROOT_LOGGER

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_app_logger(logger_name: str = ROOT_LOGGER,
                     *,
                     log_level: str = "INFO",
                     log_file: Optional[str] = None,
                     log_max_bytes: Optional[int] = None,
                     log_backup_count: Optional[int] = None,
                     disable_console_logging: Optional[bool] = None) -> Dict[str, Any]:
    """Attach console and rotating file handlers; environment variables win over arguments."""
    level_str = os.environ.get("LOG_LEVEL", log_level or "INFO")
    level = getattr(logging, level_str.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    file_path = os.environ.get("LOG_FILE", log_file or f"logs/{logger_name}.log")
    d = os.path.dirname(file_path)
    if d:
        os.makedirs(d, exist_ok=True)

    max_bytes = 10 * 1024 * 1024 if log_max_bytes is None else int(log_max_bytes)
    backup_count = 5 if log_backup_count is None else int(log_backup_count)
    try:
        max_bytes = int(os.environ.get("LOG_MAX_BYTES", str(max_bytes)))
    except ValueError:
        pass
    try:
        backup_count = int(os.environ.get("LOG_BACKUP_COUNT", str(backup_count)))
    except ValueError:
        pass

    env_disable = os.environ.get("DISABLE_CONSOLE_LOGGING")
    if env_disable is not None:
        disable_console = env_disable == "1"
    else:
        disable_console = bool(disable_console_logging) if disable_console_logging is not None else False

    logger = logging.getLogger(logger_name)
    logger.setLevel(level)
    fmt = logging.Formatter(LOG_FORMAT)

    has_file = False
    has_console = False
    for h in list(logger.handlers):
        if isinstance(h, RotatingFileHandler):
            has_file = True
            h.setFormatter(fmt)
        elif isinstance(h, logging.StreamHandler):
            if disable_console:
                logger.removeHandler(h)
            else:
                has_console = True
                h.setFormatter(fmt)

    if not has_console and not disable_console:
        sh = logging.StreamHandler()
        sh.setFormatter(fmt)
        logger.addHandler(sh)

    if not has_file:
        fh = RotatingFileHandler(file_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
        fh.setLevel(level)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    # Keep bot output out of the root logger
    logger.propagate = False

    return {
        "file": file_path,
        "level": level_str,
        "max_bytes": max_bytes,
        "backup_count": backup_count,
        "disable_console": disable_console,
    }

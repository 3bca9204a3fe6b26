"""Logging for the donation services.

Everything logs under the "donatehub" logger. Only entry points call
setup_logger(); library modules call get_logger() and inherit its handlers.
LOG_LEVEL and LOG_FILE come from the environment when not passed in.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "donatehub"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _level_from_env(default: int = logging.INFO) -> int:
    raw = os.getenv("LOG_LEVEL", "").strip().upper()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw)
    return level if isinstance(level, int) else default


def setup_logger(
    name: str = LOGGER_NAME,
    level: Optional[int] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """
    Attach stderr (and optionally file) handlers once and return the logger.

    Args:
        name: Logger name; children like "donatehub.cli" propagate to it.
        level: Logging level. None reads LOG_LEVEL, falling back to INFO.
        log_file: Extra file destination. None reads LOG_FILE; unset means stderr only.
    """
    log = logging.getLogger(name)
    if log.handlers:
        return log

    log.setLevel(level if level is not None else _level_from_env())
    fmt = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    h = logging.StreamHandler(sys.stderr)
    h.setFormatter(fmt)
    log.addHandler(h)

    log_file = log_file or os.getenv("LOG_FILE", "").strip() or None
    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(fmt)
        log.addHandler(fh)

    return log


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """Return the service logger; handlers exist only after setup_logger()."""
    return logging.getLogger(name)

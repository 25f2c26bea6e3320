"""Logging setup for Karatapp.

Every module grabs ``logger = get_logger(__name__)`` at import time; records
propagate to the ``karatapp`` root logger configured once by ``setup_logger``.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

ROOT_LOGGER = "karatapp"
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _coerce_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def setup_logger(
    name: str = ROOT_LOGGER,
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Configure a logger (the ``karatapp`` root by default) and return it.

    Args:
        name: Logger name; child loggers of it share its handlers.
        level: Logging level, as int or name ("DEBUG", "info", ...).
        log_file: Optional path to a log file. If None, logs to stderr only.

    Returns:
        The configured logger. Calling again only updates the level.
    """
    log = logging.getLogger(name or ROOT_LOGGER)
    log.setLevel(_coerce_level(level))
    if log.handlers:
        return log

    fmt = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(fmt)
    log.addHandler(stream)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(fmt)
        log.addHandler(file_handler)

    return log


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return the root logger, or a child of it for a module name."""
    if not name or name == ROOT_LOGGER:
        return logging.getLogger(ROOT_LOGGER)
    if name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

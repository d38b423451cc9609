"""Centralized logging configuration for goalsmith."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from app.core.config import get_settings

ROOT_LOGGER = "goalsmith"

# Provider SDKs log every HTTP request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")

_configured = False


def setup_logging(level: str | None = None, log_file: str | None = None) -> logging.Logger:
    """Configure the ``goalsmith`` logger with console + rotating file handlers.

    *level* and *log_file* override the settings; an empty log file path
    disables the file handler.  Idempotent.
    """
    global _configured
    logger = logging.getLogger(ROOT_LOGGER)
    if _configured:
        return logger

    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    file_path = settings.log_file if log_file is None else log_file

    logger.setLevel(getattr(logging, level_name, logging.INFO))
    logger.propagate = False

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(fmt)
    logger.addHandler(console)

    # Rotating, 5 MB x 3 backups
    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(path, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True
    logger.info("Logging initialised (level=%s, file=%s)", level_name, file_path or "-")
    return logger


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Child of the ``goalsmith`` logger: ``get_logger("core.orchestrator")``."""
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

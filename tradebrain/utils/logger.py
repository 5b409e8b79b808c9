# tradebrain/utils/logger.py
import logging
import os
import time
from logging.handlers import RotatingFileHandler
from typing import Dict, Optional

ROOT_LOGGER = "tradebrain"

# library loggers that drown out decision logs at INFO
_NOISY_LIBS = ("aiohttp", "asyncio", "httpx", "telegram")


class UTCFormatter(logging.Formatter):
    """Timestamps in UTC, matching signal and trade-record times."""

    converter = time.gmtime

    def formatTime(self, record, datefmt=None):
        return super().formatTime(record, datefmt) + "Z"


def _settings(overrides: Optional[Dict] = None) -> Dict:
    # read at call time so values loaded from config.env are honoured
    overrides = overrides or {}
    return {
        "level": str(overrides.get("LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")).upper(),
        "log_file": overrides.get("LOG_FILE", os.getenv("LOG_FILE", "logs/tradebrain.log")),
        "max_mb": int(overrides.get("LOG_MAX_MB") or os.getenv("LOG_MAX_MB", "5")),
        "backups": int(overrides.get("LOG_BACKUPS") or os.getenv("LOG_BACKUPS", "5")),
    }


def setup_logger(name: str = ROOT_LOGGER,
                 level: str | int | None = None,
                 log_file: str | None = "",
                 to_console: bool = True,
                 config: Optional[Dict] = None) -> logging.Logger:
    """
    Create/get a logger with console and rotating-file handlers.

    Module loggers live under ``tradebrain.*``, so configuring the package
    root once covers the whole service.  Explicit ``level``/``log_file``
    win over ``config`` (LOG_* keys), which wins over the environment.
    Pass ``log_file=None`` to skip the file handler.  Re-using the same
    name returns the same configured logger.
    """
    logger = logging.getLogger(name)
    if logger.handlers:  # already configured
        return logger

    settings = _settings(config)
    if level is None:
        level = settings["level"]
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if log_file == "":
        log_file = settings["log_file"]
    logger.setLevel(level)

    formatter = UTCFormatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=settings["max_mb"] * 1024 * 1024,
            backupCount=settings["backups"],
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(level)
        logger.addHandler(file_handler)

    if to_console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(formatter)
        stream_handler.setLevel(level)
        logger.addHandler(stream_handler)

    for lib in _NOISY_LIBS:
        logging.getLogger(lib).setLevel(logging.WARNING)

    return logger


def get_logger(component: str) -> logging.Logger:
    """Child of the package logger, e.g. ``tradebrain.scheduler``."""
    if component == ROOT_LOGGER or component.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(component)
    return logging.getLogger(f"{ROOT_LOGGER}.{component}")

"""
Logging setup for the ai-foundry API process.

The API and the agent runs it drives write to one rotating backend log
and to a colored console. Only the named loggers get handlers; they stop
propagating, so output from unrelated libraries stays out of the log.

Usage:
    from foundry.core.logging_config import setup_backend_logging

    setup_backend_logging("DEBUG")
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, Optional

import colorlog

from ..config import LOGS_DIR
from .constants import (
    COLORLOG_COLORS,
    LOG_BACKUP_COUNT,
    LOG_FILE_BACKEND,
    LOG_FORMAT_COLORED,
    LOG_FORMAT_FILE,
    LOG_MAX_BYTES,
)

BACKEND_LOGGERS = (
    "foundry",
    "uvicorn",
    "uvicorn.error",
    "uvicorn.access",
    "fastapi",
)


def parse_level(name: str) -> int:
    """Level constant for a name such as "debug"; unknown names mean INFO."""
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def build_handlers(level: int, log_file: Path) -> list[logging.Handler]:
    """
    Rotating file handler (10 MB x 5) plus a colored stdout handler.

    The log directory is created if needed.
    """
    log_file.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT_FILE))

    console_handler = colorlog.StreamHandler(sys.stdout)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(LOG_FORMAT_COLORED, log_colors=COLORLOG_COLORS)
    )

    handlers: list[logging.Handler] = [file_handler, console_handler]
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def setup_backend_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    loggers: Iterable[str] = BACKEND_LOGGERS,
) -> None:
    """
    Attach the backend handlers to each named logger.

    Existing handlers on those loggers are replaced, so calling this
    again (uvicorn reload) does not duplicate output.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Log file path. Defaults to logs/backend.log.
        loggers: Logger names to configure.
    """
    level = parse_level(log_level)
    handlers = build_handlers(level, log_file or LOGS_DIR / LOG_FILE_BACKEND)

    for name in loggers:
        log = logging.getLogger(name)
        for old in list(log.handlers):
            log.removeHandler(old)
            old.close()
        for handler in handlers:
            log.addHandler(handler)
        log.setLevel(level)
        log.propagate = False

"""Logging helpers for vendorsum runs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys
from typing import Optional, Union

LOGGER_NAME = "vendorsum"
MAX_BYTES = 5 * 1024 * 1024  # 5 MB per log segment
BACKUP_COUNT = 3
TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def setup_logging(
    level: Union[str, int] = logging.WARNING,
    log_file: Optional[Path] = None,
    structured: bool = False,
) -> Optional[Path]:
    """Configure the ``vendorsum`` logger.

    Args:
        level: Logging level (string name or int constant).
        log_file: Optional path for a rotating log file.
        structured: Write JSON lines to ``log_file`` instead of plain text.

    Returns:
        Path to the log file, or None when only stderr is used (including
        when ``log_file`` cannot be opened).
    """
    resolved_level = _resolve_level(level)
    text_formatter = logging.Formatter(TEXT_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(text_formatter)

    logger = logging.getLogger(LOGGER_NAME)
    _reset_handlers(logger)
    logger.setLevel(resolved_level)
    logger.addHandler(console_handler)

    file_handler = _open_file_handler(log_file) if log_file is not None else None
    if file_handler is not None:
        file_handler.setFormatter(JSONFormatter() if structured else text_formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return log_file if file_handler is not None else None


def _open_file_handler(log_file: Path) -> Optional[RotatingFileHandler]:
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        return RotatingFileHandler(
            log_file,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError as exc:
        print(
            f"[config] Unable to write logs to '{log_file}' ({exc.strerror or exc}); "
            "logging to stderr only.",
            file=sys.stderr,
        )
        return None


def _resolve_level(level: Union[str, int]) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.WARNING)
    return int(level)


def _reset_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


__all__ = ["setup_logging", "JSONFormatter", "LOGGER_NAME"]

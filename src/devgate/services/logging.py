"""Logging setup shared by the CLI and embedding applications."""

from __future__ import annotations

import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from devgate.services.settings import Settings

__all__ = ["setup_logging", "JsonFormatter"]

_ROOT_LOGGER = "devgate"


def _json_payload(record: logging.LogRecord, timestamp: str | None) -> str:
    base = {
        "level": record.levelname,
        "logger": record.name,
        "msg": record.getMessage(),
    }
    if timestamp:
        base["time"] = timestamp
    extra = getattr(record, "extra", None)
    if isinstance(extra, dict):
        base.update(extra)
    if record.exc_info:
        base["exc"] = logging.Formatter().formatException(record.exc_info)
    return json.dumps(base, ensure_ascii=False)


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        return _json_payload(record, self.formatTime(record))


def setup_logging(
    settings: Settings,
    *,
    level: Optional[str] = None,
    max_bytes: int = 2_000_000,
    backup_count: int = 3,
) -> Path:
    """Attach a rotating JSON file handler to the ``devgate`` logger."""

    logs_dir = settings.logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)
    logfile = logs_dir / "devgate.log"

    resolved_level = (level or settings.log_level or "INFO").upper()
    numeric_level = getattr(logging, resolved_level, logging.INFO)
    logger = logging.getLogger(_ROOT_LOGGER)
    logger.setLevel(numeric_level)
    for handler in list(logger.handlers):
        if isinstance(handler, RotatingFileHandler):
            logger.removeHandler(handler)
            handler.close()

    handler = RotatingFileHandler(logfile, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setLevel(numeric_level)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logfile

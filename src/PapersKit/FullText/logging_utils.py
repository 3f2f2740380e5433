"""Structured logging helpers shared across FullText components."""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

__all__ = ["JSONFormatter", "mask_sensitive_data", "setup_logging"]

ROOT_LOGGER_NAME = "PapersKit.FullText"

_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "zotero-api-key", "x-api-key", "token"}
_QUERY_SECRET = re.compile(r"(api_key|key)=([^&\s]+)", re.IGNORECASE)


def _mask_value(value: object, key_hint: Optional[str] = None) -> object:
    if key_hint in _SENSITIVE_KEYS and value:
        return "***masked***"
    if isinstance(value, dict):
        return {k: _mask_value(v, str(k).lower()) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_mask_value(item, key_hint) for item in value]
    if isinstance(value, str):
        return _QUERY_SECRET.sub(r"\1=***masked***", value)
    return value


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with API keys masked, including in URLs."""
    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "work_id": getattr(record, "work_id", None),
            "item_key": getattr(record, "item_key", None),
        }
        if hasattr(record, "extra_fields") and isinstance(record.extra_fields, dict):
            payload.update(record.extra_fields)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload))


def setup_logging(
    *,
    level: str = "INFO",
    log_file: Optional[Path] = None,
    max_log_size_mb: int = 20,
    propagate: bool = False,
) -> logging.Logger:
    """Configure FullText logging: stderr console plus an optional JSONL file.

    Console output goes to stderr so stdout stays free for CLI results and
    the MCP stdio transport. Calling this twice replaces the handlers it
    installed earlier.
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_paperskit_managed", False):
            logger.removeHandler(handler)
            if getattr(handler, "stream", None) not in (sys.stdout, sys.stderr):
                handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._paperskit_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(max_log_size_mb * 1024 * 1024),
            backupCount=5,
        )
        file_handler.setFormatter(JSONFormatter())
        file_handler._paperskit_managed = True  # type: ignore[attr-defined]
        logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger

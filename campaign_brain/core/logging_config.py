"""
Logging configuration for campaign_brain.

Modules log through `logging.getLogger(__name__)` and attach structured
fields with `extra={...}` (idempotency_key, account_id, state, error_code,
duration_ms). This module only decides how records are rendered:

- production: one JSON object per line on stdout
- anything else: readable text on stderr
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Optional

# LogRecord attributes that are not user-supplied extras
_STANDARD_FIELDS = frozenset({
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "exc_info", "exc_text", "stack_info",
    "lineno", "funcName", "created", "msecs", "relativeCreated",
    "thread", "threadName", "processName", "process", "message",
    "taskName", "asctime",
})


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        k: v
        for k, v in record.__dict__.items()
        if k not in _STANDARD_FIELDS and not k.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    Single-line JSON:
        {"timestamp": "...", "level": "INFO", "logger": "campaign_brain.core.orchestrator",
         "message": "brain run finished", "idempotency_key": "think-...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in _extras(record).items():
            try:
                json.dumps(value)
                entry[key] = value
            except (TypeError, ValueError):
                entry[key] = str(value)

        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """[HH:MM:SS] LEVEL logger: message [key=value ...]"""

    _EXTRA_KEYS = (
        "idempotency_key", "account_id", "state", "source",
        "error_code", "duration_ms", "error",
    )

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, "%H:%M:%S")
        extras = [
            f"{key}={getattr(record, key)}"
            for key in self._EXTRA_KEYS
            if getattr(record, key, None) is not None
        ]
        extra_str = f" [{' '.join(extras)}]" if extras else ""
        formatted = (
            f"[{timestamp}] {record.levelname:<8} {record.name}: "
            f"{record.getMessage()}{extra_str}"
        )
        if record.exc_info and record.exc_info[1]:
            formatted += f"\n{self.formatException(record.exc_info)}"
        return formatted


def configure_logging(env: Optional[str] = None, level: int | str = logging.INFO) -> None:
    """
    Configure the root logger.

    Args:
        env: Environment name; read from BRAIN_ENV when omitted (default "development").
        level: Log level name or number.
    """
    env = (env or os.environ.get("BRAIN_ENV", "development")).lower().strip()

    root_logger = logging.getLogger()
    root_logger.setLevel(level if isinstance(level, int) else level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if env == "production":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(TextFormatter())
    root_logger.addHandler(handler)

    for noisy in ("urllib3", "httpx", "httpcore", "supabase", "postgrest"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

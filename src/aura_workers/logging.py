"""Structured logging for the achievement workers.

Records carry their domain context as ``aura_*`` extras. The user, detector
and job a record is about are lifted to top-level keys so that one user's
pass can be followed across modules; everything else lands under
``context`` with the prefix stripped.

AURA_LOG_FORMAT selects "json" (default) or "text".
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

from .errors import classify_error

EXTRA_PREFIX = "aura_"

# aura_<key> extras promoted to top-level fields, in output order
CORRELATION_KEYS: tuple[str, ...] = ("user_id", "detector", "job_id")


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """All ``aura_*`` extras on a record, keyed without the prefix."""
    return {
        key[len(EXTRA_PREFIX):]: value
        for key, value in record.__dict__.items()
        if key.startswith(EXTRA_PREFIX)
    }


def _error_class(record: logging.LogRecord, context: dict[str, Any]) -> str | None:
    if "error_class" in context:
        return context.pop("error_class")
    if record.exc_info and record.exc_info[1] is not None:
        return classify_error(record.exc_info[1])
    return None


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        context = record_context(record)
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CORRELATION_KEYS:
            if context.get(key) is not None:
                entry[key] = context.pop(key)

        error_class = _error_class(record, context)
        if error_class is not None:
            entry["error_class"] = error_class
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        if context:
            entry["context"] = context
        return json.dumps(entry, default=str)


class ContextTextFormatter(logging.Formatter):
    """Plain text with the correlation keys appended as ``key=value``."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = record_context(record)
        tags = [f"{key}={context[key]}" for key in CORRELATION_KEYS if context.get(key) is not None]
        return f"{line} [{' '.join(tags)}]" if tags else line


def setup_logging(log_format: str, level: int = logging.INFO) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == "json" else ContextTextFormatter())
    root.addHandler(handler)

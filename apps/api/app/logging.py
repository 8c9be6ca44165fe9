from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings

MAX_ERROR_LENGTH = 500

# Structured keys the CRM passes through ``extra=``; anything else stays out of the JSON line.
STRUCTURED_FIELDS = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "form_module",
        "action",
        "record_id",
        "lead_id",
        "project_id",
        "customer_id",
        "user_id",
        "level",
        "detail",
        "event_name",
        "status",
        "error",
    }
)

_base_factory = logging.getLogRecordFactory()
_handler: logging.Handler | None = None


def _stamp_correlation_id(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _base_factory(*args, **kwargs)
    record.correlation_id = get_correlation_id()
    return record


def structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields = {key: value for key, value in vars(record).items() if key in STRUCTURED_FIELDS}
    if isinstance(fields.get("error"), str):
        fields["error"] = fields["error"][:MAX_ERROR_LENGTH]
    if record.exc_info:
        fields["exception"] = logging.Formatter().formatException(record.exc_info)
    return fields


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, correlation id and whitelisted fields."""

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "correlation_id": getattr(record, "correlation_id", None),
                "fields": structured_fields(record),
            },
            default=str,
        )


def configure_logging(level: str | None = None) -> logging.Handler:
    global _handler
    root = logging.getLogger()
    resolved = logging.getLevelName((level or get_settings().log_level).upper())
    if not isinstance(resolved, int):
        resolved = logging.INFO

    if _handler is None:
        _handler = logging.StreamHandler(stream=sys.stdout)
        _handler.setFormatter(JsonLogFormatter())
        logging.setLogRecordFactory(_stamp_correlation_id)
        root.handlers.clear()
        root.addHandler(_handler)

    _handler.setLevel(resolved)
    root.setLevel(resolved)
    return _handler

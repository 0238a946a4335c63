from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from app.context import get_correlation_id
from app.core.config import get_settings


# promoted to the top level of every record so log queries can filter by tenant
_TENANT_FIELDS = ("organization_id", "user_id")
_FIELD_NAMES = frozenset(
    {
        "method",
        "path",
        "status_code",
        "duration_ms",
        "procedure",
        "outcome",
        "error_code",
        "event_name",
        "identity_operation",
        "error",
    }
)
_MAX_ERROR_LENGTH = 500

_default_record_factory = logging.getLogRecordFactory()


def _record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
    record = _default_record_factory(*args, **kwargs)
    if not getattr(record, "correlation_id", None):
        record.correlation_id = get_correlation_id()
    return record


class JsonLogFormatter(logging.Formatter):
    """One JSON object per line: fixed envelope, tenant, then whitelisted ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "service": get_settings().app_name,
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "correlation_id": getattr(record, "correlation_id", None),
        }
        for name in _TENANT_FIELDS:
            payload[name] = getattr(record, name, None)

        fields = {name: value for name, value in record.__dict__.items() if name in _FIELD_NAMES}
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:_MAX_ERROR_LENGTH]
        if record.exc_info:
            fields["exception"] = self.formatException(record.exc_info)

        payload["fields"] = fields
        return json.dumps(payload, default=str)


def configure_logging() -> None:
    root_logger = logging.getLogger()
    if getattr(root_logger, "_teamcrm_configured", False):
        return

    level = logging.getLevelName(get_settings().log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(JsonLogFormatter())

    root_logger.handlers.clear()
    root_logger.setLevel(level)
    logging.setLogRecordFactory(_record_factory)
    root_logger.addHandler(handler)
    root_logger._teamcrm_configured = True  # type: ignore[attr-defined]

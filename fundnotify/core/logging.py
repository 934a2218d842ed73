from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from fundnotify.core.config import get_settings


# Structured fields callers may attach through `extra=` on log calls.
_EXTRA_FIELDS = (
    "request_id",
    "tenant_id",
    "notification_id",
    "channel",
    "status",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "cycle",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(level: str | None = None) -> None:
    # Emit one JSON object per line so API and worker logs share a parseable shape.
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        handlers=[handler],
        force=True,
    )

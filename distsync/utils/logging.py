"""Structured logging setup for distsync."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from distsync.core.config import get_settings

# Structured fields emitted by the lock and semaphore backends
_EXTRA_FIELDS = [
    "resource",
    "owner",
    "permits",
    "status",
    "waited_seconds",
    "attempts",
]


class JsonFormatter(logging.Formatter):
    def __init__(self, service_name: str = "distsync", include_timestamp: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        data = {
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "service": self.service_name,
        }
        if self.include_timestamp:
            data["timestamp"] = (
                datetime.fromtimestamp(record.created, tz=timezone.utc)
                .isoformat()
                .replace("+00:00", "Z")
            )
        for attr in _EXTRA_FIELDS:
            if hasattr(record, attr):
                data[attr] = getattr(record, attr)
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return json.dumps(data, ensure_ascii=False, default=str)


def setup_logging(level: Optional[str] = None, json_format: Optional[bool] = None) -> None:
    settings = get_settings()
    level = level or settings.LOG_LEVEL
    json_format = settings.LOG_JSON if json_format is None else json_format

    root = logging.getLogger()
    root.setLevel(level.upper())
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
    root.handlers = [handler]

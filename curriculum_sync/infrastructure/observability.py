"""Structured Logging — JSON formatter and setup for sync observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (course_id, op_type, entity_id, phase, error_code, ...) surfaced when present
    - JSON format for log shipping, human-readable for local development

Design Decisions:
    - JSONFormatter on stdlib logging: no extra dependency, full control over keys
    - setup_logging called once by the embedding application (see editor.py)
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_KEYS = (
    "course_id", "op_type", "entity_id", "phase",
    "error_code", "attempt", "status_code",
)


class JSONFormatter(logging.Formatter):
    """Format logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _EXTRA_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json") -> logging.Handler:
    """Attach one stream handler to the root logger. Returns the handler."""
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler

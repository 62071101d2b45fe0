"""Structured JSON logging for Procurement-Core."""

import logging
import json
import sys
from datetime import datetime, timezone

# Record attributes passed through ``extra=`` that are copied into the entry
CONTEXT_FIELDS = ("code", "entity_type", "entity_id", "user_id", "path")


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Send the ``procurement_core`` logger tree to stdout as JSON lines.

    Safe to call more than once; the handler is only attached the first time.
    """
    root = logging.getLogger("procurement_core")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if not any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        root.addHandler(handler)
    root.propagate = False

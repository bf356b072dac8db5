"""Structured Logging — JSON formatter and setup for production observability.

Invariants:
    - All logs include timestamp, level, logger name, and message
    - Extra fields (request_id, user_id, swap_id, edge_id, error_code, action)
      surfaced when present
    - JSON format in production, human-readable in development

Design Decisions:
    - Standard logging with a JSON formatter; extras passed through `extra=`
    - setup_logging replaces its own handler, so repeated lifespans (tests) do not
      duplicate output
    - Driver and access loggers capped at WARNING; RequestContextMiddleware logs requests
"""

import json
import logging
from datetime import datetime, timezone

_EXTRA_KEYS = (
    "request_id", "user_id", "swap_id", "source_swap_id", "target_swap_id",
    "edge_id", "error_code", "action", "path", "execution_ms",
)


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for structured logging in production."""

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
                log[key] = str(val) if not isinstance(val, (int, float)) else val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False)


_HANDLER_NAME = "swap_targeting"
_QUIET_LOGGERS = ("sqlalchemy.engine", "uvicorn.access", "aiosqlite", "asyncpg")


def setup_logging(level: str = "INFO", fmt: str = "json"):
    """Configure root logging for the application."""
    for existing in list(logging.root.handlers):
        if existing.get_name() == _HANDLER_NAME:
            logging.root.removeHandler(existing)
    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s - %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

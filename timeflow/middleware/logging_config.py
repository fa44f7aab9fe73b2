"""
Timeflow Process Tracking
Structured logging configuration.

Every record emitted while a request is active is stamped with the request id
and the caller's user id, so a rejected dependency edge or a lock timeout
logged deep in a service can be traced back to the request that caused it.

Format selection (LOG_FORMAT overrides):
    production              → JSON lines
    development / testing   → readable single line
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_app_context, has_request_context

# Context fields copied from the record into JSON output
_CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "process_id",
    "activity_id",
)


class RequestContextFilter(logging.Filter):
    """Attach request id and caller id to records logged inside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context() and has_app_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "user_id", None) is None:
                caller = getattr(g, "caller", None)
                record.user_id = caller.user_id if caller is not None else None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``HH:MM:SS LEVEL logger: message [req user]`` for local work."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = []
        request_id = getattr(record, "request_id", None)
        if request_id:
            tags.append(f"req={request_id}")
        user_id = getattr(record, "user_id", None)
        if user_id is not None:
            tags.append(f"user={user_id}")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            tags.append(f"{duration:.0f}ms")
        suffix = f" [{' '.join(tags)}]" if tags else ""
        line = f"{ts} {record.levelname:<7} {record.name}: {record.getMessage()}{suffix}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    Level comes from the LOG_LEVEL env var, then ``app.config["LOG_LEVEL"]``,
    then INFO in production and DEBUG elsewhere.
    """
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = os.getenv("LOG_LEVEL") or app.config.get("LOG_LEVEL") or ("INFO" if production else "DEBUG")
    level = getattr(logging, str(level_name).upper(), logging.INFO)

    fmt = (os.getenv("LOG_FORMAT") or ("json" if production else "readable")).lower()
    formatter = JSONFormatter() if fmt == "json" else ReadableFormatter()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    # replace rather than append so repeated create_app() calls don't duplicate output
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("werkzeug", "sqlalchemy.engine", "alembic"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)
    if not testing:
        app.logger.info("Logging configured: level=%s format=%s", logging.getLevelName(level), fmt)

"""
Logging setup for SourceTrack.

One stderr handler on the root logger:
    production   JSONFormatter, one object per line, INFO by default
    development  ReadableFormatter with ANSI level colours, DEBUG by default
    testing      ReadableFormatter, no startup banner

Records emitted while a request is active are stamped with the request id
and the caller's user/company ids (RequestContextFilter), so a service line
such as "Stage status changed" can be joined to the access line written by
the timing middleware.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Attributes copied from ``extra=`` into JSON output when present.
CONTEXT_FIELDS = (
    "request_id",
    "user_id",
    "company_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

_QUIET_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic")


class RequestContextFilter(logging.Filter):
    """Stamp request_id / user_id / company_id from flask.g onto records."""

    _SOURCES = {
        "request_id": "request_id",
        "user_id": "jwt_user_id",
        "company_id": "jwt_company_id",
    }

    def filter(self, record):
        if not has_request_context():
            return True
        for attr, g_name in self._SOURCES.items():
            if getattr(record, attr, None) is None:
                setattr(record, attr, g.get(g_name))
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record):
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:04:51 INFO     [a1b2c3 u7/c2] sourcetrack.services.stage_service: ...``"""

    LEVEL_COLOURS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        colour = self.LEVEL_COLOURS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")

        ctx = []
        rid = getattr(record, "request_id", None)
        if rid:
            ctx.append(rid)
        user_id = getattr(record, "user_id", None)
        if user_id is not None:
            ctx.append(f"u{user_id}/c{getattr(record, 'company_id', None) or '-'}")
        ctx_str = f" [{' '.join(ctx)}]" if ctx else ""

        line = f"{colour}{stamp} {record.levelname:<8}{self.RESET}{ctx_str} {record.name}: {record.getMessage()}"
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            line += f" ({duration:.0f}ms)"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install the root handler. Safe to call once per ``create_app``."""
    testing = app.config.get("TESTING", False)
    production = not app.config.get("DEBUG", False) and not testing

    level_name = (
        app.config.get("LOG_LEVEL")
        or os.getenv("LOG_LEVEL")
        or ("INFO" if production else "DEBUG")
    ).upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if production else ReadableFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    # create_app runs repeatedly under pytest
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info(
            "Logging ready level=%s format=%s", level_name, "json" if production else "readable"
        )

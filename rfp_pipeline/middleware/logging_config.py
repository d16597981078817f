"""
Logging setup for the RFP pipeline.

Records emitted while a request is being served are stamped with the
request id and the acting user, so a transition logged deep inside a
service lines up with the timing line written for the same request.

Output format follows the environment: colored one-liners for local work,
one JSON object per line everywhere else. ``LOG_LEVEL`` overrides the level.
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# Context attributes copied from the LogRecord when present
CONTEXT_FIELDS = (
    "request_id",
    "actor",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "rfp_request_id",
    "action",
    "decision_id",
    "lead_id",
    "quotation_number",
    "work_order_number",
    "error_code",
)

_QUIET_LOGGERS = ("werkzeug", "sqlalchemy.engine", "alembic.runtime.migration")


def _context_of(record: logging.LogRecord) -> dict:
    return {
        key: getattr(record, key)
        for key in CONTEXT_FIELDS
        if getattr(record, key, None) is not None
    }


class RequestContextFilter(logging.Filter):
    """Fill ``request_id`` / ``actor`` from ``flask.g`` unless the caller set them."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            if getattr(record, "request_id", None) is None:
                record.request_id = getattr(g, "request_id", None)
            if getattr(record, "actor", None) is None:
                actor = getattr(g, "actor", None)
                record.actor = actor.display_name if actor else None
        return True


class JSONFormatter(logging.Formatter):
    """One JSON document per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update(_context_of(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Short colored lines for a developer terminal."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, "")
        stamp = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        tags = []
        if getattr(record, "request_id", None):
            tags.append(record.request_id)
        if getattr(record, "actor", None):
            tags.append(record.actor)
        if getattr(record, "rfp_request_id", None) is not None:
            tags.append(f"rfp={record.rfp_request_id}")
        if getattr(record, "duration_ms", None) is not None:
            tags.append(f"{record.duration_ms:.0f}ms")
        suffix = f" [{' | '.join(tags)}]" if tags else ""
        line = (
            f"{color}{stamp} {record.levelname:<8}{self.RESET} "
            f"{record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(app):
    """Install a single stderr handler on the root logger for ``app``.

    DEBUG or TESTING apps get ReadableFormatter at DEBUG; anything else gets
    JSONFormatter at INFO. Calling it again replaces the handler, which keeps
    repeated ``create_app`` calls in tests from duplicating output.
    """
    testing = app.config.get("TESTING", False)
    structured = not (app.config.get("DEBUG", False) or testing)

    level_name = os.getenv("LOG_LEVEL", "INFO" if structured else "DEBUG").upper()
    level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else ReadableFormatter())
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not testing:
        app.logger.info(
            "Logging ready (level=%s, format=%s)",
            level_name, "json" if structured else "readable",
        )

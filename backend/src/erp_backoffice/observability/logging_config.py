"""Structured logging for the back office API.

Every record leaving the root handler carries the request ID and whatever
tenant/company/user identifiers were bound for the request in flight, so a
single log line can be traced back to the caller that produced it.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from .request_context import get_log_context, get_request_id

CONTEXT_FIELDS = ("tenant_id", "company_id", "user_id")

TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(request_id)s] %(name)s: %(message)s"

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "celery.redirected")


class RequestIDFilter(logging.Filter):
    """Stamp records with the request ID and the bound log context.

    Values passed explicitly through ``extra=`` win over bound ones.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        for key, value in get_log_context().items():
            record.__dict__.setdefault(key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "request_id": getattr(record, "request_id", "no-request-id"),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        entry.update(
            (field, str(record.__dict__[field]))
            for field in CONTEXT_FIELDS
            if record.__dict__.get(field) is not None
        )

        if record.exc_info:
            entry["error"] = repr(record.exc_info[1])
            entry["traceback"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", json_format: bool = True) -> None:
    """Install a single stdout handler on the root logger.

    Args:
        level: Level name such as DEBUG or WARNING
        json_format: Emit JSON lines when True, plain text otherwise
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

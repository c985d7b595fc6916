"""Observability: structured logging, request correlation, metrics and health."""

from .logging_config import configure_logging, get_logger
from .middleware import RequestIDMiddleware
from .request_context import bind_log_context, get_request_id, set_request_id

__all__ = [
    "configure_logging",
    "get_logger",
    "RequestIDMiddleware",
    "bind_log_context",
    "get_request_id",
    "set_request_id",
]

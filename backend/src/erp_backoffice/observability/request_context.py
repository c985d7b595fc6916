"""Request-scoped context for log correlation.

Holds the request ID plus the tenant/company/user resolved for the request,
in ContextVars so the values follow the request across awaits and into the
threadpool that runs sync endpoints.
"""

import uuid
from contextvars import ContextVar
from typing import Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
log_context_var: ContextVar[Optional[Dict[str, str]]] = ContextVar("log_context", default=None)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Return the current request ID or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)
    log_context_var.set({})


def bind_log_context(**values) -> None:
    """Attach identifiers (tenant_id, company_id, user_id) to subsequent log records.

    None values are skipped; everything else is stored as a string.
    """
    current = dict(log_context_var.get() or {})
    current.update({key: str(value) for key, value in values.items() if value is not None})
    log_context_var.set(current)


def get_log_context() -> Dict[str, str]:
    return log_context_var.get() or {}

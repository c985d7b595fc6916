"""Company context resolution.

Every company-scoped endpoint depends on get_company_context. It reads the
target company from the X-Company-ID header (or the company_id query
parameter), resolves the caller's access tier, and binds the request's DB
session to the company's tenant so the isolation hook filters everything
that follows.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from ..auth.dependencies import get_current_user
from ..companies.service import CompanyAccessInfo, MultiCompanyService
from ..database import get_db
from ..errors import AuthorizationError, BadRequestError, NotFoundError
from ..models.user import User
from ..observability.metrics import permission_denied_total
from ..observability.request_context import bind_log_context
from .isolation import set_tenant_context

logger = logging.getLogger(__name__)

COMPANY_HEADER = "X-Company-ID"
COMPANY_QUERY_PARAM = "company_id"


@dataclass
class CompanyContext:
    company_id: UUID
    tenant_id: UUID
    user_id: UUID
    role: Optional[str]
    access_tier: int
    access: CompanyAccessInfo


def _company_id_from_request(request: Request) -> Optional[str]:
    return request.headers.get(COMPANY_HEADER) or request.query_params.get(COMPANY_QUERY_PARAM)


def _bind(request: Request, db: Session, context: CompanyContext) -> CompanyContext:
    request.state.company_context = context
    set_tenant_context(db, context.tenant_id)
    bind_log_context(tenant_id=context.tenant_id, company_id=context.company_id, user_id=context.user_id)
    return context


def resolve_company_context(db: Session, user: User, company_id: UUID) -> CompanyContext:
    """Resolve access without touching request state.

    Raises:
        NotFoundError: Company does not exist
        AuthorizationError: User has no access to it
    """
    access = MultiCompanyService(db).check_user_company_access(user.id, company_id)
    if not access.has_access:
        permission_denied_total.labels(reason="no_company_access").inc()
        logger.warning(
            "Company access denied",
            extra={"user_id": str(user.id), "company_id": str(company_id)}
        )
        raise AuthorizationError("Access denied: user does not have access to this company")

    return CompanyContext(
        company_id=access.company_id,
        tenant_id=access.tenant_id,
        user_id=user.id,
        role=access.role,
        access_tier=access.access_tier,
        access=access,
    )


def get_company_context(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CompanyContext:
    raw = _company_id_from_request(request)
    if not raw:
        raise BadRequestError("Company ID required (use X-Company-ID header or company_id query parameter)")
    try:
        company_id = UUID(raw)
    except ValueError:
        raise BadRequestError("Invalid company ID format")

    return _bind(request, db, resolve_company_context(db, user, company_id))


def get_optional_company_context(
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Optional[CompanyContext]:
    """Like get_company_context, but any failure resolves to None."""
    raw = _company_id_from_request(request)
    if not raw:
        return None
    try:
        context = resolve_company_context(db, user, UUID(raw))
    except (ValueError, NotFoundError, AuthorizationError):
        return None
    return _bind(request, db, context)


def get_company_context_for_path(
    company_id: UUID,
    request: Request,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CompanyContext:
    """Company context taken from a ``{company_id}`` path parameter."""
    return _bind(request, db, resolve_company_context(db, user, company_id))


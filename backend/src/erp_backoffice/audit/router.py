"""Audit trail endpoint.

GET /audit-logs lists a tenant's audit entries, optionally narrowed to one
entity (entity_type + entity_id).

- With an X-Company-ID header the caller needs MANAGE_SETTINGS in that
  company (Tier 1 holds it everywhere) and sees that company's entries only.
- Without it the caller must be Tier 1 in the token's tenant and sees every
  entry of the tenant, company-less ones included.

Entries of other tenants are never returned.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..auth.dependencies import TokenClaims, get_current_user, get_token_claims
from ..database import get_db
from ..models.audit_log import AuditLog
from ..models.user import User
from ..permissions.dependencies import require_permission, require_tenant_admin
from ..permissions.roles import Permission
from ..tenancy.context import COMPANY_HEADER, get_company_context
from .schemas import AuditLogListResponse, AuditLogResponse, Pagination

router = APIRouter(prefix="/audit-logs", tags=["Audit"])

DEFAULT_LIMIT = 20
MAX_LIMIT = 100

_manage_settings = require_permission(Permission.MANAGE_SETTINGS)


@dataclass
class AuditScope:
    tenant_id: UUID
    company_id: Optional[UUID] = None


def get_audit_scope(
    request: Request,
    claims: TokenClaims = Depends(get_token_claims),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuditScope:
    """Resolve what the caller may read; binds the session to the tenant.

    Raises:
        400: Malformed X-Company-ID
        403: No MANAGE_SETTINGS in the company, or not Tier 1 in the tenant
    """
    if request.headers.get(COMPANY_HEADER):
        ctx = _manage_settings(get_company_context(request, user, db))
        return AuditScope(tenant_id=ctx.tenant_id, company_id=ctx.company_id)

    admin = require_tenant_admin(claims, user, db)
    return AuditScope(tenant_id=admin.tenant_id)


@router.get("", response_model=AuditLogListResponse)
def list_audit_logs(
    entity_type: Optional[str] = Query(None, max_length=100, description="e.g. warehouse, company"),
    entity_id: Optional[UUID] = Query(None),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
    scope: AuditScope = Depends(get_audit_scope),
    db: Session = Depends(get_db),
) -> AuditLogListResponse:
    stmt = select(AuditLog).where(AuditLog.tenant_id == scope.tenant_id)

    if scope.company_id is not None:
        stmt = stmt.where(AuditLog.company_id == scope.company_id)
    if entity_type:
        stmt = stmt.where(func.lower(AuditLog.entity_type) == entity_type.lower())
    if entity_id is not None:
        stmt = stmt.where(AuditLog.entity_id == entity_id)

    total = db.execute(select(func.count()).select_from(stmt.subquery())).scalar()
    entries = db.execute(
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id).offset(offset).limit(limit)
    ).scalars().all()

    return AuditLogListResponse(
        data=[AuditLogResponse.model_validate(entry) for entry in entries],
        pagination=Pagination(limit=limit, offset=offset, total=total),
    )

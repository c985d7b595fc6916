"""Audit logging service.

Every security-relevant or RBAC change is recorded through this module.

Actions:
- LOGIN_SUCCESS
- COMPANY_CREATED, COMPANY_UPDATED, COMPANY_DEACTIVATED
- USER_COMPANY_ASSIGNED, USER_COMPANY_ROLE_CHANGED, USER_COMPANY_REMOVED
- USER_TENANT_ADDED, USER_TENANT_ROLE_CHANGED, USER_TENANT_REMOVED
- ACCOUNT_UNLOCKED
- PASSWORD_RESET, PASSWORD_CHANGED
- WAREHOUSE_CREATED, WAREHOUSE_UPDATED, WAREHOUSE_DELETED

audit_logs is tenant-scoped: the entry is written inside a tenant context
for its own tenant_id, so it can be called from any session state.
"""

from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import Request
from sqlalchemy.orm import Session

from ..auth.rate_limit import get_client_ip
from ..models.audit_log import AuditLog
from ..tenancy.isolation import tenant_context


def log_audit_event(
    db: Session,
    tenant_id: UUID,
    action: str,
    user_id: Optional[UUID] = None,
    company_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    old_values: Optional[Dict[str, Any]] = None,
    new_values: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Append an audit entry and flush it (no commit).

    Action names are not validated; callers use the constants listed in the
    module docstring.

    Example:
        log_audit_event(
            db,
            tenant_id=company.tenant_id,
            action="USER_COMPANY_ASSIGNED",
            user_id=current_user.id,
            company_id=company.id,
            entity_type="user_company_role",
            entity_id=grant.id,
            new_values={"user_id": str(grant.user_id), "role": grant.role},
        )
    """
    entry = AuditLog(
        tenant_id=tenant_id,
        company_id=company_id,
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        old_values=old_values,
        new_values=new_values,
        metadata_json=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    with tenant_context(db, tenant_id):
        db.add(entry)
        db.flush()

    return entry


def log_from_request(
    db: Session,
    request: Request,
    tenant_id: UUID,
    action: str,
    **kwargs: Any,
) -> AuditLog:
    """Same as log_audit_event, taking IP and User-Agent from the request."""
    return log_audit_event(
        db=db,
        tenant_id=tenant_id,
        action=action,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        **kwargs,
    )

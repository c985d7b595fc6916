"""Permission dependencies for company-scoped and tenant-scoped endpoints.

Usage:
    @router.post("/warehouses")
    def create(ctx: CompanyContext = Depends(require_permission(Permission.CREATE_DATA))):
        ...

    @router.delete("/companies/{company_id}")
    def deactivate(admin: TenantAdmin = Depends(require_tenant_admin)):
        ...

Every factory takes an optional ``context`` dependency, so the same check
works with the header-based company context and the path-based one.
"""

import logging
from dataclasses import dataclass
from typing import Callable
from uuid import UUID

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..auth.dependencies import TokenClaims, get_current_user, get_token_claims
from ..database import get_db
from ..errors import AuthorizationError
from ..models.user import User, UserTenant
from ..observability.metrics import permission_denied_total
from ..tenancy.context import CompanyContext, get_company_context
from ..tenancy.isolation import set_tenant_context
from .roles import TIER1_ROLES, Permission, UserRole
from .service import PermissionService

logger = logging.getLogger(__name__)

INSUFFICIENT = "Access denied: insufficient permissions"
COMPANY_ADMIN_ROLES = {UserRole.ADMIN.value, UserRole.TENANT_ADMIN.value, UserRole.OWNER.value}


def _deny(reason: str, message: str, ctx: CompanyContext = None) -> AuthorizationError:
    permission_denied_total.labels(reason=reason).inc()
    logger.warning(
        message,
        extra={
            "reason": reason,
            "company_id": str(ctx.company_id) if ctx else None,
            "role": ctx.role if ctx else None,
        }
    )
    return AuthorizationError(message)


def require_permission(permission: Permission, context: Callable = get_company_context) -> Callable:
    def dependency(ctx: CompanyContext = Depends(context)) -> CompanyContext:
        if not PermissionService.access_allows(ctx.access, permission):
            raise _deny("insufficient_permission", INSUFFICIENT, ctx)
        return ctx

    return dependency


def require_any_permission(*permissions: Permission, context: Callable = get_company_context) -> Callable:
    def dependency(ctx: CompanyContext = Depends(context)) -> CompanyContext:
        if not any(PermissionService.access_allows(ctx.access, p) for p in permissions):
            raise _deny("insufficient_permission", INSUFFICIENT, ctx)
        return ctx

    return dependency


def require_all_permissions(*permissions: Permission, context: Callable = get_company_context) -> Callable:
    def dependency(ctx: CompanyContext = Depends(context)) -> CompanyContext:
        if not all(PermissionService.access_allows(ctx.access, p) for p in permissions):
            raise _deny("insufficient_permission", INSUFFICIENT, ctx)
        return ctx

    return dependency


def require_tier1_access(context: Callable = get_company_context) -> Callable:
    """Tenant-level (OWNER / TENANT_ADMIN) access to the context company."""
    def dependency(ctx: CompanyContext = Depends(context)) -> CompanyContext:
        if ctx.access_tier != 1:
            raise _deny("tier1_required", "Access denied: tenant-level access required", ctx)
        return ctx

    return dependency


def require_company_admin(context: Callable = get_company_context) -> Callable:
    """ADMIN in the company, or Tier 1 in its tenant."""
    def dependency(ctx: CompanyContext = Depends(context)) -> CompanyContext:
        if ctx.role not in COMPANY_ADMIN_ROLES:
            raise _deny(
                "admin_required",
                f"Access denied: requires ADMIN role (current role: {ctx.role})",
                ctx,
            )
        return ctx

    return dependency


@dataclass
class TenantAdmin:
    user: User
    tenant_id: UUID
    role: str


def require_tenant_admin(
    claims: TokenClaims = Depends(get_token_claims),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TenantAdmin:
    """Tier 1 in the tenant named by the access token.

    The role is re-read from user_tenants, so a revoked grant takes effect
    before the token expires. Binds the session to that tenant.
    """
    link = db.execute(
        select(UserTenant).where(
            UserTenant.user_id == user.id,
            UserTenant.tenant_id == claims.tenant_id,
            UserTenant.is_active.is_(True),
            UserTenant.role.in_([role.value for role in TIER1_ROLES]),
        )
    ).scalars().first()
    if link is None:
        raise _deny("tier1_required", "Access denied: tenant-level access required")

    set_tenant_context(db, claims.tenant_id)
    return TenantAdmin(user=user, tenant_id=claims.tenant_id, role=link.role)

"""Tenant user management endpoints.

All endpoints act on the tenant named by the access token and require
Tier 1 (OWNER / TENANT_ADMIN) membership in it. Mutations are audited by
TenantUserService.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth.rate_limit import get_client_ip
from ..database import get_db
from ..errors import NotFoundError
from ..models.user import User
from ..permissions.dependencies import TenantAdmin, require_tenant_admin
from .schemas import TenantUserAdd, TenantUserListResponse, TenantUserResponse, TenantUserRoleUpdate
from .service import TenantUserService

router = APIRouter(prefix="/tenants/current/users", tags=["Tenant Users"])


@router.get("", response_model=TenantUserListResponse, summary="List users of the current tenant")
def list_tenant_users(
    role: Optional[str] = Query(None, description="Filter by tenant role"),
    is_active: Optional[bool] = Query(None, description="Filter by link status"),
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> TenantUserListResponse:
    rows = TenantUserService(db).list_tenant_users(admin.tenant_id, role=role, is_active=is_active)
    items = [TenantUserResponse.from_link(link, user) for link, user in rows]
    return TenantUserListResponse(items=items, total=len(items))


@router.post(
    "",
    response_model=TenantUserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a user to the current tenant",
)
def add_tenant_user(
    request: Request,
    data: TenantUserAdd,
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> TenantUserResponse:
    """Link an existing user to the tenant (or reactivate their old link).

    Raises:
        400: OWNER requested, or user already active in the tenant
        404: User not found
    """
    link = TenantUserService(db).add_user_to_tenant(
        admin.tenant_id,
        data.user_id,
        data.role,
        actor_id=admin.user.id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    db.commit()
    return TenantUserResponse.from_link(link, _user(db, link.user_id))


@router.patch("/{link_id}", response_model=TenantUserResponse, summary="Change a tenant user's role")
def update_tenant_user(
    link_id: UUID,
    request: Request,
    data: TenantUserRoleUpdate,
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> TenantUserResponse:
    link = TenantUserService(db).update_user_tenant_role(
        admin.tenant_id,
        link_id,
        data.role,
        actor_id=admin.user.id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    db.commit()
    return TenantUserResponse.from_link(link, _user(db, link.user_id))


@router.delete("/{link_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Remove a user from the current tenant")
def remove_tenant_user(
    link_id: UUID,
    request: Request,
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> None:
    TenantUserService(db).remove_user_from_tenant(
        admin.tenant_id,
        link_id,
        actor_id=admin.user.id,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
    db.commit()


def _user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user

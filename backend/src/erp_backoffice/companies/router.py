"""Company endpoints.

- Listing returns every company the caller reaches through either tier.
- Creating and deactivating companies is tenant-level (OWNER / TENANT_ADMIN
  in the token's tenant).
- Reading a company needs any access to it; editing needs MANAGE_SETTINGS;
  managing its users needs MANAGE_USERS.
All mutations are audited.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from ..audit.service import log_from_request
from ..auth.dependencies import CurrentUser
from ..database import get_db
from ..errors import NotFoundError
from ..models.user import User
from ..permissions.dependencies import TenantAdmin, require_permission, require_tenant_admin
from ..permissions.roles import Permission, permissions_for_role
from ..permissions.service import PermissionService
from ..tenancy.context import CompanyContext, get_company_context_for_path
from .schemas import (
    CompanyCreate,
    CompanyListResponse,
    CompanyPermissionsResponse,
    CompanyResponse,
    CompanyUpdate,
    CompanyUserAssign,
    CompanyUserListResponse,
    CompanyUserResponse,
    CompanyUserRoleUpdate,
)
from .service import MultiCompanyService

router = APIRouter(prefix="/companies", tags=["Companies"])

manage_settings = require_permission(Permission.MANAGE_SETTINGS, context=get_company_context_for_path)
manage_users = require_permission(Permission.MANAGE_USERS, context=get_company_context_for_path)


@router.get("", response_model=CompanyListResponse, summary="List companies accessible to the caller")
def list_companies(user: CurrentUser, db: Session = Depends(get_db)) -> CompanyListResponse:
    companies = MultiCompanyService(db).get_companies_by_user(user.id)
    return CompanyListResponse(
        items=[CompanyResponse.model_validate(c) for c in companies],
        total=len(companies),
    )


@router.post(
    "",
    response_model=CompanyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a company in the current tenant",
)
def create_company(
    request: Request,
    data: CompanyCreate,
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> CompanyResponse:
    """Create a company under the caller's tenant.

    Raises:
        400: Validation failure or NPWP already registered
        403: Caller is not OWNER / TENANT_ADMIN of the tenant
        409: Company name already used in the tenant
    """
    company = MultiCompanyService(db).create_company(admin.tenant_id, data.model_dump())
    log_from_request(
        db,
        request,
        tenant_id=admin.tenant_id,
        action="COMPANY_CREATED",
        user_id=admin.user.id,
        company_id=company.id,
        entity_type="company",
        entity_id=company.id,
        new_values={"name": company.name, "entity_type": company.entity_type},
    )
    db.commit()
    return CompanyResponse.model_validate(company)


@router.get("/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: UUID,
    ctx: CompanyContext = Depends(get_company_context_for_path),
    db: Session = Depends(get_db),
) -> CompanyResponse:
    return CompanyResponse.model_validate(MultiCompanyService(db).get_company_by_id(ctx.company_id))


@router.patch("/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: UUID,
    request: Request,
    data: CompanyUpdate,
    ctx: CompanyContext = Depends(manage_settings),
    db: Session = Depends(get_db),
) -> CompanyResponse:
    changes = data.model_dump(exclude_unset=True)
    company = MultiCompanyService(db).update_company(ctx.company_id, changes)
    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="COMPANY_UPDATED",
        user_id=ctx.user_id,
        company_id=company.id,
        entity_type="company",
        entity_id=company.id,
        new_values=jsonable_encoder(changes),
    )
    db.commit()
    return CompanyResponse.model_validate(company)


@router.delete("/{company_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_company(
    company_id: UUID,
    request: Request,
    admin: TenantAdmin = Depends(require_tenant_admin),
    db: Session = Depends(get_db),
) -> None:
    """Soft delete. Companies of other tenants are reported as not found."""
    company = MultiCompanyService(db).deactivate_company(company_id)
    log_from_request(
        db,
        request,
        tenant_id=admin.tenant_id,
        action="COMPANY_DEACTIVATED",
        user_id=admin.user.id,
        company_id=company.id,
        entity_type="company",
        entity_id=company.id,
        old_values={"is_active": True},
        new_values={"is_active": False},
    )
    db.commit()


@router.get("/{company_id}/users", response_model=CompanyUserListResponse)
def list_company_users(
    company_id: UUID,
    ctx: CompanyContext = Depends(manage_users),
    db: Session = Depends(get_db),
) -> CompanyUserListResponse:
    rows = PermissionService(db).get_company_users(ctx.company_id)
    return CompanyUserListResponse(
        items=[CompanyUserResponse.from_grant(grant, user) for grant, user in rows],
        total=len(rows),
    )


@router.post(
    "/{company_id}/users",
    response_model=CompanyUserResponse,
    status_code=status.HTTP_201_CREATED,
)
def assign_company_user(
    company_id: UUID,
    request: Request,
    data: CompanyUserAssign,
    ctx: CompanyContext = Depends(manage_users),
    db: Session = Depends(get_db),
) -> CompanyUserResponse:
    grant = PermissionService(db).assign_user_to_company(data.user_id, ctx.company_id, data.role)
    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="USER_COMPANY_ASSIGNED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="user_company_role",
        entity_id=grant.id,
        new_values={"user_id": str(grant.user_id), "role": grant.role},
    )
    db.commit()
    return CompanyUserResponse.from_grant(grant, _user(db, grant.user_id))


@router.patch("/{company_id}/users/{user_id}", response_model=CompanyUserResponse)
def update_company_user(
    company_id: UUID,
    user_id: UUID,
    request: Request,
    data: CompanyUserRoleUpdate,
    ctx: CompanyContext = Depends(manage_users),
    db: Session = Depends(get_db),
) -> CompanyUserResponse:
    service = PermissionService(db)
    grant = service.update_user_company_role(user_id, ctx.company_id, data.role)
    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="USER_COMPANY_ROLE_CHANGED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="user_company_role",
        entity_id=grant.id,
        new_values={"user_id": str(user_id), "role": grant.role},
    )
    db.commit()
    return CompanyUserResponse.from_grant(grant, _user(db, user_id))


@router.delete("/{company_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_company_user(
    company_id: UUID,
    user_id: UUID,
    request: Request,
    ctx: CompanyContext = Depends(manage_users),
    db: Session = Depends(get_db),
) -> None:
    grant = PermissionService(db).remove_user_from_company(user_id, ctx.company_id)
    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="USER_COMPANY_REMOVED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="user_company_role",
        entity_id=grant.id,
        old_values={"user_id": str(user_id), "role": grant.role},
    )
    db.commit()


@router.get("/{company_id}/permissions/me", response_model=CompanyPermissionsResponse)
def my_company_permissions(
    company_id: UUID,
    ctx: CompanyContext = Depends(get_company_context_for_path),
) -> CompanyPermissionsResponse:
    """The caller's role and effective permissions in this company."""
    if ctx.access_tier == 1:
        permissions = [p.value for p in Permission]
    else:
        permissions = [p.value for p in permissions_for_role(ctx.role)]
    return CompanyPermissionsResponse(
        company_id=ctx.company_id,
        tenant_id=ctx.tenant_id,
        role=ctx.role,
        access_tier=ctx.access_tier,
        permissions=permissions,
    )


def _user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User")
    return user

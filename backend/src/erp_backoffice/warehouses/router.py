"""Warehouse endpoints.

Every route runs in a company context (X-Company-ID) with an active
subscription. Queries filter on the context company; the session is bound
to the company's tenant, so the isolation hook adds the tenant filter on
top. A warehouse of another company or tenant is reported as not found.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from ..audit.service import log_from_request
from ..database import get_db
from ..errors import ConflictError, NotFoundError
from ..models.warehouse import Warehouse
from ..permissions.dependencies import require_permission
from ..permissions.roles import Permission
from ..tenancy.context import CompanyContext
from ..tenancy.subscription import require_active_subscription
from .schemas import WarehouseCreate, WarehouseListResponse, WarehouseResponse, WarehouseUpdate

router = APIRouter(prefix="/warehouses", tags=["Warehouses"])


def _can(permission: Permission):
    return require_permission(permission, context=require_active_subscription)


@router.get("", response_model=WarehouseListResponse)
def list_warehouses(
    q: Optional[str] = Query(None, description="Search code or name"),
    is_active: Optional[bool] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(50, ge=1, le=100, description="Items per page"),
    ctx: CompanyContext = Depends(_can(Permission.VIEW_DATA)),
    db: Session = Depends(get_db),
) -> WarehouseListResponse:
    stmt = select(Warehouse).where(Warehouse.company_id == ctx.company_id)

    if q:
        pattern = f"%{q}%"
        stmt = stmt.where(or_(Warehouse.code.ilike(pattern), Warehouse.name.ilike(pattern)))
    if is_active is not None:
        stmt = stmt.where(Warehouse.is_active.is_(is_active))

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = db.execute(count_stmt).scalar()

    offset = (page - 1) * per_page
    warehouses = db.execute(stmt.order_by(Warehouse.code).offset(offset).limit(per_page)).scalars().all()

    total_pages = (total + per_page - 1) // per_page if total > 0 else 0

    return WarehouseListResponse(
        items=[WarehouseResponse.model_validate(w) for w in warehouses],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )


@router.post("", response_model=WarehouseResponse, status_code=status.HTTP_201_CREATED)
def create_warehouse(
    request: Request,
    data: WarehouseCreate,
    ctx: CompanyContext = Depends(_can(Permission.CREATE_DATA)),
    db: Session = Depends(get_db),
) -> WarehouseResponse:
    """Create a warehouse in the context company.

    Raises:
        409: Code already used in this company
    """
    _ensure_unique_code(db, ctx.company_id, data.code)

    warehouse = Warehouse(company_id=ctx.company_id, tenant_id=ctx.tenant_id, **data.model_dump())
    db.add(warehouse)
    db.flush()

    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="WAREHOUSE_CREATED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="warehouse",
        entity_id=warehouse.id,
        new_values={"code": warehouse.code, "name": warehouse.name},
    )
    db.commit()
    return WarehouseResponse.model_validate(warehouse)


@router.get("/{warehouse_id}", response_model=WarehouseResponse)
def get_warehouse(
    warehouse_id: UUID,
    ctx: CompanyContext = Depends(_can(Permission.VIEW_DATA)),
    db: Session = Depends(get_db),
) -> WarehouseResponse:
    return WarehouseResponse.model_validate(_get_warehouse(db, ctx, warehouse_id))


@router.patch("/{warehouse_id}", response_model=WarehouseResponse)
def update_warehouse(
    warehouse_id: UUID,
    request: Request,
    data: WarehouseUpdate,
    ctx: CompanyContext = Depends(_can(Permission.EDIT_DATA)),
    db: Session = Depends(get_db),
) -> WarehouseResponse:
    warehouse = _get_warehouse(db, ctx, warehouse_id)
    changes = data.model_dump(exclude_unset=True)

    if "code" in changes and changes["code"] != warehouse.code:
        _ensure_unique_code(db, ctx.company_id, changes["code"])

    old_values = {field: getattr(warehouse, field) for field in changes}
    for field, value in changes.items():
        setattr(warehouse, field, value)
    db.flush()

    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="WAREHOUSE_UPDATED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="warehouse",
        entity_id=warehouse.id,
        old_values=old_values,
        new_values=changes,
    )
    db.commit()
    return WarehouseResponse.model_validate(warehouse)


@router.delete("/{warehouse_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_warehouse(
    warehouse_id: UUID,
    request: Request,
    ctx: CompanyContext = Depends(_can(Permission.DELETE_DATA)),
    db: Session = Depends(get_db),
) -> None:
    warehouse = _get_warehouse(db, ctx, warehouse_id)
    snapshot = {"code": warehouse.code, "name": warehouse.name}
    db.delete(warehouse)
    db.flush()

    log_from_request(
        db,
        request,
        tenant_id=ctx.tenant_id,
        action="WAREHOUSE_DELETED",
        user_id=ctx.user_id,
        company_id=ctx.company_id,
        entity_type="warehouse",
        entity_id=warehouse_id,
        old_values=snapshot,
    )
    db.commit()


def _get_warehouse(db: Session, ctx: CompanyContext, warehouse_id: UUID) -> Warehouse:
    warehouse = db.execute(
        select(Warehouse).where(Warehouse.id == warehouse_id, Warehouse.company_id == ctx.company_id)
    ).scalar_one_or_none()
    if warehouse is None:
        raise NotFoundError("Warehouse")
    return warehouse


def _ensure_unique_code(db: Session, company_id: UUID, code: str) -> None:
    exists = db.execute(
        select(Warehouse.id).where(Warehouse.company_id == company_id, Warehouse.code == code)
    ).first()
    if exists:
        raise ConflictError(f"Warehouse code {code} already exists in this company")

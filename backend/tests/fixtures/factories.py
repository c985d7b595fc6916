"""Test data builders for tenants, companies, users and grants.

Every builder commits, so rows are visible to the fresh sessions the API
client opens per request. Pass a system (bypass) session: companies and
warehouses are tenant-scoped and carry their tenant_id explicitly.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_backoffice.auth.jwt import create_access_token
from erp_backoffice.models import (
    AuditLog,
    Company,
    Subscription,
    Tenant,
    User,
    UserCompanyRole,
    UserTenant,
    Warehouse,
)
from erp_backoffice.models.base import utcnow


def make_tenant(db: Session, name: str, status: str = "ACTIVE", **kwargs) -> Tenant:
    """Create a tenant with a current monthly subscription.

    Args:
        db: System session
        name: Tenant name
        status: Tenant status (TRIAL tenants get a 14 day trial unless trial_ends_at is given)
        **kwargs: subscription_status / grace_period_ends for the subscription,
            anything else for the tenant

    Returns:
        Tenant: Committed tenant
    """
    now = utcnow()
    subscription = Subscription(
        price=Decimal("300000"),
        status=kwargs.pop("subscription_status", "ACTIVE"),
        current_period_start=now - timedelta(days=1),
        current_period_end=now + timedelta(days=29),
        next_billing_date=now + timedelta(days=29),
        grace_period_ends=kwargs.pop("grace_period_ends", None),
    )
    db.add(subscription)
    db.flush()

    tenant = Tenant(name=name, status=status, subscription_id=subscription.id, **kwargs)
    if status == "TRIAL" and tenant.trial_ends_at is None:
        tenant.trial_ends_at = now + timedelta(days=14)
    db.add(tenant)
    db.commit()
    return tenant


def make_company(db: Session, tenant: Tenant, name: str, **kwargs) -> Company:
    data = dict(
        tenant_id=tenant.id,
        name=name,
        legal_name=f"PT {name}",
        entity_type="PT",
        address="Jl. Sudirman No. 1",
        city="Jakarta",
        province="DKI Jakarta",
        phone="+62215550100",
        email=f"info@{name.lower().replace(' ', '')}.co.id",
    )
    data.update(kwargs)
    company = Company(**data)
    db.add(company)
    db.commit()
    return company


def make_user(db: Session, email: str, password_hash: str, name: str = None, **kwargs) -> User:
    user = User(email=email, name=name or email.split("@")[0].title(), password_hash=password_hash, **kwargs)
    db.add(user)
    db.commit()
    return user


def link_tenant(db: Session, user: User, tenant: Tenant, role: str, is_active: bool = True) -> UserTenant:
    link = UserTenant(user_id=user.id, tenant_id=tenant.id, role=role, is_active=is_active)
    db.add(link)
    db.commit()
    return link


def grant_company(db: Session, user: User, company: Company, role: str, is_active: bool = True) -> UserCompanyRole:
    grant = UserCompanyRole(
        user_id=user.id,
        company_id=company.id,
        tenant_id=company.tenant_id,
        role=role,
        is_active=is_active,
    )
    db.add(grant)
    db.commit()
    return grant


def make_warehouse(db: Session, company: Company, code: str, name: str = None) -> Warehouse:
    warehouse = Warehouse(
        tenant_id=company.tenant_id,
        company_id=company.id,
        code=code,
        name=name or f"Gudang {code}",
    )
    db.add(warehouse)
    db.commit()
    return warehouse


@dataclass
class World:
    """Two tenants with companies and users at every access level.

    Tenant A: companies a1, a2
        owner_a      OWNER (Tier 1)
        admin_a      TENANT_ADMIN (Tier 1)
        finance_a1   FINANCE in a1 only (Tier 2)
        staff_a1     STAFF in a1 only (Tier 2)
    Tenant B: company b1
        owner_b      OWNER (Tier 1)
    """
    tenant_a: Tenant
    tenant_b: Tenant
    company_a1: Company
    company_a2: Company
    company_b1: Company
    owner_a: User
    admin_a: User
    finance_a1: User
    staff_a1: User
    owner_b: User


def build_world(db: Session, password_hash: str) -> World:
    tenant_a = make_tenant(db, "Toko Maju")
    tenant_b = make_tenant(db, "Sumber Rejeki")

    company_a1 = make_company(db, tenant_a, "Maju Jaya")
    company_a2 = make_company(db, tenant_a, "Maju Makmur")
    company_b1 = make_company(db, tenant_b, "Rejeki Abadi")

    owner_a = make_user(db, "owner@tokomaju.co.id", password_hash, "Budi Santoso")
    admin_a = make_user(db, "admin@tokomaju.co.id", password_hash, "Siti Rahayu")
    finance_a1 = make_user(db, "finance@tokomaju.co.id", password_hash, "Dewi Lestari")
    staff_a1 = make_user(db, "staff@tokomaju.co.id", password_hash, "Agus Wijaya")
    owner_b = make_user(db, "owner@sumberrejeki.co.id", password_hash, "Hendra Gunawan")

    link_tenant(db, owner_a, tenant_a, "OWNER")
    link_tenant(db, admin_a, tenant_a, "TENANT_ADMIN")
    link_tenant(db, finance_a1, tenant_a, "STAFF")
    link_tenant(db, staff_a1, tenant_a, "STAFF")
    link_tenant(db, owner_b, tenant_b, "OWNER")

    grant_company(db, finance_a1, company_a1, "FINANCE")
    grant_company(db, staff_a1, company_a1, "STAFF")

    return World(
        tenant_a=tenant_a,
        tenant_b=tenant_b,
        company_a1=company_a1,
        company_a2=company_a2,
        company_b1=company_b1,
        owner_a=owner_a,
        admin_a=admin_a,
        finance_a1=finance_a1,
        staff_a1=staff_a1,
        owner_b=owner_b,
    )


def token_for(user: User, tenant: Tenant, role: str = "OWNER", **kwargs) -> str:
    """Sign an access token for a user in a tenant without going through login."""
    return create_access_token(
        user_id=user.id,
        email=user.email,
        tenant_id=tenant.id,
        role=role,
        **kwargs,
    )


def audit_entries(db: Session, action: str = None):
    """Audit rows across all tenants, oldest first (db must be a system session)."""
    stmt = select(AuditLog).order_by(AuditLog.created_at)
    if action is not None:
        stmt = stmt.where(AuditLog.action == action)
    return list(db.execute(stmt).scalars())

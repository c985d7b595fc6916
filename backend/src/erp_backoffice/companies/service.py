"""Multi-company service.

Companies are tenant-scoped rows, so reads here run either inside the
caller's tenant context or with an explicit per-statement context. Access
resolution (check_user_company_access) runs before any tenant context
exists and therefore loads the company under bypass.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from ..errors import BadRequestError, ConflictError, NotFoundError, ValidationAppError
from ..models.company import DEFAULT_PPN_RATE, ENTITY_TYPES, NPWP_LENGTH, Company
from ..models.tenant import Tenant
from ..models.user import UserTenant
from ..models.user_company_role import UserCompanyRole
from ..permissions.roles import TIER1_ROLES
from ..tenancy.isolation import tenant_context

logger = logging.getLogger(__name__)

BYPASS = {"bypass_tenant": True}

TIER1_ROLE_VALUES = [role.value for role in TIER1_ROLES]

REQUIRED_FIELDS = {
    "name": "company name is required",
    "legal_name": "legal name is required",
    "address": "address is required",
    "city": "city is required",
    "province": "province is required",
    "phone": "phone is required",
    "email": "email is required",
}

UPDATABLE_FIELDS = {
    "name", "legal_name", "entity_type", "address", "city", "province",
    "postal_code", "country", "phone", "email", "npwp", "nib", "is_pkp",
    "ppn_rate", "invoice_prefix", "so_prefix", "po_prefix", "currency",
    "timezone",
}


@dataclass
class CompanyAccessInfo:
    """Result of resolving a user's access to one company.

    access_tier: 0 = none, 1 = tenant-level grant, 2 = company-level grant.
    """
    company_id: UUID
    tenant_id: UUID
    access_tier: int
    role: Optional[str]
    has_access: bool


def validate_company_fields(data: Dict[str, Any], partial: bool = False) -> None:
    """Validate company attributes.

    Raises:
        ValidationAppError: Listing every failing field
    """
    errors: List[Dict[str, str]] = []

    for field, message in REQUIRED_FIELDS.items():
        if partial and field not in data:
            continue
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors.append({"field": field, "message": message})

    if not partial or "entity_type" in data:
        if data.get("entity_type") not in ENTITY_TYPES:
            errors.append({"field": "entity_type", "message": "entity type must be PT, CV, UD, or Firma"})

    npwp = data.get("npwp")
    if npwp and len(npwp) != NPWP_LENGTH:
        errors.append({"field": "npwp", "message": f"NPWP must be exactly {NPWP_LENGTH} characters"})

    if errors:
        raise ValidationAppError(errors)


class MultiCompanyService:
    """Company CRUD plus Tier 1 / Tier 2 access resolution."""

    def __init__(self, db: Session):
        self.db = db

    def get_companies_by_tenant(self, tenant_id: UUID) -> List[Company]:
        """Active companies of a tenant, ordered by name."""
        stmt = (
            select(Company)
            .where(Company.tenant_id == tenant_id, Company.is_active.is_(True))
            .order_by(Company.name)
        )
        return list(self.db.execute(stmt, execution_options={"tenant_id": tenant_id}).scalars())

    def get_companies_by_user(self, user_id: UUID) -> List[Company]:
        """Every active company the user can reach through either tier.

        Tier 1: all companies of tenants where the user is OWNER/TENANT_ADMIN.
        Tier 2: companies with an active user_company_roles grant.
        Spans tenants, so it runs under bypass.
        """
        tier1_tenants = select(UserTenant.tenant_id).where(
            UserTenant.user_id == user_id,
            UserTenant.is_active.is_(True),
            UserTenant.role.in_(TIER1_ROLE_VALUES),
        )
        tier2_companies = select(UserCompanyRole.company_id).where(
            UserCompanyRole.user_id == user_id,
            UserCompanyRole.is_active.is_(True),
        )
        stmt = (
            select(Company)
            .where(
                Company.is_active.is_(True),
                or_(
                    Company.tenant_id.in_(tier1_tenants),
                    Company.id.in_(tier2_companies),
                ),
            )
            .order_by(Company.name)
        )
        return list(self.db.execute(stmt, execution_options=BYPASS).scalars())

    def get_company_by_id(self, company_id: UUID) -> Company:
        """Active company within the session's tenant context.

        Raises:
            NotFoundError: Company missing, inactive or in another tenant
        """
        stmt = select(Company).where(Company.id == company_id, Company.is_active.is_(True))
        company = self.db.execute(stmt).scalar_one_or_none()
        if company is None:
            raise NotFoundError("Company")
        return company

    def create_company(self, tenant_id: UUID, data: Dict[str, Any]) -> Company:
        """Create a company under a tenant.

        Raises:
            ValidationAppError: Missing fields, bad entity type or NPWP length
            NotFoundError: Tenant does not exist
            BadRequestError: NPWP already registered
            ConflictError: Name already used in this tenant
        """
        validate_company_fields(data)

        if self.db.get(Tenant, tenant_id) is None:
            raise NotFoundError("Tenant")

        with tenant_context(self.db, tenant_id):
            self._ensure_unique_name(data["name"])
            if data.get("npwp"):
                self._ensure_unique_npwp(data["npwp"])

            company = Company(tenant_id=tenant_id)
            for field in UPDATABLE_FIELDS:
                if data.get(field) is not None:
                    setattr(company, field, data[field])
            if company.ppn_rate is None:
                company.ppn_rate = DEFAULT_PPN_RATE

            self.db.add(company)
            self.db.flush()

        logger.info(
            "Company created",
            extra={"tenant_id": str(tenant_id), "company_id": str(company.id)}
        )
        return company

    def update_company(self, company_id: UUID, data: Dict[str, Any]) -> Company:
        """Apply a partial update. Same validations as create."""
        company = self.get_company_by_id(company_id)

        changes = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
        validate_company_fields(changes, partial=True)

        if "name" in changes and changes["name"] != company.name:
            self._ensure_unique_name(changes["name"], exclude_id=company.id)
        if changes.get("npwp") and changes["npwp"] != company.npwp:
            self._ensure_unique_npwp(changes["npwp"], exclude_id=company.id)
        if "ppn_rate" in changes and changes["ppn_rate"] is not None:
            changes["ppn_rate"] = Decimal(str(changes["ppn_rate"]))

        for field, value in changes.items():
            setattr(company, field, value)

        self.db.flush()
        return company

    def deactivate_company(self, company_id: UUID) -> Company:
        """Soft delete: the row stays, is_active becomes False."""
        company = self.get_company_by_id(company_id)
        company.is_active = False
        self.db.flush()
        logger.info("Company deactivated", extra={"company_id": str(company_id)})
        return company

    def check_user_company_access(self, user_id: UUID, company_id: UUID) -> CompanyAccessInfo:
        """Resolve the user's access tier and role for a company.

        Raises:
            NotFoundError: Company does not exist
        """
        company = self.db.execute(
            select(Company).where(Company.id == company_id),
            execution_options=BYPASS,
        ).scalar_one_or_none()
        if company is None:
            raise NotFoundError("Company")

        tier1 = self.db.execute(
            select(UserTenant).where(
                UserTenant.user_id == user_id,
                UserTenant.tenant_id == company.tenant_id,
                UserTenant.is_active.is_(True),
                UserTenant.role.in_(TIER1_ROLE_VALUES),
            )
        ).scalars().first()
        if tier1 is not None:
            return CompanyAccessInfo(
                company_id=company.id,
                tenant_id=company.tenant_id,
                access_tier=1,
                role=tier1.role,
                has_access=True,
            )

        tier2 = self.db.execute(
            select(UserCompanyRole).where(
                UserCompanyRole.user_id == user_id,
                UserCompanyRole.company_id == company_id,
                UserCompanyRole.is_active.is_(True),
            )
        ).scalar_one_or_none()
        if tier2 is not None:
            return CompanyAccessInfo(
                company_id=company.id,
                tenant_id=company.tenant_id,
                access_tier=2,
                role=tier2.role,
                has_access=True,
            )

        return CompanyAccessInfo(
            company_id=company.id,
            tenant_id=company.tenant_id,
            access_tier=0,
            role=None,
            has_access=False,
        )

    def _ensure_unique_name(self, name: str, exclude_id: Optional[UUID] = None) -> None:
        # Runs inside the tenant context, so the check is per tenant.
        stmt = select(Company).where(Company.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Company.id != exclude_id)
        if self.db.execute(stmt).first():
            raise ConflictError("Company name already exists in this tenant")

    def _ensure_unique_npwp(self, npwp: str, exclude_id: Optional[UUID] = None) -> None:
        # NPWP is unique across all tenants.
        stmt = select(Company).where(Company.npwp == npwp)
        if exclude_id is not None:
            stmt = stmt.where(Company.id != exclude_id)
        if self.db.execute(stmt, execution_options=BYPASS).first():
            raise BadRequestError("NPWP already registered to another company")

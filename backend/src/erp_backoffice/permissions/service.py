"""Permission service: Tier 2 grant management and permission checks."""

import logging
from typing import List, Tuple
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..companies.service import BYPASS, CompanyAccessInfo, MultiCompanyService
from ..errors import BadRequestError, NotFoundError
from ..models.company import Company
from ..models.user import User
from ..models.user_company_role import UserCompanyRole
from .roles import Permission, is_company_level, permissions_for_role, role_has_permission

logger = logging.getLogger(__name__)

TIER2_ONLY_MESSAGE = "only company-level roles allowed (ADMIN, FINANCE, SALES, WAREHOUSE, STAFF)"


class PermissionService:
    def __init__(self, db: Session):
        self.db = db
        self.companies = MultiCompanyService(db)

    def assign_user_to_company(self, user_id: UUID, company_id: UUID, role: str) -> UserCompanyRole:
        """Grant a Tier 2 role, reactivating an earlier grant if one exists.

        Raises:
            BadRequestError: Role is not a company-level role
            NotFoundError: User or company missing
        """
        role = self._require_tier2(role)

        if self.db.get(User, user_id) is None:
            raise NotFoundError("User")

        company = self.db.execute(
            select(Company).where(Company.id == company_id),
            execution_options=BYPASS,
        ).scalar_one_or_none()
        if company is None:
            raise NotFoundError("Company")

        grant = self._find_grant(user_id, company_id, active_only=False)
        if grant is not None:
            grant.role = role
            grant.is_active = True
        else:
            grant = UserCompanyRole(
                user_id=user_id,
                company_id=company_id,
                tenant_id=company.tenant_id,
                role=role,
                is_active=True,
            )
            self.db.add(grant)

        self.db.flush()
        logger.info(
            "User assigned to company",
            extra={"user_id": str(user_id), "company_id": str(company_id), "role": role}
        )
        return grant

    def update_user_company_role(self, user_id: UUID, company_id: UUID, role: str) -> UserCompanyRole:
        role = self._require_tier2(role)
        grant = self._find_grant(user_id, company_id)
        if grant is None:
            raise NotFoundError("User company role")
        grant.role = role
        self.db.flush()
        return grant

    def remove_user_from_company(self, user_id: UUID, company_id: UUID) -> UserCompanyRole:
        """Soft-remove a grant (is_active = False)."""
        grant = self._find_grant(user_id, company_id)
        if grant is None:
            raise NotFoundError("User company role")
        grant.is_active = False
        self.db.flush()
        return grant

    def get_user_company_roles(self, user_id: UUID) -> List[UserCompanyRole]:
        stmt = select(UserCompanyRole).where(
            UserCompanyRole.user_id == user_id,
            UserCompanyRole.is_active.is_(True),
        )
        return list(self.db.execute(stmt).scalars())

    def get_company_users(self, company_id: UUID) -> List[Tuple[UserCompanyRole, User]]:
        """Active grants of a company together with their users, by user name."""
        stmt = (
            select(UserCompanyRole, User)
            .join(User, User.id == UserCompanyRole.user_id)
            .where(
                UserCompanyRole.company_id == company_id,
                UserCompanyRole.is_active.is_(True),
            )
            .order_by(User.name)
        )
        return [(grant, user) for grant, user in self.db.execute(stmt).all()]

    @staticmethod
    def access_allows(access: CompanyAccessInfo, permission: Permission) -> bool:
        """Tier 1 -> always True; Tier 2 -> role matrix; no access -> False."""
        if not access.has_access:
            return False
        if access.access_tier == 1:
            return True
        return role_has_permission(access.role, permission)

    def check_permission(self, user_id: UUID, company_id: UUID, permission: Permission) -> bool:
        return self.access_allows(self.companies.check_user_company_access(user_id, company_id), permission)

    def get_user_permissions_for_company(self, user_id: UUID, company_id: UUID) -> List[Permission]:
        access = self.companies.check_user_company_access(user_id, company_id)
        if not access.has_access:
            return []
        if access.access_tier == 1:
            return list(Permission)
        return permissions_for_role(access.role)

    def _find_grant(self, user_id: UUID, company_id: UUID, active_only: bool = True):
        stmt = select(UserCompanyRole).where(
            UserCompanyRole.user_id == user_id,
            UserCompanyRole.company_id == company_id,
        )
        if active_only:
            stmt = stmt.where(UserCompanyRole.is_active.is_(True))
        return self.db.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _require_tier2(role) -> str:
        value = getattr(role, "value", role)
        if not is_company_level(value):
            raise BadRequestError(TIER2_ONLY_MESSAGE)
        return value

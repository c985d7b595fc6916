"""Tenant user management (user_tenants links).

Rules:
- OWNER is never assigned, changed or removed through this service.
- A tenant keeps at least one active TENANT_ADMIN.
- Removal is a soft deactivation; re-adding reactivates the link.
Every change is written to the audit log.
"""

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..audit.service import log_audit_event
from ..errors import BadRequestError, NotFoundError
from ..models.tenant import Tenant
from ..models.user import User, UserTenant
from ..permissions.roles import UserRole, is_valid_role

logger = logging.getLogger(__name__)


class TenantUserService:
    def __init__(self, db: Session):
        self.db = db

    def list_tenant_users(
        self,
        tenant_id: UUID,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Tuple[UserTenant, User]]:
        stmt = (
            select(UserTenant, User)
            .join(User, User.id == UserTenant.user_id)
            .where(UserTenant.tenant_id == tenant_id)
            .order_by(User.name)
        )
        if role is not None:
            stmt = stmt.where(UserTenant.role == role)
        if is_active is not None:
            stmt = stmt.where(UserTenant.is_active.is_(is_active))
        return [(link, user) for link, user in self.db.execute(stmt).all()]

    def add_user_to_tenant(
        self,
        tenant_id: UUID,
        user_id: UUID,
        role: str,
        actor_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserTenant:
        """Link a user to a tenant, reactivating an inactive link.

        Raises:
            BadRequestError: OWNER requested, unknown role, or already a member
            NotFoundError: Tenant or user missing
        """
        role = _role_value(role)
        if role == UserRole.OWNER.value:
            raise BadRequestError("cannot assign OWNER role through this endpoint")
        if not is_valid_role(role):
            raise BadRequestError(f"invalid role: {role}")

        if self.db.get(Tenant, tenant_id) is None:
            raise NotFoundError("Tenant")
        if self.db.get(User, user_id) is None:
            raise NotFoundError("User")

        link = self.db.execute(
            select(UserTenant).where(UserTenant.tenant_id == tenant_id, UserTenant.user_id == user_id)
        ).scalar_one_or_none()

        if link is not None and link.is_active:
            raise BadRequestError("user already added to tenant")

        if link is not None:
            link.is_active = True
            link.role = role
        else:
            link = UserTenant(tenant_id=tenant_id, user_id=user_id, role=role, is_active=True)
            self.db.add(link)
        self.db.flush()

        log_audit_event(
            self.db,
            tenant_id=tenant_id,
            action="USER_TENANT_ADDED",
            user_id=actor_id,
            entity_type="user_tenant",
            entity_id=link.id,
            new_values={"user_id": str(user_id), "role": role},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info("User added to tenant", extra={"tenant_id": str(tenant_id), "role": role})
        return link

    def update_user_tenant_role(
        self,
        tenant_id: UUID,
        link_id: UUID,
        role: str,
        actor_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserTenant:
        role = _role_value(role)
        if not is_valid_role(role):
            raise BadRequestError(f"invalid role: {role}")

        link = self._get_link(tenant_id, link_id)
        if link.role == UserRole.OWNER.value:
            raise BadRequestError("cannot change OWNER role")
        if role == UserRole.OWNER.value:
            raise BadRequestError("cannot assign OWNER role through this endpoint")

        if link.role == UserRole.TENANT_ADMIN.value and role != UserRole.TENANT_ADMIN.value:
            self._ensure_other_admin(tenant_id, link.id, "cannot change last TENANT_ADMIN role")

        old_role = link.role
        link.role = role
        self.db.flush()

        log_audit_event(
            self.db,
            tenant_id=tenant_id,
            action="USER_TENANT_ROLE_CHANGED",
            user_id=actor_id,
            entity_type="user_tenant",
            entity_id=link.id,
            old_values={"role": old_role},
            new_values={"role": role},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return link

    def remove_user_from_tenant(
        self,
        tenant_id: UUID,
        link_id: UUID,
        actor_id: Optional[UUID] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> UserTenant:
        link = self._get_link(tenant_id, link_id)
        if link.role == UserRole.OWNER.value:
            raise BadRequestError("cannot remove OWNER from tenant")
        if link.role == UserRole.TENANT_ADMIN.value and link.is_active:
            self._ensure_other_admin(tenant_id, link.id, "cannot remove last TENANT_ADMIN from tenant")

        link.is_active = False
        self.db.flush()

        log_audit_event(
            self.db,
            tenant_id=tenant_id,
            action="USER_TENANT_REMOVED",
            user_id=actor_id,
            entity_type="user_tenant",
            entity_id=link.id,
            old_values={"user_id": str(link.user_id), "role": link.role, "is_active": True},
            new_values={"is_active": False},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return link

    def _get_link(self, tenant_id: UUID, link_id: UUID) -> UserTenant:
        link = self.db.execute(
            select(UserTenant).where(UserTenant.id == link_id, UserTenant.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if link is None:
            raise NotFoundError("User tenant link")
        return link

    def _ensure_other_admin(self, tenant_id: UUID, excluding_id: UUID, message: str) -> None:
        others = self.db.execute(
            select(func.count(UserTenant.id)).where(
                UserTenant.tenant_id == tenant_id,
                UserTenant.role == UserRole.TENANT_ADMIN.value,
                UserTenant.is_active.is_(True),
                UserTenant.id != excluding_id,
            )
        ).scalar_one()
        if others == 0:
            raise BadRequestError(f"{message} - minimum 1 TENANT_ADMIN required")


def _role_value(role) -> str:
    return getattr(role, "value", role)

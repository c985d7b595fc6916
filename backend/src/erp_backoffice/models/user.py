"""User and UserTenant (Tier 1 link) models."""

import re

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship, validates

from .base import Base, TimestampMixin, UTCDateTime, uuid_pk


class User(Base, TimestampMixin):
    """Login identity. Users exist across tenants; access comes from
    user_tenants (Tier 1) and user_company_roles (Tier 2).
    """
    __tablename__ = "users"

    id = uuid_pk()
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=True)
    password_hash = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    is_system_admin = Column(Boolean, nullable=False, default=False)
    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(UTCDateTime, nullable=True)
    last_login_at = Column(UTCDateTime, nullable=True)

    tenant_links = relationship("UserTenant", back_populates="user")
    company_roles = relationship("UserCompanyRole", back_populates="user")

    @validates('email')
    def validate_email(self, key, value):
        """Basic email format validation"""
        if not re.match(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$', value):
            raise ValueError("Invalid email format")
        return value.lower()

    def to_dict(self):
        """Dictionary representation (excludes password_hash)"""
        return {
            "id": str(self.id),
            "email": self.email,
            "name": self.name,
            "is_active": self.is_active,
            "email_verified": self.email_verified,
            "last_login_at": self.last_login_at.isoformat() if self.last_login_at else None,
        }

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}')>"


class UserTenant(Base, TimestampMixin):
    """Tenant membership. OWNER / TENANT_ADMIN rows grant Tier 1 access."""
    __tablename__ = "user_tenants"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False, default="STAFF")
    is_active = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="tenant_links")
    tenant = relationship("Tenant", back_populates="user_links")

    __table_args__ = (
        UniqueConstraint('user_id', 'tenant_id', name='uq_user_tenant'),
        CheckConstraint(
            "role IN ('OWNER', 'TENANT_ADMIN', 'ADMIN', 'FINANCE', 'SALES', 'WAREHOUSE', 'STAFF')",
            name='ck_user_tenant_role'
        ),
    )

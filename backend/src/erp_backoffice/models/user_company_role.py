"""UserCompanyRole model - Tier 2 per-company role grants."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, uuid_pk


class UserCompanyRole(Base, TimestampMixin):
    """Grants a user one Tier 2 role in one company.

    tenant_id is copied from the company so access lists can be built per
    tenant without a join. The table is excluded from the tenant isolation
    hook because access checks run before a tenant context exists.
    """
    __tablename__ = "user_company_roles"

    id = uuid_pk()
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(20), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    user = relationship("User", back_populates="company_roles")
    company = relationship("Company", back_populates="user_roles")

    __table_args__ = (
        UniqueConstraint('user_id', 'company_id', name='uq_user_company'),
        CheckConstraint(
            "role IN ('ADMIN', 'FINANCE', 'SALES', 'WAREHOUSE', 'STAFF')",
            name='ck_user_company_role'
        ),
    )

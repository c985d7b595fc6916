"""Company model - a legal entity under a tenant."""

from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, uuid_pk

ENTITY_TYPES = ("PT", "CV", "UD", "Firma")
NPWP_LENGTH = 15
DEFAULT_PPN_RATE = Decimal("11.00")


class Company(Base, TimestampMixin):
    """Company (PT/CV/UD/Firma). Business data is scoped by company_id
    and, through this table's tenant_id, by tenant.
    """
    __tablename__ = "companies"

    id = uuid_pk()
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(255), nullable=False)
    legal_name = Column(String(255), nullable=False)
    entity_type = Column(String(10), nullable=False, default="CV")

    address = Column(Text, nullable=False)
    city = Column(String(255), nullable=False)
    province = Column(String(255), nullable=False)
    postal_code = Column(String(50), nullable=True)
    country = Column(String(100), nullable=False, default="Indonesia")
    phone = Column(String(50), nullable=False)
    email = Column(String(255), nullable=False)

    # Indonesian tax registration
    npwp = Column(String(50), nullable=True, unique=True)
    nib = Column(String(50), nullable=True)
    is_pkp = Column(Boolean, nullable=False, default=False)
    ppn_rate = Column(Numeric(5, 2), nullable=False, default=DEFAULT_PPN_RATE)

    invoice_prefix = Column(String(20), nullable=False, default="INV")
    so_prefix = Column(String(20), nullable=False, default="SO")
    po_prefix = Column(String(20), nullable=False, default="PO")
    currency = Column(String(10), nullable=False, default="IDR")
    timezone = Column(String(50), nullable=False, default="Asia/Jakarta")

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    tenant = relationship("Tenant", back_populates="companies")
    user_roles = relationship("UserCompanyRole", back_populates="company")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_company_tenant_name'),
        CheckConstraint("entity_type IN ('PT', 'CV', 'UD', 'Firma')", name='ck_company_entity_type'),
    )

    def __repr__(self):
        return f"<Company(id={self.id}, tenant_id={self.tenant_id}, name='{self.name}')>"

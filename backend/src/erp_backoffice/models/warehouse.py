"""Warehouse model - a company-scoped stock location."""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, String, Text, UniqueConstraint, Uuid

from .base import Base, TimestampMixin, uuid_pk


class Warehouse(Base, TimestampMixin):
    __tablename__ = "warehouses"

    id = uuid_pk()
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    code = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="MAIN")
    address = Column(Text, nullable=True)
    city = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint('company_id', 'code', name='uq_warehouse_company_code'),
        CheckConstraint("type IN ('MAIN', 'BRANCH', 'CONSIGNMENT', 'TRANSIT')", name='ck_warehouse_type'),
    )

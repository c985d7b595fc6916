"""AuditLog SQLAlchemy model"""

from sqlalchemy import Column, ForeignKey, Index, String, Text, Uuid

from .base import Base, PortableJSONB, UTCDateTime, utcnow, uuid_pk


class AuditLog(Base):
    """Append-only record of security and RBAC events within a tenant."""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_tenant_created_at", "tenant_id", "created_at"),
    )

    id = uuid_pk()
    tenant_id = Column(Uuid, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="SET NULL"), nullable=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    action = Column(String(100), nullable=False)
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(Uuid, nullable=True)
    old_values = Column(PortableJSONB, nullable=True)
    new_values = Column(PortableJSONB, nullable=True)
    metadata_json = Column(PortableJSONB, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


"""Tenant and Subscription models - the root of multi-tenant isolation."""

from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from .base import Base, TimestampMixin, UTCDateTime, uuid_pk


class TenantStatus(str, Enum):
    TRIAL = "TRIAL"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class SubscriptionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAST_DUE = "PAST_DUE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


class Subscription(Base, TimestampMixin):
    """Billing subscription attached to a tenant."""
    __tablename__ = "subscriptions"

    id = uuid_pk()
    price = Column(Numeric(15, 2), nullable=False, default=300000)
    billing_cycle = Column(String(20), nullable=False, default="MONTHLY")
    status = Column(String(20), nullable=False, default=SubscriptionStatus.ACTIVE.value, index=True)
    current_period_start = Column(UTCDateTime, nullable=False)
    current_period_end = Column(UTCDateTime, nullable=False)
    next_billing_date = Column(UTCDateTime, nullable=False)
    grace_period_ends = Column(UTCDateTime, nullable=True)
    auto_renew = Column(Boolean, nullable=False, default=True)
    cancelled_at = Column(UTCDateTime, nullable=True)

    tenants = relationship("Tenant", back_populates="subscription")

    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'PAST_DUE', 'EXPIRED', 'CANCELLED')",
            name='ck_subscription_status'
        ),
    )


class Tenant(Base, TimestampMixin):
    """Top-level account. Owns companies; users reach it via user_tenants."""
    __tablename__ = "tenants"

    id = uuid_pk()
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=TenantStatus.TRIAL.value, index=True)
    trial_ends_at = Column(UTCDateTime, nullable=True)
    subscription_id = Column(Uuid, ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True)
    notes = Column(Text, nullable=True)

    subscription = relationship("Subscription", back_populates="tenants")
    companies = relationship("Company", back_populates="tenant")
    user_links = relationship("UserTenant", back_populates="tenant")

    __table_args__ = (
        CheckConstraint(
            "status IN ('TRIAL', 'ACTIVE', 'SUSPENDED', 'EXPIRED', 'CANCELLED')",
            name='ck_tenant_status'
        ),
    )

    def __repr__(self):
        return f"<Tenant(id={self.id}, name='{self.name}', status='{self.status}')>"

"""SQLAlchemy models for the ERP back office"""

from .base import Base
from .tenant import Tenant, TenantStatus, Subscription, SubscriptionStatus
from .user import User, UserTenant
from .company import Company
from .user_company_role import UserCompanyRole
from .auth_tokens import RefreshToken, PasswordReset, EmailVerification, LoginAttempt
from .audit_log import AuditLog
from .warehouse import Warehouse

__all__ = [
    "Base",
    "Tenant",
    "TenantStatus",
    "Subscription",
    "SubscriptionStatus",
    "User",
    "UserTenant",
    "Company",
    "UserCompanyRole",
    "RefreshToken",
    "PasswordReset",
    "EmailVerification",
    "LoginAttempt",
    "AuditLog",
    "Warehouse",
]

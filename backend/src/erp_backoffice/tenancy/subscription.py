"""Request-time subscription validation.

Runs after company context resolution and blocks tenants whose
subscription no longer allows access. A suspended tenant whose payment is
past due keeps access until the grace period ends, with a warning header.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import Depends, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import NotFoundError, SubscriptionError
from ..models.base import utcnow
from ..models.tenant import SubscriptionStatus, Tenant, TenantStatus
from .context import CompanyContext, get_company_context

logger = logging.getLogger(__name__)

WARNING_HEADER = "X-Subscription-Warning"
GRACE_PERIOD_WARNING = "Payment overdue - grace period active"


def _blocked(code: str, message: str, **extra) -> SubscriptionError:
    return SubscriptionError(message, code=code, status_code=status.HTTP_403_FORBIDDEN, extra=extra)


def validate_subscription(tenant: Tenant, now: Optional[datetime] = None) -> Optional[str]:
    """Check a tenant's subscription state.

    Returns:
        A warning string when access is allowed with a warning, else None

    Raises:
        SubscriptionError: 403 with SUBSCRIPTION_EXPIRED, SUBSCRIPTION_CANCELLED,
            TRIAL_EXPIRED, PAYMENT_OVERDUE, ACCOUNT_SUSPENDED or INVALID_TENANT_STATUS
    """
    now = now or utcnow()
    subscription = tenant.subscription

    if tenant.status == TenantStatus.EXPIRED.value:
        raise _blocked("SUBSCRIPTION_EXPIRED", "Subscription expired. Please renew to continue.")

    if tenant.status == TenantStatus.CANCELLED.value:
        raise _blocked("SUBSCRIPTION_CANCELLED", "Subscription has been cancelled.")

    if tenant.status == TenantStatus.TRIAL.value:
        if tenant.trial_ends_at is not None and now > tenant.trial_ends_at:
            raise _blocked("TRIAL_EXPIRED", "Trial period expired. Please subscribe to continue.")
        return None

    if tenant.status == TenantStatus.SUSPENDED.value:
        if subscription is not None and subscription.status == SubscriptionStatus.PAST_DUE.value:
            grace_ends = subscription.grace_period_ends
            if grace_ends is not None and now > grace_ends:
                raise _blocked(
                    "PAYMENT_OVERDUE",
                    "Payment overdue. Please update your payment method.",
                    grace_period_ended=grace_ends.isoformat(),
                )
            return GRACE_PERIOD_WARNING
        raise _blocked("ACCOUNT_SUSPENDED", "Account suspended. Please contact support.")

    if tenant.status == TenantStatus.ACTIVE.value:
        if subscription is not None and subscription.status == SubscriptionStatus.EXPIRED.value:
            raise _blocked("SUBSCRIPTION_EXPIRED", "Subscription expired. Please renew to continue.")
        return None

    raise _blocked("INVALID_TENANT_STATUS", "Invalid tenant status. Please contact support.")


def require_active_subscription(
    response: Response,
    ctx: CompanyContext = Depends(get_company_context),
    db: Session = Depends(get_db),
) -> CompanyContext:
    """Company context plus a subscription check on its tenant."""
    tenant = db.get(Tenant, ctx.tenant_id)
    if tenant is None:
        raise NotFoundError("Tenant")

    try:
        warning = validate_subscription(tenant)
    except SubscriptionError as e:
        logger.warning(
            "Request blocked by subscription state",
            extra={"tenant_id": str(tenant.id), "code": e.code}
        )
        raise

    if warning:
        response.headers[WARNING_HEADER] = warning
    return ctx

"""Tiered brute-force lockout backed by the login_attempts table.

Failed attempts are counted per email OR per IP over the longest tier
window. The highest tier whose threshold is reached decides the lockout
length, measured from the most recent failed attempt. Attempts soft-unlocked
by an administrator (unlocked_at set) no longer count.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session

from ..config import get_settings
from ..errors import AccountLockedError, NotFoundError
from ..models.auth_tokens import LoginAttempt
from ..models.base import utcnow
from ..observability.metrics import account_lockouts_total

logger = logging.getLogger(__name__)

FAILURE_USER_NOT_FOUND = "USER_NOT_FOUND"
FAILURE_ACCOUNT_INACTIVE = "ACCOUNT_INACTIVE"
FAILURE_INVALID_PASSWORD = "INVALID_PASSWORD"


@dataclass
class LockStatus:
    email: str
    is_locked: bool
    tier: int
    failed_attempts: int
    retry_after_seconds: int
    last_attempt_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None


class LockoutService:
    def __init__(self, db: Session):
        self.db = db

    def _failed_filter(self, email: str, ip_address: Optional[str]):
        identity = LoginAttempt.email == email
        if ip_address:
            identity = or_(identity, LoginAttempt.ip_address == ip_address)
        return (
            identity,
            LoginAttempt.is_success.is_(False),
            LoginAttempt.unlocked_at.is_(None),
        )

    def get_status(self, email: str, ip_address: Optional[str] = None,
                   now: Optional[datetime] = None) -> LockStatus:
        """Compute the current lock state for an email (and optionally an IP)."""
        email = email.lower()
        now = now or utcnow()
        tiers = get_settings().lockout_tiers()
        if not tiers:
            return LockStatus(email=email, is_locked=False, tier=0, failed_attempts=0, retry_after_seconds=0)

        lookback = max(duration for _, _, duration in tiers)
        filters = self._failed_filter(email, ip_address)

        count = self.db.execute(
            select(func.count(LoginAttempt.id)).where(*filters, LoginAttempt.created_at > now - lookback)
        ).scalar_one()

        last_attempt_at = self.db.execute(
            select(LoginAttempt.attempted_at)
            .where(*filters)
            .order_by(LoginAttempt.attempted_at.desc())
            .limit(1)
        ).scalar_one_or_none()

        status = LockStatus(
            email=email,
            is_locked=False,
            tier=0,
            failed_attempts=count,
            retry_after_seconds=0,
            last_attempt_at=last_attempt_at,
        )

        tier_hit = next(((tier, duration) for tier, attempts, duration in tiers if count >= attempts), None)
        if tier_hit is None or last_attempt_at is None:
            return status

        tier, duration = tier_hit
        locked_until = last_attempt_at + duration
        if now < locked_until:
            status.is_locked = True
            status.tier = tier
            status.retry_after_seconds = max(0, int((locked_until - now).total_seconds()))
            status.locked_until = locked_until
        return status

    def check(self, email: str, ip_address: Optional[str]) -> None:
        """Raise AccountLockedError if the email or IP is inside a lockout."""
        status = self.get_status(email, ip_address)
        if status.is_locked:
            account_lockouts_total.labels(tier=str(status.tier)).inc()
            logger.warning(
                "Login blocked by lockout",
                extra={"email": status.email, "ip_address": ip_address, "tier": status.tier}
            )
            raise AccountLockedError(status.tier, status.retry_after_seconds, status.failed_attempts)

    def record_attempt(
        self,
        email: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
        success: bool,
        failure_reason: Optional[str] = None,
    ) -> LoginAttempt:
        """Persist an attempt. Failed attempts are committed immediately so
        they survive the rollback of the failing request.
        """
        now = utcnow()
        attempt = LoginAttempt(
            email=email.lower(),
            ip_address=ip_address,
            user_agent=user_agent,
            is_success=success,
            failure_reason=failure_reason,
            attempted_at=now,
            created_at=now,
        )
        self.db.add(attempt)
        if success:
            self.db.flush()
        else:
            self.db.commit()
        return attempt

    def unlock(self, email: str, unlocked_by: UUID, reason: Optional[str]) -> int:
        """Soft-unlock every active failed attempt for an email.

        Raises:
            NotFoundError: Nothing to unlock
        """
        result = self.db.execute(
            update(LoginAttempt)
            .where(
                LoginAttempt.email == email.lower(),
                LoginAttempt.is_success.is_(False),
                LoginAttempt.unlocked_at.is_(None),
            )
            .values(unlocked_at=utcnow(), unlocked_by=unlocked_by, unlock_reason=reason)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Locked login attempts")

        logger.info(
            "Account unlocked",
            extra={"email": email, "attempts_cleared": result.rowcount, "unlocked_by": str(unlocked_by)}
        )
        return result.rowcount


"""Cleanup of expired authentication artifacts.

Each function deletes one kind of stale row, logs how many went and
returns the count. They do not commit; the calling task owns the
transaction. The tables involved are cross-tenant, so any session works.
"""

import logging
import time
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, or_
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.auth_tokens import EmailVerification, LoginAttempt, PasswordReset, RefreshToken
from ..models.base import utcnow
from ..observability.metrics import cleanup_deleted_total

logger = logging.getLogger(__name__)


def _run_delete(db: Session, job: str, stmt) -> int:
    start = time.perf_counter()
    deleted = db.execute(stmt.execution_options(synchronize_session=False)).rowcount or 0
    cleanup_deleted_total.labels(job=job).inc(deleted)
    logger.info(
        f"Cleanup {job}: deleted {deleted} rows",
        extra={"job": job, "deleted": deleted, "duration_ms": round((time.perf_counter() - start) * 1000, 2)}
    )
    return deleted


def cleanup_expired_refresh_tokens(db: Session) -> int:
    return _run_delete(
        db,
        "refresh_tokens",
        delete(RefreshToken).where(RefreshToken.expires_at < utcnow()),
    )


def cleanup_email_verifications(db: Session) -> int:
    """Delete verifications that expired or were already used."""
    return _run_delete(
        db,
        "email_verifications",
        delete(EmailVerification).where(
            or_(EmailVerification.expires_at < utcnow(), EmailVerification.used_at.is_not(None))
        ),
    )


def cleanup_password_resets(db: Session) -> int:
    """Delete password resets that expired or were already used."""
    return _run_delete(
        db,
        "password_resets",
        delete(PasswordReset).where(
            or_(PasswordReset.expires_at < utcnow(), PasswordReset.used_at.is_not(None))
        ),
    )


def cleanup_old_login_attempts(db: Session, retention_days: Optional[int] = None) -> int:
    """Delete login attempts older than the retention window (default 7 days)."""
    if retention_days is None:
        retention_days = get_settings().LOGIN_ATTEMPT_RETENTION_DAYS
    cutoff = utcnow() - timedelta(days=retention_days)
    return _run_delete(
        db,
        "login_attempts",
        delete(LoginAttempt).where(LoginAttempt.attempted_at < cutoff),
    )

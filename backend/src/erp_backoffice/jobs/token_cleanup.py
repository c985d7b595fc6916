"""Refresh token housekeeping.

Expired tokens are first marked revoked (so they show up as revoked in
session listings), then deleted once they have been revoked for longer than
the retention window.
"""

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.auth_tokens import RefreshToken
from ..models.base import utcnow
from ..observability.metrics import cleanup_deleted_total

logger = logging.getLogger(__name__)


class TokenCleanupService:
    def __init__(self, db: Session):
        self.db = db

    def revoke_expired_tokens(self) -> int:
        """Mark expired, still-active tokens as revoked. Returns the count."""
        now = utcnow()
        result = self.db.execute(
            update(RefreshToken)
            .where(RefreshToken.expires_at < now, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        revoked = result.rowcount or 0
        logger.info(f"Revoked {revoked} expired refresh tokens", extra={"revoked": revoked})
        return revoked

    def delete_old_revoked_tokens(self, days: Optional[int] = None) -> int:
        """Delete tokens revoked more than ``days`` ago (default REVOKED_TOKEN_RETENTION_DAYS)."""
        if days is None:
            days = get_settings().REVOKED_TOKEN_RETENTION_DAYS
        cutoff = utcnow() - timedelta(days=days)
        result = self.db.execute(
            delete(RefreshToken)
            .where(RefreshToken.is_revoked.is_(True), RefreshToken.revoked_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        deleted = result.rowcount or 0
        cleanup_deleted_total.labels(job="revoked_refresh_tokens").inc(deleted)
        logger.info(f"Deleted {deleted} revoked refresh tokens", extra={"deleted": deleted, "days": days})
        return deleted

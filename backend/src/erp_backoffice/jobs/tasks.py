"""Celery tasks for the cleanup jobs.

Each task opens a system session (cleanup spans tenants), commits on
success and returns a status dict. A failure is logged and reported as
``{"status": "failed"}``; it never propagates into the worker or beat.
"""

import logging
from typing import Any, Callable, Dict

from celery import shared_task
from sqlalchemy.orm import Session

from ..database import system_session
from .cleanup import (
    cleanup_email_verifications,
    cleanup_expired_refresh_tokens,
    cleanup_old_login_attempts,
    cleanup_password_resets,
)
from .token_cleanup import TokenCleanupService

logger = logging.getLogger(__name__)


def run_cleanup(job: str, fn: Callable[[Session], int]) -> Dict[str, Any]:
    """Run one cleanup function in its own transaction."""
    db = system_session()
    try:
        deleted = fn(db)
        db.commit()
        return {'status': 'completed', 'job': job, 'deleted': deleted}
    except Exception as e:
        db.rollback()
        logger.error(
            f"Cleanup job {job} failed",
            exc_info=True,
            extra={"job": job, "error": str(e)}
        )
        return {'status': 'failed', 'job': job, 'error': str(e), 'deleted': 0}
    finally:
        db.close()


@shared_task(name="cleanup.refresh_tokens")
def cleanup_refresh_tokens_task() -> Dict[str, Any]:
    return run_cleanup("refresh_tokens", cleanup_expired_refresh_tokens)


@shared_task(name="cleanup.email_verifications")
def cleanup_email_verifications_task() -> Dict[str, Any]:
    return run_cleanup("email_verifications", cleanup_email_verifications)


@shared_task(name="cleanup.password_resets")
def cleanup_password_resets_task() -> Dict[str, Any]:
    return run_cleanup("password_resets", cleanup_password_resets)


@shared_task(name="cleanup.login_attempts")
def cleanup_login_attempts_task() -> Dict[str, Any]:
    return run_cleanup("login_attempts", cleanup_old_login_attempts)


@shared_task(name="cleanup.revoked_tokens")
def cleanup_revoked_tokens_task(days: int = None) -> Dict[str, Any]:
    """Revoke expired refresh tokens, then delete long-revoked ones."""
    def job(db: Session) -> int:
        service = TokenCleanupService(db)
        service.revoke_expired_tokens()
        return service.delete_old_revoked_tokens(days)

    return run_cleanup("revoked_tokens", job)

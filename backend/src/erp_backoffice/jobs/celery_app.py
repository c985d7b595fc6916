"""Celery application and beat schedule.

Run a worker with the scheduler embedded:

    celery -A erp_backoffice.jobs.celery_app worker --beat --loglevel=info

All schedules are UTC.
"""

from celery import Celery
from celery.schedules import crontab

from ..config import Settings, get_settings


def build_beat_schedule(settings: Settings) -> dict:
    """Cleanup schedule; empty when CLEANUP_ENABLED is off."""
    if not settings.CLEANUP_ENABLED:
        return {}

    hour = settings.CLEANUP_HOUR_UTC
    return {
        'cleanup-refresh-tokens-hourly': {
            'task': 'cleanup.refresh_tokens',
            'schedule': crontab(minute=0),
        },
        'cleanup-login-attempts-daily': {
            'task': 'cleanup.login_attempts',
            'schedule': crontab(hour=hour, minute=0),
        },
        'cleanup-email-verifications-daily': {
            'task': 'cleanup.email_verifications',
            'schedule': crontab(hour=hour, minute=15),
        },
        'cleanup-password-resets-daily': {
            'task': 'cleanup.password_resets',
            'schedule': crontab(hour=hour, minute=30),
        },
        'cleanup-revoked-tokens-daily': {
            'task': 'cleanup.revoked_tokens',
            'schedule': crontab(hour=hour, minute=45),
            'kwargs': {'days': settings.REVOKED_TOKEN_RETENTION_DAYS},
        },
    }


def create_celery_app(settings: Settings = None) -> Celery:
    settings = settings or get_settings()
    app = Celery(
        'erp_backoffice',
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=['erp_backoffice.jobs.tasks'],
    )
    app.conf.update(
        timezone='UTC',
        enable_utc=True,
        task_serializer='json',
        result_serializer='json',
        accept_content=['json'],
        beat_schedule=build_beat_schedule(settings),
    )
    return app


celery_app = create_celery_app()

"""Scheduled maintenance jobs (Celery beat)."""

"""Celery workers for Sinoman."""

from sinoman.workers.maintenance import celery_app, cleanup_old_audit_logs

__all__ = [
    "celery_app",
    "cleanup_old_audit_logs",
]

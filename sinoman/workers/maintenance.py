"""Celery tasks for scheduled maintenance.

Provides:
- Daily audit log retention sweep
"""

import asyncio
import logging
from typing import Any, Dict

from celery import Celery
from celery.schedules import crontab

from sinoman.core.config import get_settings
from sinoman.services.audit import AuditLogger

logger = logging.getLogger(__name__)
settings = get_settings()

celery_app = Celery(
    "sinoman",
    broker=settings.celery_broker,
    backend=settings.celery_backend,
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_routes={
        "sinoman.workers.maintenance.cleanup_old_audit_logs": {"queue": "maintenance"},
    },
    task_default_queue="default",
    beat_schedule={
        "cleanup-old-audit-logs": {
            "task": "sinoman.workers.maintenance.cleanup_old_audit_logs",
            "schedule": crontab(hour=2, minute=0),
        },
    },
)


def build_audit_logger() -> AuditLogger:
    from sinoman.db.session import SessionLocal

    return AuditLogger(SessionLocal, settings)


@celery_app.task(name="sinoman.workers.maintenance.cleanup_old_audit_logs")
def cleanup_old_audit_logs() -> Dict[str, Any]:
    """Delete audit logs older than the configured retention period."""
    audit_logger = build_audit_logger()
    deleted = asyncio.run(audit_logger.cleanup_old_logs())
    logger.info("Audit retention sweep removed %d rows", deleted)
    return {
        "deleted": deleted,
        "retention_days": audit_logger.settings.audit_retention_days,
    }

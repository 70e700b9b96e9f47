"""Periodic background jobs (Celery beat)."""

from __future__ import annotations

import logging
import os
from datetime import timedelta
from typing import Any

from celery import Celery

from .settings import TRASH_RETENTION_DAYS

logger = logging.getLogger(__name__)

DEFAULT_REDIS = os.getenv("REDIS_URL", "redis://cache:6379/0")

celery_app = Celery(
    "beam",
    broker=os.getenv("CELERY_BROKER_URL", DEFAULT_REDIS),
    backend=os.getenv("CELERY_RESULT_BACKEND", DEFAULT_REDIS),
)

celery_app.conf.update(
    task_default_queue="default",
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    result_expires=3600,
    worker_max_tasks_per_child=100,
    beat_schedule={
        "purge-expired-galleries": {
            "task": "beam.tasks.purge_expired_galleries",
            "schedule": 3600.0,  # hourly
        },
        "refresh-cached-users": {
            "task": "beam.tasks.refresh_cached_users",
            "schedule": 21600.0,  # every 6 hours
        },
    },
    timezone="UTC",
)


@celery_app.task(name="beam.tasks.purge_expired_galleries", bind=True)
def purge_expired_galleries(self, retention_days: int = TRASH_RETENTION_DAYS) -> dict[str, Any]:
    """Permanently delete galleries that sat in the trash longer than the retention period."""
    from .db import session_scope
    from .services import galleries

    with session_scope() as db:
        purged = galleries.purge_expired(db, retention_days=retention_days)
    logger.info(f"Purged {purged} expired galleries (retention {retention_days} days)")
    return {"purged": purged}


@celery_app.task(name="beam.tasks.refresh_cached_users", bind=True)
def refresh_cached_users(self, older_than_hours: int = 24) -> dict[str, Any]:
    """Re-fetch cached identity profiles that haven't been refreshed recently."""
    from .db import session_scope
    from .services import user_cache

    with session_scope() as db:
        refreshed = user_cache.refresh_stale_users(db, timedelta(hours=older_than_hours))
    logger.info(f"Refreshed {refreshed} cached user profiles")
    return {"refreshed": refreshed}

"""Celery beat schedule configuration."""
from __future__ import annotations

from core.config import settings

CELERY_BEAT_SCHEDULE = {
    # Hourly bucket -> catalog reconciliation
    "sync-bucket": {
        "task": "infrastructure.tasks.tasks.sync.sync_bucket",
        "schedule": float(settings.storage.sync_interval_seconds),
        "options": {"queue": "low", "expires": settings.storage.sync_interval_seconds},
    },
}

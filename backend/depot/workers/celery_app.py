"""Celery application instance.

Start the worker::

    celery -A backend.depot.workers.celery_app worker --loglevel=info
    celery -A backend.depot.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery
from celery.schedules import crontab

from backend.depot.core.config import settings

celery = Celery(
    "depot",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Task modules loaded by the worker
celery.conf.imports = (
    "backend.depot.workers.tasks.exports",
    "backend.depot.workers.tasks.notifications",
    "backend.depot.workers.tasks.stock_alerts",
)

# Beat schedule
celery.conf.beat_schedule = {
    "scan-low-stock-hourly": {
        "task": "backend.depot.workers.tasks.stock_alerts.scan_low_stock",
        "schedule": crontab(minute=15),  # Every hour at :15
    },
    "pending-requests-reminder-daily": {
        "task": "backend.depot.workers.tasks.stock_alerts.pending_requests_reminder",
        "schedule": crontab(hour=7, minute=0),  # 7:00 AM UTC
    },
}

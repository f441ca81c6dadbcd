"""Periodic stock and request reminders."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from backend.depot.workers.celery_app import celery

logger = logging.getLogger(__name__)

PENDING_REMINDER_AGE = timedelta(hours=24)


def run_low_stock_scan(db: Session) -> list[str]:
    """Notify staff for every material at or below its threshold; returns the codes."""
    from backend.depot.models.catalog import Material
    from backend.depot.services.stock import check_low_stock

    flagged = [
        material.code
        for material in db.query(Material).filter(Material.deleted_at.is_(None)).all()
        if check_low_stock(db, material.id)
    ]
    db.commit()
    return flagged


def run_pending_reminder(db: Session, now: datetime | None = None) -> int:
    """Remind staff of PENDING requests older than a day; returns how many."""
    from backend.depot.models.request import Request, RequestStatus
    from backend.depot.services.notification_service import notify_pending_requests

    cutoff = (now or datetime.now(timezone.utc)) - PENDING_REMINDER_AGE
    count = (
        db.query(Request)
        .filter(Request.status == RequestStatus.PENDING, Request.created_at < cutoff)
        .count()
    )
    if count:
        notify_pending_requests(db, count)
        db.commit()
    return count


@celery.task(name="backend.depot.workers.tasks.stock_alerts.scan_low_stock")
def scan_low_stock() -> dict:
    from backend.depot.core.database import SessionLocal

    db = SessionLocal()
    try:
        flagged = run_low_stock_scan(db)
        logger.info("Low-stock scan flagged %d materials", len(flagged))
        return {"flagged": flagged}
    finally:
        db.close()


@celery.task(name="backend.depot.workers.tasks.stock_alerts.pending_requests_reminder")
def pending_requests_reminder() -> dict:
    from backend.depot.core.database import SessionLocal

    db = SessionLocal()
    try:
        return {"pending": run_pending_reminder(db)}
    finally:
        db.close()

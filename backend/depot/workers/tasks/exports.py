"""Async export tasks: render reports to files in the background."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from backend.depot.workers.celery_app import celery

logger = logging.getLogger(__name__)


def render_and_store(
    db: Session,
    report_type: str,
    fmt: str,
    start_date: str | None,
    end_date: str | None,
    user_id: str,
    storage=None,
) -> str:
    """Build, render and save a report, then notify the requester. Returns the file name."""
    from backend.depot.schemas.reports import ReportFormat, ReportType
    from backend.depot.services.notification_service import notify_report_ready
    from backend.depot.services.reports import build_report, store_report

    report = build_report(
        db,
        ReportType(report_type),
        date.fromisoformat(start_date) if start_date else None,
        date.fromisoformat(end_date) if end_date else None,
    )
    file_name = store_report(report, ReportFormat(fmt), storage=storage)
    notify_report_ready(db, UUID(user_id), report.title, file_name)
    db.commit()
    return file_name


@celery.task(name="backend.depot.workers.tasks.exports.generate_report_file")
def generate_report_file(
    report_type: str,
    fmt: str,
    start_date: str | None,
    end_date: str | None,
    user_id: str,
) -> dict:
    """Render a report and store it via FileStorageService.

    Returns a dict with ``{"file_name": "...", "status": "done"}``.
    """
    from backend.depot.core.database import SessionLocal

    db = SessionLocal()
    try:
        file_name = render_and_store(db, report_type, fmt, start_date, end_date, user_id)
        logger.info("Generated %s report %s for %s", report_type, file_name, user_id)
        return {"status": "done", "file_name": file_name}
    finally:
        db.close()

"""In-app notifications with optional templated email.

Creating a notification stores the row. Once the caller's transaction commits
it is pushed to any open SSE stream of the recipient and, when email is
enabled, a templated email is queued through Celery. A rollback discards both.
None of the helpers here commit; the caller owns the transaction.
"""

from __future__ import annotations

import html
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from backend.depot.core.config import settings
from backend.depot.core.errors import NotFoundError
from backend.depot.models.catalog import Material
from backend.depot.models.notification import (
    Notification,
    NotificationCategory,
    NotificationLevel,
)
from backend.depot.models.request import Delivery, Request, RequestStatus
from backend.depot.models.user import RoleEnum, User
from backend.depot.schemas.common import Page
from backend.depot.schemas.notification import NotificationOut
from backend.depot.services.email_service import EmailService
from backend.depot.services.events import broker
from backend.depot.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)


class EmailTemplate(str, Enum):
    REQUEST_STATUS = "REQUEST_STATUS"
    DELIVERY_COMPLETED = "DELIVERY_COMPLETED"
    LOW_STOCK_ALERT = "LOW_STOCK_ALERT"
    REPORT_READY = "REPORT_READY"


_TEMPLATES: dict[EmailTemplate, dict[str, str]] = {
    EmailTemplate.REQUEST_STATUS: {
        "subject": "Request {status}: {material_name}",
        "body": (
            "<h2>Material Request Update</h2>"
            "<p>Your request for <strong>{quantity} {material_name}</strong> on "
            "project <strong>{project_name}</strong> is now "
            "<strong>{status}</strong>.</p>"
        ),
    },
    EmailTemplate.DELIVERY_COMPLETED: {
        "subject": "Delivered: {material_name}",
        "body": (
            "<h2>Delivery Completed</h2>"
            "<p><strong>{quantity} {material_name}</strong> has been delivered "
            "to project <strong>{project_name}</strong>.</p>"
        ),
    },
    EmailTemplate.LOW_STOCK_ALERT: {
        "subject": "Low Stock Alert: {material_name}",
        "body": (
            "<h2>Low Stock Alert</h2>"
            "<p>Material <strong>{material_name}</strong> ({material_code}) has "
            "fallen to <strong>{available}</strong>, at or below its threshold "
            "of {threshold}.</p>"
        ),
    },
    EmailTemplate.REPORT_READY: {
        "subject": "Report Ready: {report_type}",
        "body": (
            "<h2>Report Ready</h2>"
            "<p>Your <strong>{report_type}</strong> report has been generated "
            "and is ready for download as <code>{file_name}</code>.</p>"
        ),
    },
}


class NotificationService:
    """Send typed email notifications using predefined templates."""

    def __init__(self) -> None:
        self._email = EmailService()

    def send(
        self,
        template: EmailTemplate,
        recipient_email: str,
        **kwargs: str,
    ) -> bool:
        """Render the template for *template* and send via email."""
        spec = _TEMPLATES.get(template)
        if spec is None:
            logger.error("Unknown email template: %s", template)
            return False

        subject = spec["subject"].format(**kwargs)
        body = spec["body"].format(**{k: html.escape(str(v)) for k, v in kwargs.items()})
        return self._email.send(to=recipient_email, subject=subject, body_html=body)


def _queue_email(
    user_id: UUID, email: str | None, template: EmailTemplate, context: dict[str, str]
) -> None:
    if not settings.NOTIFICATION_ENABLED or not email:
        return
    from backend.depot.workers.tasks.notifications import send_notification_email

    try:
        send_notification_email.delay(template.value, email, context)
    except Exception:
        logger.exception("Could not queue %s email for user %s", template.value, user_id)


def _fmt_qty(value: Decimal) -> str:
    return format(Decimal(value).normalize(), "f")


# ─── Dispatch after commit ────────────────────────────────────────────────────

_PENDING_KEY = "depot_pending_notifications"


def _after_commit(db: Session, action: Callable[[], None]) -> None:
    db.info.setdefault(_PENDING_KEY, []).append(action)


@event.listens_for(Session, "after_commit")
def _dispatch_pending(session: Session) -> None:
    for action in session.info.pop(_PENDING_KEY, []):
        try:
            action()
        except Exception:
            logger.exception("Post-commit notification dispatch failed")


@event.listens_for(Session, "after_transaction_end")
def _discard_pending(session: Session, transaction: SessionTransaction) -> None:
    # Runs after after_commit; anything left belongs to a rolled back transaction.
    if transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)


# ─── Core ─────────────────────────────────────────────────────────────────────


def create_notification(
    db: Session,
    *,
    user: User,
    title: str,
    message: str,
    level: NotificationLevel = NotificationLevel.INFO,
    category: NotificationCategory = NotificationCategory.SYSTEM,
    reference_type: str | None = None,
    reference_id: UUID | None = None,
    email_template: EmailTemplate | None = None,
    email_context: dict[str, Any] | None = None,
) -> Notification:
    notification = Notification(
        user_id=user.id,
        title=title,
        message=message,
        type=level,
        category=category,
        reference_type=reference_type,
        reference_id=reference_id,
        is_read=False,
    )
    db.add(notification)
    db.flush()

    user_id, email = user.id, user.email
    payload = jsonable_encoder(
        {
            "id": notification.id,
            "title": title,
            "message": message,
            "type": level.value,
            "category": category.value,
            "reference_type": reference_type,
            "reference_id": reference_id,
        }
    )
    _after_commit(db, lambda: broker.publish(user_id, payload))
    if email_template is not None:
        context = {k: str(v) for k, v in (email_context or {}).items()}
        _after_commit(db, lambda: _queue_email(user_id, email, email_template, context))
    return notification


# ─── Domain triggers ──────────────────────────────────────────────────────────


_STATUS_LEVEL = {
    RequestStatus.PENDING: NotificationLevel.INFO,
    RequestStatus.APPROVED: NotificationLevel.SUCCESS,
    RequestStatus.REJECTED: NotificationLevel.ERROR,
    RequestStatus.DELIVERED: NotificationLevel.SUCCESS,
}


def notify_request_status_change(db: Session, request: Request) -> Notification | None:
    requester = db.get(User, request.requested_by)
    if requester is None:
        return None
    quantity = _fmt_qty(request.deliverable_qty)
    context = {
        "status": request.status.value.lower(),
        "material_name": request.material.name,
        "project_name": request.project.name,
        "quantity": quantity,
    }
    return create_notification(
        db,
        user=requester,
        title=f"Request {context['status']}",
        message=(
            f"Your request for {quantity} {request.material.name} "
            f"({request.project.name}) is now {context['status']}."
        ),
        level=_STATUS_LEVEL[request.status],
        category=NotificationCategory.REQUEST_STATUS,
        reference_type="request",
        reference_id=request.id,
        email_template=EmailTemplate.REQUEST_STATUS,
        email_context=context,
    )


def notify_delivery_status(db: Session, delivery: Delivery) -> Notification | None:
    request = delivery.request
    requester = db.get(User, request.requested_by)
    if requester is None:
        return None
    quantity = _fmt_qty(delivery.quantity)
    status_text = delivery.status.value.lower()
    template = None
    level = NotificationLevel.INFO
    if status_text == "completed":
        template = EmailTemplate.DELIVERY_COMPLETED
        level = NotificationLevel.SUCCESS
    return create_notification(
        db,
        user=requester,
        title=f"Delivery {status_text}",
        message=(
            f"Delivery of {quantity} {request.material.name} to "
            f"{request.project.name} is {status_text}."
        ),
        level=level,
        category=NotificationCategory.DELIVERY_STATUS,
        reference_type="delivery",
        reference_id=delivery.id,
        email_template=template,
        email_context={
            "material_name": request.material.name,
            "project_name": request.project.name,
            "quantity": quantity,
        },
    )


def _depot_staff(db: Session) -> list[User]:
    return (
        db.query(User)
        .filter(
            User.is_active.is_(True),
            User.role.in_([RoleEnum.ADMIN, RoleEnum.WAREHOUSE_KEEPER]),
        )
        .all()
    )


def notify_low_stock(
    db: Session, material: Material, available: Decimal
) -> list[Notification]:
    """Alert every active admin and warehouse keeper."""
    recipients = _depot_staff(db)
    logger.warning(
        "Low stock: %s (%s) available=%s threshold=%s",
        material.code, material.name, available, material.min_stock_qty,
    )
    level = NotificationLevel.ERROR if available <= 0 else NotificationLevel.WARNING
    context = {
        "material_name": material.name,
        "material_code": material.code,
        "available": _fmt_qty(available),
        "threshold": _fmt_qty(material.min_stock_qty),
    }
    return [
        create_notification(
            db,
            user=user,
            title="Low stock",
            message=(
                f"{material.name} ({material.code}) is down to "
                f"{context['available']} (threshold {context['threshold']})."
            ),
            level=level,
            category=NotificationCategory.STOCK_LEVEL,
            reference_type="material",
            reference_id=material.id,
            email_template=EmailTemplate.LOW_STOCK_ALERT,
            email_context=context,
        )
        for user in recipients
    ]


def notify_pending_requests(db: Session, count: int) -> list[Notification]:
    """Remind depot staff of requests still waiting for review."""
    return [
        create_notification(
            db,
            user=user,
            title="Pending requests",
            message=f"{count} material request(s) have been waiting for review for over a day.",
            level=NotificationLevel.WARNING,
            category=NotificationCategory.REQUEST_STATUS,
            reference_type="request",
        )
        for user in _depot_staff(db)
    ]


def notify_report_ready(
    db: Session, user_id: UUID, report_type: str, file_name: str
) -> Notification | None:
    user = db.get(User, user_id)
    if user is None:
        return None
    return create_notification(
        db,
        user=user,
        title="Report ready",
        message=f"Your {report_type} report is ready: {file_name}",
        level=NotificationLevel.SUCCESS,
        category=NotificationCategory.SYSTEM,
        reference_type="report",
        email_template=EmailTemplate.REPORT_READY,
        email_context={"report_type": report_type, "file_name": file_name},
    )


# ─── Inbox ────────────────────────────────────────────────────────────────────


def list_notifications(
    db: Session, user_id: UUID, params: PageParams, unread_only: bool = False
) -> Page[NotificationOut]:
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    rows, meta = paginate(query.order_by(Notification.created_at.desc()), params)
    return Page[NotificationOut](
        data=[NotificationOut.model_validate(n) for n in rows], meta=meta
    )


def unread_count(db: Session, user_id: UUID) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(db: Session, user_id: UUID, notification_id: UUID) -> NotificationOut:
    notification = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(notification)
    return NotificationOut.model_validate(notification)


def mark_all_read(db: Session, user_id: UUID) -> int:
    affected = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update(
            {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    return affected


def delete_read(db: Session, user_id: UUID) -> int:
    affected = (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(True))
        .delete(synchronize_session=False)
    )
    db.commit()
    return affected

"""Async notification tasks."""

from __future__ import annotations

from backend.depot.workers.celery_app import celery


@celery.task(name="backend.depot.workers.tasks.notifications.send_notification_email")
def send_notification_email(
    template: str,
    recipient_email: str,
    template_kwargs: dict,
) -> dict:
    """Render an email template and send it."""
    from backend.depot.services.notification_service import (
        EmailTemplate,
        NotificationService,
    )

    try:
        tmpl = EmailTemplate(template)
    except ValueError:
        return {"status": "error", "detail": f"Unknown template: {template}"}

    ok = NotificationService().send(tmpl, recipient_email, **template_kwargs)
    return {"status": "sent" if ok else "skipped"}

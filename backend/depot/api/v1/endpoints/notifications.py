from __future__ import annotations

import asyncio
import queue
from collections.abc import AsyncGenerator
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from backend.depot.api.deps import get_current_user, get_stream_user, pagination_params
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.notification import BulkResultOut, NotificationOut, UnreadCountOut
from backend.depot.services import notification_service
from backend.depot.services.events import broker, format_sse, keepalive_message
from backend.depot.services.pagination import PageParams

router = APIRouter()

KEEPALIVE_SECONDS = 15


@router.get("", response_model=Page[NotificationOut])
def list_notifications(
    unread_only: bool = Query(False),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Page[NotificationOut]:
    return notification_service.list_notifications(
        db, current_user.id, params, unread_only=unread_only
    )


@router.get("/unread-count", response_model=UnreadCountOut)
def unread_count(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnreadCountOut:
    return UnreadCountOut(unread=notification_service.unread_count(db, current_user.id))


@router.put("/read-all", response_model=Envelope[BulkResultOut])
def mark_all_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[BulkResultOut]:
    affected = notification_service.mark_all_read(db, current_user.id)
    return Envelope[BulkResultOut](
        message="All notifications marked as read", data=BulkResultOut(affected=affected)
    )


@router.put("/{notification_id}/read", response_model=Envelope[NotificationOut])
def mark_read(
    notification_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[NotificationOut]:
    notification = notification_service.mark_read(db, current_user.id, notification_id)
    return Envelope[NotificationOut](message="Notification marked as read", data=notification)


@router.delete("/read", response_model=Envelope[BulkResultOut])
def delete_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[BulkResultOut]:
    affected = notification_service.delete_read(db, current_user.id)
    return Envelope[BulkResultOut](
        message="Read notifications deleted", data=BulkResultOut(affected=affected)
    )


# ─── Live stream ──────────────────────────────────────────────────────────────


async def _event_generator(request: Request, user_id: UUID) -> AsyncGenerator[str, None]:
    q = broker.subscribe(user_id)
    try:
        yield format_sse({"user_id": str(user_id)}, event="connected")
        while True:
            if await request.is_disconnected():
                break
            try:
                payload = await asyncio.to_thread(q.get, True, KEEPALIVE_SECONDS)
                yield format_sse(payload, event="notification", event_id=payload.get("id"))
            except queue.Empty:
                yield keepalive_message()
    finally:
        broker.unsubscribe(user_id, q)


@router.get("/stream")
async def stream_notifications(
    request: Request,
    user: User = Depends(get_stream_user),
) -> StreamingResponse:
    """Server-sent events carrying the caller's new notifications."""
    return StreamingResponse(
        _event_generator(request, user.id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )

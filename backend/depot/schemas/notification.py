from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from backend.depot.models.notification import NotificationCategory, NotificationLevel


class NotificationOut(BaseModel):
    id: UUID
    user_id: UUID
    title: str
    message: str
    type: NotificationLevel
    category: NotificationCategory
    reference_type: str | None
    reference_id: UUID | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountOut(BaseModel):
    unread: int


class BulkResultOut(BaseModel):
    affected: int

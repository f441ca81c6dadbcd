from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from backend.depot.models.file import FileCategory


class FileOut(BaseModel):
    id: UUID
    file_name: str
    original_name: str
    mime_type: str
    size: int
    category: FileCategory
    description: str | None
    tags: list[str]
    uploaded_by: UUID
    is_active: bool
    url: str
    created_at: datetime


class FileUpdate(BaseModel):
    description: str | None = Field(None, max_length=2000)
    tags: list[str] | None = None
    is_active: bool | None = None

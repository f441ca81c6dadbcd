"""Uploaded documents: validation, metadata rows and byte storage."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.depot.core.errors import NotFoundError, ValidationError
from backend.depot.models.file import FileCategory, StoredFile
from backend.depot.schemas.common import Page
from backend.depot.schemas.file import FileOut, FileUpdate
from backend.depot.services.audit import log_action
from backend.depot.services.file_service import FileStorageService, random_file_name
from backend.depot.services.pagination import PageParams, paginate

logger = logging.getLogger(__name__)

MB = 1024 * 1024

_IMAGE_AND_PDF = frozenset({"application/pdf", "image/jpeg", "image/png"})
_OFFICE_DOCS = frozenset(
    {
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)

ALLOWED_MIME_TYPES: dict[FileCategory, frozenset[str]] = {
    FileCategory.MATERIAL_DOCUMENT: _IMAGE_AND_PDF | _OFFICE_DOCS,
    FileCategory.REQUEST_DOCUMENT: _IMAGE_AND_PDF,
    FileCategory.DELIVERY_DOCUMENT: _IMAGE_AND_PDF,
    FileCategory.USER_DOCUMENT: _IMAGE_AND_PDF,
}

MAX_SIZE: dict[FileCategory, int] = {
    FileCategory.MATERIAL_DOCUMENT: 5 * MB,
    FileCategory.REQUEST_DOCUMENT: 5 * MB,
    FileCategory.DELIVERY_DOCUMENT: 10 * MB,
    FileCategory.USER_DOCUMENT: 5 * MB,
}


def parse_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [t.strip() for t in raw.split(",") if t.strip()]


def _file_out(f: StoredFile) -> FileOut:
    return FileOut(
        id=f.id,
        file_name=f.file_name,
        original_name=f.original_name,
        mime_type=f.mime_type,
        size=f.size,
        category=f.category,
        description=f.description,
        tags=list(f.tags or []),
        uploaded_by=f.uploaded_by,
        is_active=f.is_active,
        url=f"/api/v1/files/{f.id}/download",
        created_at=f.created_at,
    )


def get_file_record(db: Session, file_id: UUID) -> StoredFile:
    f = (
        db.query(StoredFile)
        .filter(StoredFile.id == file_id, StoredFile.deleted_at.is_(None))
        .first()
    )
    if f is None:
        raise NotFoundError("File not found")
    return f


def validate_upload(category: FileCategory, mime_type: str | None, size: int) -> None:
    if size <= 0:
        raise ValidationError("File is empty")
    allowed = ALLOWED_MIME_TYPES[category]
    if mime_type not in allowed:
        raise ValidationError(
            f"File type {mime_type} is not allowed for {category.value}",
            details={"allowed": sorted(allowed)},
        )
    limit = MAX_SIZE[category]
    if size > limit:
        raise ValidationError(
            f"File exceeds the {limit // MB} MB limit for {category.value}",
            details={"size": size, "limit": limit},
        )


# ─── Operations ───────────────────────────────────────────────────────────────


def upload_file(
    db: Session,
    *,
    content: bytes,
    original_name: str,
    mime_type: str | None,
    category: FileCategory,
    user_id: UUID,
    description: str | None = None,
    tags: list[str] | None = None,
    storage: FileStorageService | None = None,
    ip_address: str | None = None,
) -> FileOut:
    validate_upload(category, mime_type, len(content))

    file_name = random_file_name(original_name)
    relative_path = f"{category.value}/{file_name}"
    (storage or FileStorageService()).save(relative_path, content)

    stored = StoredFile(
        file_name=file_name,
        original_name=original_name,
        mime_type=mime_type,
        size=len(content),
        path=relative_path,
        category=category,
        description=description,
        tags=tags or [],
        uploaded_by=user_id,
        is_active=True,
    )
    db.add(stored)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="FILE_UPLOADED",
        resource_type="files",
        resource_id=str(stored.id),
        ip_address=ip_address,
        changes={"original_name": original_name, "category": category.value, "size": len(content)},
    )
    db.commit()
    db.refresh(stored)
    return _file_out(stored)


def list_files(
    db: Session,
    params: PageParams,
    *,
    category: FileCategory | None = None,
    search: str | None = None,
) -> Page[FileOut]:
    query = db.query(StoredFile).filter(StoredFile.deleted_at.is_(None))
    if category is not None:
        query = query.filter(StoredFile.category == category)
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(StoredFile.original_name).like(like),
                func.lower(func.coalesce(StoredFile.description, "")).like(like),
            )
        )
    rows, meta = paginate(query.order_by(StoredFile.created_at.desc(), StoredFile.id), params)
    return Page[FileOut](data=[_file_out(f) for f in rows], meta=meta)


def get_file(db: Session, file_id: UUID) -> FileOut:
    return _file_out(get_file_record(db, file_id))


def update_file(
    db: Session,
    file_id: UUID,
    data: FileUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> FileOut:
    stored = get_file_record(db, file_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    for field, value in changes.items():
        setattr(stored, field, value)

    log_action(
        db,
        user_id=user_id,
        action="FILE_UPDATED",
        resource_type="files",
        resource_id=str(stored.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    db.refresh(stored)
    return _file_out(stored)


def delete_file(
    db: Session,
    file_id: UUID,
    user_id: UUID,
    storage: FileStorageService | None = None,
    ip_address: str | None = None,
) -> None:
    stored = get_file_record(db, file_id)
    (storage or FileStorageService()).delete(stored.path)
    stored.deleted_at = datetime.now(timezone.utc)
    stored.is_active = False

    log_action(
        db,
        user_id=user_id,
        action="FILE_DELETED",
        resource_type="files",
        resource_id=str(stored.id),
        ip_address=ip_address,
        changes={"path": stored.path},
    )
    db.commit()


def read_file(
    db: Session, file_id: UUID, storage: FileStorageService | None = None
) -> tuple[StoredFile, bytes]:
    stored = get_file_record(db, file_id)
    store = storage or FileStorageService()
    if not store.exists(stored.path):
        logger.error("File %s is missing its stored bytes at %s", stored.id, stored.path)
        raise NotFoundError("Stored file content is missing")
    return stored, store.read(stored.path)

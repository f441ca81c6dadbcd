from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, Request, Response, UploadFile, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.file import FileCategory
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.file import FileOut, FileUpdate
from backend.depot.services import documents
from backend.depot.services.file_service import content_disposition
from backend.depot.services.pagination import PageParams

router = APIRouter()


def _file_response(db: Session, file_id: UUID, disposition: str) -> Response:
    stored, content = documents.read_file(db, file_id)
    return Response(
        content=content,
        media_type=stored.mime_type,
        headers={"Content-Disposition": content_disposition(disposition, stored.original_name)},
    )


@router.post("/upload", response_model=Envelope[FileOut], status_code=status.HTTP_201_CREATED)
def upload_file(
    request: Request,
    file: UploadFile = File(...),
    category: FileCategory = Form(...),
    description: str | None = Form(None),
    tags: str | None = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("file:write")),
) -> Envelope[FileOut]:
    # One byte past the limit is enough to reject an oversize upload.
    content = file.file.read(documents.MAX_SIZE[category] + 1)
    stored = documents.upload_file(
        db,
        content=content,
        original_name=file.filename or "upload",
        mime_type=file.content_type,
        category=category,
        user_id=current_user.id,
        description=description,
        tags=documents.parse_tags(tags),
        ip_address=client_ip(request),
    )
    return Envelope[FileOut](message="File uploaded", data=stored)


@router.get("", response_model=Page[FileOut])
def list_files(
    category: FileCategory | None = Query(None),
    search: str | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("file:read")),
) -> Page[FileOut]:
    return documents.list_files(db, params, category=category, search=search)


@router.get("/{file_id}", response_model=FileOut)
def get_file(
    file_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("file:read")),
) -> FileOut:
    return documents.get_file(db, file_id)


@router.get("/{file_id}/download")
def download_file(
    file_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("file:read")),
) -> Response:
    return _file_response(db, file_id, "attachment")


@router.get("/{file_id}/preview")
def preview_file(
    file_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("file:read")),
) -> Response:
    return _file_response(db, file_id, "inline")


@router.put("/{file_id}", response_model=Envelope[FileOut])
def update_file(
    file_id: UUID,
    body: FileUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("file:write")),
) -> Envelope[FileOut]:
    stored = documents.update_file(db, file_id, body, current_user.id, client_ip(request))
    return Envelope[FileOut](message="File updated", data=stored)


@router.delete("/{file_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_file(
    file_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("file:delete")),
) -> Response:
    documents.delete_file(db, file_id, current_user.id, ip_address=client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

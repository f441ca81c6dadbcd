from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.request import RequestStatus
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.request import (
    RequestCreate,
    RequestDetailOut,
    RequestOut,
    RequestReview,
    RequestStatusUpdate,
)
from backend.depot.services import requests as request_service
from backend.depot.services import search as search_service
from backend.depot.services.pagination import PageParams

router = APIRouter()


@router.post("", response_model=Envelope[RequestOut], status_code=status.HTTP_201_CREATED)
def create_request(
    body: RequestCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("request:create")),
) -> Envelope[RequestOut]:
    req = request_service.create_request(db, body, current_user.id, client_ip(request))
    return Envelope[RequestOut](message="Request created", data=req)


@router.get("", response_model=Page[RequestOut])
def list_requests(
    status: RequestStatus | None = Query(None),
    project_id: UUID | None = Query(None),
    material_id: UUID | None = Query(None),
    requested_by: UUID | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    min_qty: Decimal | None = Query(None, ge=0),
    max_qty: Decimal | None = Query(None, ge=0),
    sort_by: Literal["created_at", "requested_qty", "status"] = Query("created_at"),
    sort_direction: Literal["asc", "desc"] = Query("desc"),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("request:read")),
) -> Page[RequestOut]:
    return request_service.list_requests(
        db,
        params,
        status=status,
        project_id=project_id,
        material_id=material_id,
        requested_by=requested_by,
        start_date=start_date,
        end_date=end_date,
        min_qty=min_qty,
        max_qty=max_qty,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )


@router.get("/suggestions", response_model=list[str])
def request_suggestions(
    prefix: str = Query(..., min_length=1, max_length=100),
    field: str = Query("request_note"),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("request:read")),
) -> list[str]:
    return search_service.suggestions(db, "requests", field, prefix, limit)


@router.get("/{request_id}", response_model=RequestDetailOut)
def get_request(
    request_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("request:read")),
) -> RequestDetailOut:
    return request_service.get_request(db, request_id)


@router.put("/{request_id}", response_model=Envelope[RequestOut])
def review_request(
    request_id: UUID,
    body: RequestReview,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("request:approve")),
) -> Envelope[RequestOut]:
    """Approve or reject a pending request, optionally revising the quantity."""
    req = request_service.review_request(
        db, request_id, body, current_user.id, client_ip(request)
    )
    return Envelope[RequestOut](message=f"Request {req.status.value.lower()}", data=req)


@router.patch("/{request_id}/status", response_model=Envelope[RequestOut])
def change_request_status(
    request_id: UUID,
    body: RequestStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("request:approve")),
) -> Envelope[RequestOut]:
    req = request_service.change_status(
        db, request_id, body, current_user.id, client_ip(request)
    )
    return Envelope[RequestOut](message="Request status updated", data=req)

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.request import DeliveryStatus
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.request import (
    DeliveryComplete,
    DeliveryOut,
    DeliveryStatusUpdate,
)
from backend.depot.services import deliveries
from backend.depot.services import search as search_service
from backend.depot.services.pagination import PageParams

router = APIRouter()


@router.post(
    "/{request_id}/complete",
    response_model=Envelope[DeliveryOut],
    status_code=status.HTTP_201_CREATED,
)
def complete_delivery(
    request_id: UUID,
    body: DeliveryComplete,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("delivery:complete")),
) -> Envelope[DeliveryOut]:
    """Issue the approved quantity from an inventory item and close the request."""
    delivery = deliveries.complete_delivery(
        db, request_id, body, current_user.id, client_ip(request)
    )
    return Envelope[DeliveryOut](message="Delivery completed", data=delivery)


@router.get("", response_model=Page[DeliveryOut])
def list_deliveries(
    status: DeliveryStatus | None = Query(None),
    project_id: UUID | None = Query(None),
    material_id: UUID | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("delivery:read")),
) -> Page[DeliveryOut]:
    return deliveries.list_deliveries(
        db,
        params,
        status=status,
        project_id=project_id,
        material_id=material_id,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/suggestions", response_model=list[str])
def delivery_suggestions(
    prefix: str = Query(..., min_length=1, max_length=100),
    field: str = Query("notes"),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("delivery:read")),
) -> list[str]:
    return search_service.suggestions(db, "deliveries", field, prefix, limit)


@router.get("/{delivery_id}", response_model=DeliveryOut)
def get_delivery(
    delivery_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("delivery:read")),
) -> DeliveryOut:
    return deliveries.get_delivery(db, delivery_id)


@router.patch("/{delivery_id}/status", response_model=Envelope[DeliveryOut])
def update_delivery_status(
    delivery_id: UUID,
    body: DeliveryStatusUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("delivery:complete")),
) -> Envelope[DeliveryOut]:
    delivery = deliveries.update_delivery_status(
        db, delivery_id, body, current_user.id, client_ip(request)
    )
    return Envelope[DeliveryOut](message="Delivery status updated", data=delivery)

"""Material requests raised against projects and their review lifecycle."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from backend.depot.core.errors import InsufficientStockError, NotFoundError, ValidationError
from backend.depot.models.request import Request, RequestStatus
from backend.depot.schemas.common import Page
from backend.depot.schemas.request import (
    DeliveryOut,
    RequestCreate,
    RequestDetailOut,
    RequestOut,
    RequestReview,
    RequestStatusUpdate,
)
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache
from backend.depot.services.materials import get_material_record
from backend.depot.services.notification_service import notify_request_status_change
from backend.depot.services.pagination import PageParams, paginate
from backend.depot.services.periods import check_range, day_end, day_start
from backend.depot.services.projects import get_project_record
from backend.depot.services.stock import available_stock

ALLOWED_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.REJECTED}),
    RequestStatus.REJECTED: frozenset({RequestStatus.PENDING}),
    RequestStatus.DELIVERED: frozenset(),
}

_SORT_COLUMNS = {
    "created_at": Request.created_at,
    "requested_qty": Request.requested_qty,
    "status": Request.status,
}


def request_out(req: Request) -> RequestOut:
    return RequestOut(
        id=req.id,
        project_id=req.project_id,
        project_name=req.project.name,
        material_id=req.material_id,
        material_code=req.material.code,
        material_name=req.material.name,
        uom_symbol=req.material.uom.symbol,
        requested_by=req.requested_by,
        requester_username=req.requester.username,
        requested_qty=req.requested_qty,
        revised_qty=req.revised_qty,
        status=req.status,
        request_note=req.request_note,
        review_note=req.review_note,
        reviewed_by=req.reviewed_by,
        reviewed_at=req.reviewed_at,
        created_at=req.created_at,
    )


def delivery_out(req: Request) -> DeliveryOut | None:
    d = req.delivery
    if d is None:
        return None
    return DeliveryOut(
        id=d.id,
        request_id=req.id,
        project_id=req.project_id,
        project_name=req.project.name,
        material_id=req.material_id,
        material_name=req.material.name,
        inventory_item_id=d.inventory_item_id,
        quantity=d.quantity,
        status=d.status,
        delivery_date=d.delivery_date,
        delivered_by=d.delivered_by,
        notes=d.notes,
        created_at=d.created_at,
    )


def get_request_record(db: Session, request_id: UUID) -> Request:
    req = db.query(Request).filter(Request.id == request_id).first()
    if req is None:
        raise NotFoundError("Request not found")
    return req


# ─── Queries ──────────────────────────────────────────────────────────────────


def list_requests(
    db: Session,
    params: PageParams,
    *,
    status: RequestStatus | None = None,
    project_id: UUID | None = None,
    material_id: UUID | None = None,
    requested_by: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    min_qty: Decimal | None = None,
    max_qty: Decimal | None = None,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
) -> Page[RequestOut]:
    check_range(start_date, end_date)
    if min_qty is not None and max_qty is not None and max_qty < min_qty:
        raise ValidationError("max_qty must not be below min_qty")

    query = db.query(Request)
    if status is not None:
        query = query.filter(Request.status == status)
    if project_id is not None:
        query = query.filter(Request.project_id == project_id)
    if material_id is not None:
        query = query.filter(Request.material_id == material_id)
    if requested_by is not None:
        query = query.filter(Request.requested_by == requested_by)
    if start_date is not None:
        query = query.filter(Request.created_at >= day_start(start_date))
    if end_date is not None:
        query = query.filter(Request.created_at <= day_end(end_date))
    if min_qty is not None:
        query = query.filter(Request.requested_qty >= min_qty)
    if max_qty is not None:
        query = query.filter(Request.requested_qty <= max_qty)

    column = _SORT_COLUMNS.get(sort_by, Request.created_at)
    order = column.asc() if sort_direction == "asc" else column.desc()
    rows, meta = paginate(query.order_by(order, Request.id), params)
    return Page[RequestOut](data=[request_out(r) for r in rows], meta=meta)


def get_request(db: Session, request_id: UUID) -> RequestDetailOut:
    req = get_request_record(db, request_id)
    return RequestDetailOut(**request_out(req).model_dump(), delivery=delivery_out(req))


# ─── Lifecycle ────────────────────────────────────────────────────────────────


def create_request(
    db: Session,
    data: RequestCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> RequestOut:
    get_project_record(db, data.project_id)
    get_material_record(db, data.material_id)

    req = Request(
        requested_by=user_id,
        project_id=data.project_id,
        material_id=data.material_id,
        requested_qty=data.requested_qty,
        status=RequestStatus.PENDING,
        request_note=data.request_note,
    )
    db.add(req)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="REQUEST_CREATED",
        resource_type="requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    db.commit()
    db.refresh(req)
    cache.invalidate("statistics:")
    return request_out(req)


def review_request(
    db: Session,
    request_id: UUID,
    data: RequestReview,
    user_id: UUID,
    ip_address: str | None = None,
) -> RequestOut:
    """Approve or reject a PENDING request.

    Approval fixes ``revised_qty`` (defaulting to the requested quantity),
    which must be covered by the material's available stock.
    """
    req = get_request_record(db, request_id)
    if req.status != RequestStatus.PENDING:
        raise ValidationError(f"Only PENDING requests can be reviewed (status is {req.status.value})")

    if data.status == RequestStatus.APPROVED:
        revised = data.revised_qty if data.revised_qty is not None else req.requested_qty
        available = available_stock(db, req.material_id)
        if revised > available:
            raise InsufficientStockError(
                "Insufficient stock",
                details={"available": str(available), "requested": str(revised)},
            )
        req.revised_qty = revised
    elif data.revised_qty is not None:
        req.revised_qty = data.revised_qty

    previous = req.status
    req.status = data.status
    req.review_note = data.note
    req.reviewed_by = user_id
    req.reviewed_at = datetime.now(timezone.utc)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action=f"REQUEST_{data.status.value}",
        resource_type="requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={
            "status": {"from": previous.value, "to": data.status.value},
            "revised_qty": req.revised_qty,
            "note": data.note,
        },
    )
    notify_request_status_change(db, req)
    db.commit()
    db.refresh(req)
    cache.invalidate("statistics:")
    return request_out(req)


def change_status(
    db: Session,
    request_id: UUID,
    data: RequestStatusUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> RequestOut:
    req = get_request_record(db, request_id)
    previous = req.status
    if data.status not in ALLOWED_TRANSITIONS[previous]:
        raise ValidationError(
            f"Cannot move a request from {previous.value} to {data.status.value}",
            details={"allowed": sorted(s.value for s in ALLOWED_TRANSITIONS[previous])},
        )

    req.status = data.status
    if data.note is not None:
        req.review_note = data.note
    if data.status in (RequestStatus.APPROVED, RequestStatus.REJECTED):
        req.reviewed_by = user_id
        req.reviewed_at = datetime.now(timezone.utc)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="REQUEST_STATUS_CHANGED",
        resource_type="requests",
        resource_id=str(req.id),
        ip_address=ip_address,
        changes={"status": {"from": previous.value, "to": data.status.value}},
    )
    notify_request_status_change(db, req)
    db.commit()
    db.refresh(req)
    cache.invalidate("statistics:")
    return request_out(req)

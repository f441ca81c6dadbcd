from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from backend.depot.core.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from backend.depot.models.inventory import ReferenceType, ReserveStatus
from backend.depot.models.request import Delivery, DeliveryStatus, Request, RequestStatus
from backend.depot.schemas.common import Page
from backend.depot.schemas.request import DeliveryComplete, DeliveryOut, DeliveryStatusUpdate
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache
from backend.depot.services.inventory import (
    active_reserve_for,
    get_item_record,
    record_stock_change,
    write_stock,
)
from backend.depot.services.notification_service import notify_delivery_status
from backend.depot.services.pagination import PageParams, paginate
from backend.depot.services.periods import check_range, day_end, day_start
from backend.depot.services.requests import delivery_out, get_request_record
from backend.depot.services.stock import ZERO, check_low_stock, stock_totals, to_qty

logger = logging.getLogger(__name__)


def get_delivery_record(db: Session, delivery_id: UUID) -> Delivery:
    delivery = db.query(Delivery).filter(Delivery.id == delivery_id).first()
    if delivery is None:
        raise NotFoundError("Delivery not found")
    return delivery


def complete_delivery(
    db: Session,
    request_id: UUID,
    data: DeliveryComplete,
    user_id: UUID,
    ip_address: str | None = None,
) -> DeliveryOut:
    """Hand out the approved quantity of a request from one inventory item.

    Consumes a matching project reserve first, then decrements the item with
    the conditional stock write. Everything commits together.
    """
    req = get_request_record(db, request_id)
    if req.status != RequestStatus.APPROVED:
        raise ValidationError(
            f"Only APPROVED requests can be delivered (status is {req.status.value})"
        )
    if req.delivery is not None:
        raise ConflictError("Request already has a delivery")

    item = get_item_record(db, data.inventory_item_id)
    if item.material_id != req.material_id:
        raise ValidationError("Inventory item holds a different material")

    quantity = to_qty(req.deliverable_qty)
    on_hand = to_qty(item.quantity)
    reserved = to_qty(item.reserved_quantity)

    reserve = active_reserve_for(db, item.id, req.project_id)
    if reserve is not None:
        reserved = max(reserved - to_qty(reserve.quantity), ZERO)

    available = on_hand - reserved
    if quantity > available:
        raise InsufficientStockError(
            "Insufficient stock",
            details={"available": str(available), "requested": str(quantity)},
        )

    material_before = stock_totals(db, [item.material_id]).get(item.material_id, (ZERO, ZERO))[0]
    after = on_hand - quantity
    write_stock(
        db,
        item,
        quantity=after,
        reserved=reserved if reserve is not None else None,
    )
    if reserve is not None:
        reserve.status = ReserveStatus.COMPLETED

    delivery = Delivery(
        request_id=req.id,
        inventory_item_id=item.id,
        quantity=quantity,
        status=DeliveryStatus.COMPLETED,
        delivery_date=datetime.now(timezone.utc),
        delivered_by=user_id,
        notes=data.notes,
    )
    db.add(delivery)
    db.flush()

    record_stock_change(
        db,
        item,
        user_id=user_id,
        action="delivery",
        before=on_hand,
        after=after,
        material_before=material_before,
        reference_type=ReferenceType.DELIVERY,
        reference_id=delivery.id,
        note=data.notes,
    )
    req.status = RequestStatus.DELIVERED
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="DELIVERY_COMPLETED",
        resource_type="deliveries",
        resource_id=str(delivery.id),
        ip_address=ip_address,
        changes={
            "request_id": req.id,
            "inventory_item_id": item.id,
            "quantity": quantity,
            "reserve_id": reserve.id if reserve is not None else None,
        },
    )
    notify_delivery_status(db, delivery)
    check_low_stock(db, item.material_id)

    db.commit()
    db.refresh(req)
    cache.invalidate("materials:", "statistics:")
    logger.info("Delivered %s of material %s for request %s", quantity, req.material_id, req.id)
    return delivery_out(req)


def list_deliveries(
    db: Session,
    params: PageParams,
    *,
    status: DeliveryStatus | None = None,
    project_id: UUID | None = None,
    material_id: UUID | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Page[DeliveryOut]:
    check_range(start_date, end_date)

    query = db.query(Delivery).join(Request, Delivery.request_id == Request.id)
    if status is not None:
        query = query.filter(Delivery.status == status)
    if project_id is not None:
        query = query.filter(Request.project_id == project_id)
    if material_id is not None:
        query = query.filter(Request.material_id == material_id)
    if start_date is not None:
        query = query.filter(Delivery.created_at >= day_start(start_date))
    if end_date is not None:
        query = query.filter(Delivery.created_at <= day_end(end_date))

    rows, meta = paginate(query.order_by(Delivery.created_at.desc(), Delivery.id), params)
    return Page[DeliveryOut](data=[delivery_out(d.request) for d in rows], meta=meta)


def get_delivery(db: Session, delivery_id: UUID) -> DeliveryOut:
    return delivery_out(get_delivery_record(db, delivery_id).request)


def update_delivery_status(
    db: Session,
    delivery_id: UUID,
    data: DeliveryStatusUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> DeliveryOut:
    delivery = get_delivery_record(db, delivery_id)
    previous = delivery.status
    if previous == data.status:
        return delivery_out(delivery.request)

    delivery.status = data.status
    if data.status == DeliveryStatus.COMPLETED and delivery.delivery_date is None:
        delivery.delivery_date = datetime.now(timezone.utc)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="DELIVERY_STATUS_CHANGED",
        resource_type="deliveries",
        resource_id=str(delivery.id),
        ip_address=ip_address,
        changes={"status": {"from": previous.value, "to": data.status.value}},
    )
    notify_delivery_status(db, delivery)
    db.commit()
    db.refresh(delivery)
    cache.invalidate("statistics:")
    return delivery_out(delivery.request)

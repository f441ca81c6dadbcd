"""Inventory items, reserves and the transaction trail.

Every quantity change goes through :func:`write_stock`, a conditional
``UPDATE ... WHERE quantity = :old AND reserved_quantity = :old_reserved``.
When no row matches, another writer changed the item first: the transaction
is rolled back and :class:`ConcurrentUpdateError` surfaces as 409.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from backend.depot.core.errors import (
    ConcurrentUpdateError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from backend.depot.models.catalog import Institution, Material
from backend.depot.models.inventory import (
    InventoryItem,
    InventoryReserve,
    InventoryTransaction,
    MovementType,
    ReferenceType,
    ReserveStatus,
    StockMovement,
    Warehouse,
)
from backend.depot.models.project import Project
from backend.depot.models.user import User
from backend.depot.schemas.common import Page
from backend.depot.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemOut,
    InventoryTransactionOut,
    QuantityAdjust,
    QuantityOperation,
    ReserveCreate,
    ReserveOut,
)
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache
from backend.depot.services.materials import get_material_record
from backend.depot.services.pagination import PageParams, paginate
from backend.depot.services.projects import get_project_record
from backend.depot.services.stock import ZERO, check_low_stock, stock_totals, to_qty
from backend.depot.services.warehouse import get_warehouse_record

logger = logging.getLogger(__name__)


def _item_out(item: InventoryItem) -> InventoryItemOut:
    return InventoryItemOut(
        id=item.id,
        material_id=item.material_id,
        material_code=item.material.code,
        material_name=item.material.name,
        warehouse_id=item.warehouse_id,
        warehouse_name=item.warehouse.name,
        uom_id=item.uom_id,
        uom_symbol=item.uom.symbol,
        institution_id=item.institution_id,
        institution_item_id=item.institution_item_id,
        item_type=item.item_type,
        quantity=item.quantity,
        reserved_quantity=item.reserved_quantity,
        available_quantity=item.available_quantity,
        created_at=item.created_at,
        updated_at=item.updated_at,
    )


def get_item_record(db: Session, item_id: UUID) -> InventoryItem:
    item = (
        db.query(InventoryItem)
        .filter(InventoryItem.id == item_id, InventoryItem.deleted_at.is_(None))
        .first()
    )
    if item is None:
        raise NotFoundError("Inventory item not found")
    return item


def _material_total(db: Session, material_id: UUID) -> Decimal:
    return stock_totals(db, [material_id]).get(material_id, (ZERO, ZERO))[0]


# ─── Stock writes ─────────────────────────────────────────────────────────────


def write_stock(
    db: Session,
    item: InventoryItem,
    *,
    quantity: Decimal | None = None,
    reserved: Decimal | None = None,
) -> None:
    """Conditionally update *item* against the values currently held on it.

    Raises ConcurrentUpdateError (after rolling back) when the row changed
    underneath us. Does not commit.
    """
    values: dict[str, Decimal] = {}
    if quantity is not None:
        values["quantity"] = quantity
    if reserved is not None:
        values["reserved_quantity"] = reserved
    if not values:
        return

    stmt = (
        update(InventoryItem)
        .where(
            InventoryItem.id == item.id,
            InventoryItem.deleted_at.is_(None),
            InventoryItem.quantity == item.quantity,
            InventoryItem.reserved_quantity == item.reserved_quantity,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount == 0:
        item_id = item.id
        db.rollback()
        logger.warning("Concurrent update lost on inventory item %s", item_id)
        raise ConcurrentUpdateError(
            "Inventory item was modified by another request; reload and retry"
        )
    db.expire(item, ["quantity", "reserved_quantity", "updated_at"])


def record_stock_change(
    db: Session,
    item: InventoryItem,
    *,
    user_id: UUID,
    action: str,
    before: Decimal,
    after: Decimal,
    material_before: Decimal,
    reference_type: ReferenceType,
    reference_id: UUID | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """Write the item-level transaction and the material-level movement."""
    movement_type = MovementType.IN if after > before else MovementType.OUT
    diff = abs(after - before)

    txn = InventoryTransaction(
        user_id=user_id,
        inventory_item_id=item.id,
        material_id=item.material_id,
        warehouse_id=item.warehouse_id,
        uom_id=item.uom_id,
        type=movement_type,
        action=action,
        quantity=diff,
        before_quantity=before,
        after_quantity=after,
        note=note,
    )
    db.add(txn)
    db.add(
        StockMovement(
            material_id=item.material_id,
            user_id=user_id,
            type=movement_type,
            quantity=diff,
            previous_stock=material_before,
            new_stock=material_before + (after - before),
            reference_type=reference_type,
            reference_id=reference_id,
            notes=note,
        )
    )
    db.flush()
    return txn


# ─── Items ────────────────────────────────────────────────────────────────────


def list_items(
    db: Session,
    params: PageParams,
    *,
    search: str | None = None,
    warehouse_id: UUID | None = None,
    material_id: UUID | None = None,
) -> Page[InventoryItemOut]:
    query = (
        db.query(InventoryItem)
        .join(Material, InventoryItem.material_id == Material.id)
        .join(Warehouse, InventoryItem.warehouse_id == Warehouse.id)
        .filter(InventoryItem.deleted_at.is_(None))
    )
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Material.name).like(like),
                func.lower(Material.code).like(like),
                func.lower(Warehouse.name).like(like),
            )
        )
    if warehouse_id is not None:
        query = query.filter(InventoryItem.warehouse_id == warehouse_id)
    if material_id is not None:
        query = query.filter(InventoryItem.material_id == material_id)

    rows, meta = paginate(
        query.order_by(InventoryItem.created_at.desc(), InventoryItem.id), params
    )
    return Page[InventoryItemOut](data=[_item_out(i) for i in rows], meta=meta)


def get_item(db: Session, item_id: UUID) -> InventoryItemOut:
    return _item_out(get_item_record(db, item_id))


def create_item(
    db: Session,
    data: InventoryItemCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> InventoryItemOut:
    material = get_material_record(db, data.material_id)
    get_warehouse_record(db, data.warehouse_id)
    if data.institution_id is not None and db.get(Institution, data.institution_id) is None:
        raise NotFoundError("Institution not found")

    material_before = _material_total(db, material.id)
    item = InventoryItem(
        material_id=material.id,
        warehouse_id=data.warehouse_id,
        uom_id=material.uom_id,
        institution_id=data.institution_id,
        institution_item_id=data.institution_item_id,
        item_type=data.item_type,
        quantity=data.quantity,
        reserved_quantity=ZERO,
    )
    db.add(item)
    db.flush()

    if data.quantity > 0:
        record_stock_change(
            db,
            item,
            user_id=user_id,
            action="initial_stock",
            before=ZERO,
            after=data.quantity,
            material_before=material_before,
            reference_type=ReferenceType.ADJUSTMENT,
            note="Initial stock",
        )

    log_action(
        db,
        user_id=user_id,
        action="INVENTORY_ITEM_CREATED",
        resource_type="inventory_items",
        resource_id=str(item.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    db.commit()
    db.refresh(item)
    cache.invalidate("materials:", "statistics:")
    return _item_out(item)


def _target_quantity(current: Decimal, data: QuantityAdjust) -> Decimal:
    if data.operation == QuantityOperation.INCREASE:
        return current + data.quantity
    if data.operation == QuantityOperation.DECREASE:
        return current - data.quantity
    return data.quantity


def adjust_quantity(
    db: Session,
    item_id: UUID,
    data: QuantityAdjust,
    user_id: UUID,
    ip_address: str | None = None,
) -> InventoryItemOut:
    """Increase, decrease or set an item's quantity.

    An unchanged quantity returns the item as is, with no transaction row.
    """
    item = get_item_record(db, item_id)
    before = to_qty(item.quantity)
    after = to_qty(_target_quantity(before, data))

    if after < 0:
        raise ValidationError("Quantity cannot go below zero")
    if after < item.reserved_quantity:
        raise ValidationError(
            "Quantity cannot go below the reserved quantity",
            details={"reserved_quantity": str(item.reserved_quantity)},
        )
    if after == before:
        return _item_out(item)

    material_before = _material_total(db, item.material_id)
    write_stock(db, item, quantity=after)
    record_stock_change(
        db,
        item,
        user_id=user_id,
        action="qty_update",
        before=before,
        after=after,
        material_before=material_before,
        reference_type=ReferenceType.ADJUSTMENT,
        reference_id=item.id,
        note=data.note,
    )
    log_action(
        db,
        user_id=user_id,
        action="INVENTORY_QTY_UPDATED",
        resource_type="inventory_items",
        resource_id=str(item.id),
        ip_address=ip_address,
        changes={
            "operation": data.operation.value,
            "from": before,
            "to": after,
            "note": data.note,
        },
    )
    if after < before:
        check_low_stock(db, item.material_id)

    db.commit()
    db.refresh(item)
    cache.invalidate("materials:", "statistics:")
    return _item_out(item)


def delete_item(
    db: Session, item_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    item = get_item_record(db, item_id)
    if item.reserved_quantity > 0:
        raise ValidationError("Item has reserved quantity")

    item.deleted_at = datetime.now(timezone.utc)
    log_action(
        db,
        user_id=user_id,
        action="INVENTORY_ITEM_DELETED",
        resource_type="inventory_items",
        resource_id=str(item.id),
        ip_address=ip_address,
        changes={"quantity": item.quantity},
    )
    db.commit()
    cache.invalidate("materials:", "statistics:")


# ─── Reserves ─────────────────────────────────────────────────────────────────


def _reserve_out(res: InventoryReserve) -> ReserveOut:
    return ReserveOut(
        id=res.id,
        inventory_item_id=res.inventory_item_id,
        material_id=res.material_id,
        material_name=res.material.name,
        warehouse_id=res.warehouse_id,
        warehouse_name=res.warehouse.name,
        project_id=res.project_id,
        project_name=res.project.name if res.project else None,
        quantity=res.quantity,
        status=res.status,
        note=res.note,
        created_by=res.created_by,
        created_at=res.created_at,
    )


def list_reserves(
    db: Session,
    params: PageParams,
    *,
    search: str | None = None,
    status: ReserveStatus | None = None,
    project_id: UUID | None = None,
) -> Page[ReserveOut]:
    query = (
        db.query(InventoryReserve)
        .join(Material, InventoryReserve.material_id == Material.id)
        .join(Warehouse, InventoryReserve.warehouse_id == Warehouse.id)
        .outerjoin(Project, InventoryReserve.project_id == Project.id)
    )
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Material.name).like(like),
                func.lower(Warehouse.name).like(like),
                func.lower(func.coalesce(Project.name, "")).like(like),
                func.lower(func.coalesce(InventoryReserve.note, "")).like(like),
            )
        )
    if status is not None:
        query = query.filter(InventoryReserve.status == status)
    if project_id is not None:
        query = query.filter(InventoryReserve.project_id == project_id)

    rows, meta = paginate(
        query.order_by(InventoryReserve.created_at.desc(), InventoryReserve.id), params
    )
    return Page[ReserveOut](data=[_reserve_out(r) for r in rows], meta=meta)


def create_reserve(
    db: Session,
    data: ReserveCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> ReserveOut:
    item = get_item_record(db, data.inventory_item_id)
    if data.project_id is not None:
        get_project_record(db, data.project_id)

    available = to_qty(item.available_quantity)
    if data.quantity > available:
        raise InsufficientStockError(
            "Insufficient stock",
            details={"available": str(available), "requested": str(data.quantity)},
        )

    write_stock(db, item, reserved=to_qty(item.reserved_quantity) + data.quantity)
    reserve = InventoryReserve(
        inventory_item_id=item.id,
        material_id=item.material_id,
        warehouse_id=item.warehouse_id,
        project_id=data.project_id,
        uom_id=item.uom_id,
        quantity=data.quantity,
        status=ReserveStatus.ACTIVE,
        note=data.note,
        created_by=user_id,
    )
    db.add(reserve)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="RESERVE_CREATED",
        resource_type="inventory_reserves",
        resource_id=str(reserve.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    check_low_stock(db, item.material_id)
    db.commit()
    db.refresh(reserve)
    cache.invalidate("materials:", "statistics:")
    return _reserve_out(reserve)


def cancel_reserve(
    db: Session,
    reserve_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> ReserveOut:
    reserve = db.get(InventoryReserve, reserve_id)
    if reserve is None:
        raise NotFoundError("Reserve not found")
    if reserve.status != ReserveStatus.ACTIVE:
        raise ValidationError("Only active reserves can be cancelled")

    item = reserve.inventory_item
    released = max(to_qty(item.reserved_quantity) - to_qty(reserve.quantity), ZERO)
    write_stock(db, item, reserved=released)
    reserve.status = ReserveStatus.CANCELLED

    log_action(
        db,
        user_id=user_id,
        action="RESERVE_CANCELLED",
        resource_type="inventory_reserves",
        resource_id=str(reserve.id),
        ip_address=ip_address,
        changes={"quantity": reserve.quantity},
    )
    db.commit()
    db.refresh(reserve)
    cache.invalidate("materials:", "statistics:")
    return _reserve_out(reserve)


def active_reserve_for(
    db: Session, item_id: UUID, project_id: UUID
) -> InventoryReserve | None:
    return (
        db.query(InventoryReserve)
        .filter(
            InventoryReserve.inventory_item_id == item_id,
            InventoryReserve.project_id == project_id,
            InventoryReserve.status == ReserveStatus.ACTIVE,
        )
        .order_by(InventoryReserve.created_at)
        .first()
    )


# ─── Transactions ─────────────────────────────────────────────────────────────


def list_transactions(
    db: Session,
    params: PageParams,
    *,
    search: str | None = None,
    movement_type: MovementType | None = None,
    inventory_item_id: UUID | None = None,
    warehouse_id: UUID | None = None,
    material_id: UUID | None = None,
) -> Page[InventoryTransactionOut]:
    query = (
        db.query(InventoryTransaction, Material.name, Warehouse.name, User.username)
        .join(Material, InventoryTransaction.material_id == Material.id)
        .join(Warehouse, InventoryTransaction.warehouse_id == Warehouse.id)
        .join(User, InventoryTransaction.user_id == User.id)
    )
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Material.name).like(like),
                func.lower(Material.code).like(like),
                func.lower(InventoryTransaction.action).like(like),
                func.lower(func.coalesce(InventoryTransaction.note, "")).like(like),
            )
        )
    if movement_type is not None:
        query = query.filter(InventoryTransaction.type == movement_type)
    if inventory_item_id is not None:
        query = query.filter(InventoryTransaction.inventory_item_id == inventory_item_id)
    if warehouse_id is not None:
        query = query.filter(InventoryTransaction.warehouse_id == warehouse_id)
    if material_id is not None:
        query = query.filter(InventoryTransaction.material_id == material_id)

    rows, meta = paginate(
        query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id),
        params,
    )
    return Page[InventoryTransactionOut](
        data=[
            InventoryTransactionOut(
                id=txn.id,
                inventory_item_id=txn.inventory_item_id,
                material_id=txn.material_id,
                material_name=material_name,
                warehouse_id=txn.warehouse_id,
                warehouse_name=warehouse_name,
                user_id=txn.user_id,
                username=username,
                type=txn.type,
                action=txn.action,
                quantity=txn.quantity,
                before_quantity=txn.before_quantity,
                after_quantity=txn.after_quantity,
                note=txn.note,
                created_at=txn.created_at,
            )
            for txn, material_name, warehouse_name, username in rows
        ],
        meta=meta,
    )

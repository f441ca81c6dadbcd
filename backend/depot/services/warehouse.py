from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.models.catalog import Material, Uom
from backend.depot.models.inventory import InventoryItem, Warehouse
from backend.depot.schemas.warehouse import (
    WarehouseCreate,
    WarehouseOut,
    WarehouseStockOut,
    WarehouseUpdate,
)
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache
from backend.depot.services.stock import to_qty


def get_warehouse_record(db: Session, warehouse_id: UUID) -> Warehouse:
    wh = (
        db.query(Warehouse)
        .filter(Warehouse.id == warehouse_id, Warehouse.deleted_at.is_(None))
        .first()
    )
    if not wh:
        raise NotFoundError("Warehouse not found")
    return wh


def _check_code_free(db: Session, code: str, exclude_id: UUID | None = None) -> None:
    query = db.query(Warehouse).filter(func.lower(Warehouse.code) == code.lower())
    if exclude_id is not None:
        query = query.filter(Warehouse.id != exclude_id)
    if query.first():
        raise ConflictError("Warehouse code already exists")


# ─── Warehouse CRUD ───────────────────────────────────────────────────────────


def create_warehouse(
    db: Session,
    data: WarehouseCreate,
    user_id: UUID,
    ip_address: str | None = None,
) -> WarehouseOut:
    _check_code_free(db, data.code)
    wh = Warehouse(code=data.code, name=data.name, location=data.location)
    db.add(wh)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="WAREHOUSE_CREATED",
        resource_type="warehouses",
        resource_id=str(wh.id),
        ip_address=ip_address,
        changes={"code": data.code, "name": data.name, "location": data.location},
    )

    db.commit()
    cache.invalidate("statistics:")
    db.refresh(wh)
    return WarehouseOut.model_validate(wh)


def update_warehouse(
    db: Session,
    warehouse_id: UUID,
    data: WarehouseUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> WarehouseOut:
    wh = get_warehouse_record(db, warehouse_id)

    changes: dict[str, object] = {}
    if data.code is not None and data.code != wh.code:
        _check_code_free(db, data.code, exclude_id=wh.id)
        changes["code"] = {"from": wh.code, "to": data.code}
        wh.code = data.code
    if data.name is not None:
        changes["name"] = {"from": wh.name, "to": data.name}
        wh.name = data.name
    if data.location is not None:
        changes["location"] = {"from": wh.location, "to": data.location}
        wh.location = data.location
    if data.is_active is not None:
        changes["is_active"] = {"from": wh.is_active, "to": data.is_active}
        wh.is_active = data.is_active

    log_action(
        db,
        user_id=user_id,
        action="WAREHOUSE_UPDATED",
        resource_type="warehouses",
        resource_id=str(wh.id),
        ip_address=ip_address,
        changes=changes,
    )

    db.commit()
    cache.invalidate("statistics:")
    db.refresh(wh)
    return WarehouseOut.model_validate(wh)


def delete_warehouse(
    db: Session,
    warehouse_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> None:
    wh = get_warehouse_record(db, warehouse_id)
    stocked = (
        db.query(InventoryItem.id)
        .filter(
            InventoryItem.warehouse_id == wh.id,
            InventoryItem.deleted_at.is_(None),
            InventoryItem.quantity > 0,
        )
        .first()
    )
    if stocked is not None:
        raise ValidationError("Warehouse still holds stock")

    wh.deleted_at = datetime.now(timezone.utc)
    wh.is_active = False
    log_action(
        db,
        user_id=user_id,
        action="WAREHOUSE_DELETED",
        resource_type="warehouses",
        resource_id=str(wh.id),
        ip_address=ip_address,
        changes={"code": wh.code},
    )
    db.commit()
    cache.invalidate("materials:", "statistics:")


def list_warehouses(db: Session, include_inactive: bool = False) -> list[WarehouseOut]:
    query = db.query(Warehouse).filter(Warehouse.deleted_at.is_(None))
    if not include_inactive:
        query = query.filter(Warehouse.is_active.is_(True))
    return [WarehouseOut.model_validate(w) for w in query.order_by(Warehouse.name).all()]


def get_warehouse(db: Session, warehouse_id: UUID) -> WarehouseOut:
    return WarehouseOut.model_validate(get_warehouse_record(db, warehouse_id))


def get_warehouse_stock(db: Session, warehouse_id: UUID) -> list[WarehouseStockOut]:
    get_warehouse_record(db, warehouse_id)

    rows = (
        db.query(
            Material.id,
            Material.code,
            Material.name,
            Uom.symbol,
            func.sum(InventoryItem.quantity),
            func.sum(InventoryItem.reserved_quantity),
        )
        .join(Material, InventoryItem.material_id == Material.id)
        .join(Uom, Material.uom_id == Uom.id)
        .filter(
            InventoryItem.warehouse_id == warehouse_id,
            InventoryItem.deleted_at.is_(None),
        )
        .group_by(Material.id, Material.code, Material.name, Uom.symbol)
        .order_by(Material.name)
        .all()
    )
    result = []
    for material_id, code, name, symbol, qty, reserved in rows:
        qty, reserved = to_qty(qty), to_qty(reserved)
        result.append(
            WarehouseStockOut(
                material_id=material_id,
                material_code=code,
                material_name=name,
                uom_symbol=symbol,
                quantity=qty,
                reserved_quantity=reserved,
                available_quantity=qty - reserved,
            )
        )
    return result

"""Material-level stock aggregation shared by several services."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.depot.models.catalog import Material
from backend.depot.models.inventory import InventoryItem
from backend.depot.services.notification_service import notify_low_stock

ZERO = Decimal("0")
QTY_STEP = Decimal("0.001")


def to_qty(value: object) -> Decimal:
    """Normalise a DB aggregate (float on SQLite, Decimal elsewhere) to 3 places."""
    return Decimal(str(value or 0)).quantize(QTY_STEP)


def stock_totals(
    db: Session, material_ids: list[UUID] | None = None
) -> dict[UUID, tuple[Decimal, Decimal]]:
    """Map material id to ``(quantity, reserved)`` summed over live items."""
    query = db.query(
        InventoryItem.material_id,
        func.coalesce(func.sum(InventoryItem.quantity), 0),
        func.coalesce(func.sum(InventoryItem.reserved_quantity), 0),
    ).filter(InventoryItem.deleted_at.is_(None))
    if material_ids is not None:
        if not material_ids:
            return {}
        query = query.filter(InventoryItem.material_id.in_(material_ids))
    rows = query.group_by(InventoryItem.material_id).all()
    return {mid: (to_qty(qty), to_qty(res)) for mid, qty, res in rows}


def available_stock(db: Session, material_id: UUID) -> Decimal:
    qty, reserved = stock_totals(db, [material_id]).get(material_id, (ZERO, ZERO))
    return qty - reserved


def check_low_stock(db: Session, material_id: UUID) -> bool:
    """Raise low-stock notifications when available stock is at or below the threshold.

    Materials without a threshold (``min_stock_qty == 0``) only alert when
    they run out. Does not commit.
    """
    material = db.get(Material, material_id)
    if material is None:
        return False
    available = available_stock(db, material_id)
    threshold = Decimal(material.min_stock_qty or 0)
    if available > threshold:
        return False
    notify_low_stock(db, material, available)
    return True

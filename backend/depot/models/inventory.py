from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.depot.core.database import Base, SoftDeleteMixin

QTY = Numeric(precision=14, scale=3)


class ItemType(str, enum.Enum):
    WHOLE = "WHOLE"
    PART = "PART"


class ReserveStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class MovementType(str, enum.Enum):
    IN = "IN"
    OUT = "OUT"


class ReferenceType(str, enum.Enum):
    DELIVERY = "DELIVERY"
    ADJUSTMENT = "ADJUSTMENT"
    RETURN = "RETURN"


# ─── Warehouses ───────────────────────────────────────────────────────────────


class Warehouse(SoftDeleteMixin, Base):
    __tablename__ = "warehouses"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    items: Mapped[list[InventoryItem]] = relationship(back_populates="warehouse")


# ─── Stock ────────────────────────────────────────────────────────────────────


class InventoryItem(SoftDeleteMixin, Base):
    """A stocked quantity of a material at a warehouse.

    ``reserved_quantity`` is the part held for projects; what can be handed
    out is ``quantity - reserved_quantity``.
    """

    __tablename__ = "inventory_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    uom_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("uoms.id"), nullable=False)
    institution_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("institutions.id"), nullable=True
    )
    institution_item_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    item_type: Mapped[ItemType] = mapped_column(
        Enum(ItemType), nullable=False, default=ItemType.WHOLE
    )
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False, default=Decimal("0"))
    reserved_quantity: Mapped[Decimal] = mapped_column(
        QTY, nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    material: Mapped["Material"] = relationship()  # noqa: F821
    warehouse: Mapped[Warehouse] = relationship(back_populates="items")
    uom: Mapped["Uom"] = relationship()  # noqa: F821
    institution: Mapped["Institution | None"] = relationship()  # noqa: F821

    @property
    def available_quantity(self) -> Decimal:
        return Decimal(self.quantity) - Decimal(self.reserved_quantity)

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_item_qty_non_negative"),
        CheckConstraint(
            "reserved_quantity >= 0", name="ck_inventory_item_reserved_non_negative"
        ),
        CheckConstraint(
            "reserved_quantity <= quantity", name="ck_inventory_item_reserved_le_qty"
        ),
        Index("ix_inventory_items_material", "material_id"),
        Index("ix_inventory_items_warehouse", "warehouse_id"),
    )


class InventoryReserve(Base):
    __tablename__ = "inventory_reserves"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=False
    )
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("projects.id"), nullable=True
    )
    uom_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("uoms.id"), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    status: Mapped[ReserveStatus] = mapped_column(
        Enum(ReserveStatus), nullable=False, default=ReserveStatus.ACTIVE
    )
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    inventory_item: Mapped[InventoryItem] = relationship()
    material: Mapped["Material"] = relationship()  # noqa: F821
    warehouse: Mapped[Warehouse] = relationship()
    project: Mapped["Project | None"] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_inventory_reserve_qty_positive"),
        Index("ix_inventory_reserves_item_status", "inventory_item_id", "status"),
    )


class InventoryTransaction(Base):
    """Audit trail row written for every change of an item's quantity."""

    __tablename__ = "inventory_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    inventory_item_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=False
    )
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    warehouse_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("warehouses.id"), nullable=False
    )
    uom_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("uoms.id"), nullable=False)
    type: Mapped[MovementType] = mapped_column(Enum(MovementType), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    before_quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    after_quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    inventory_item: Mapped[InventoryItem] = relationship()
    material: Mapped["Material"] = relationship()  # noqa: F821
    warehouse: Mapped[Warehouse] = relationship()
    user: Mapped["User"] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inv_txn_qty_non_negative"),
        Index("ix_inv_txn_item", "inventory_item_id"),
        Index("ix_inv_txn_created_at", "created_at"),
    )


class StockMovement(Base):
    """Material-level in/out ledger (deliveries, adjustments, returns)."""

    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    type: Mapped[MovementType] = mapped_column(Enum(MovementType), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    previous_stock: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    new_stock: Mapped[Decimal] = mapped_column(QTY, nullable=False)
    reference_type: Mapped[ReferenceType] = mapped_column(
        Enum(ReferenceType), nullable=False
    )
    reference_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    material: Mapped["Material"] = relationship()  # noqa: F821

    __table_args__ = (
        Index("ix_stock_movements_material", "material_id"),
        Index("ix_stock_movements_created_at", "created_at"),
    )

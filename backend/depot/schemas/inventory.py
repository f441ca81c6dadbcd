from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.depot.models.inventory import ItemType, MovementType, ReserveStatus


class QuantityOperation(str, enum.Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    SET = "set"


# ─── Inventory items ──────────────────────────────────────────────────────────


class InventoryItemCreate(BaseModel):
    material_id: UUID
    warehouse_id: UUID
    institution_id: UUID | None = None
    institution_item_id: str | None = Field(None, max_length=100)
    item_type: ItemType = ItemType.WHOLE
    quantity: Decimal = Decimal("0")

    @field_validator("quantity")
    @classmethod
    def quantity_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Quantity must be non-negative")
        return v


class QuantityAdjust(BaseModel):
    quantity: Decimal
    operation: QuantityOperation = QuantityOperation.SET
    note: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Quantity must be non-negative")
        return v


class InventoryItemOut(BaseModel):
    id: UUID
    material_id: UUID
    material_code: str
    material_name: str
    warehouse_id: UUID
    warehouse_name: str
    uom_id: UUID
    uom_symbol: str
    institution_id: UUID | None
    institution_item_id: str | None
    item_type: ItemType
    quantity: Decimal
    reserved_quantity: Decimal
    available_quantity: Decimal
    created_at: datetime
    updated_at: datetime


# ─── Reserves ─────────────────────────────────────────────────────────────────


class ReserveCreate(BaseModel):
    inventory_item_id: UUID
    project_id: UUID | None = None
    quantity: Decimal
    note: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class ReserveOut(BaseModel):
    id: UUID
    inventory_item_id: UUID
    material_id: UUID
    material_name: str
    warehouse_id: UUID
    warehouse_name: str
    project_id: UUID | None
    project_name: str | None
    quantity: Decimal
    status: ReserveStatus
    note: str | None
    created_by: UUID
    created_at: datetime


# ─── Transactions ─────────────────────────────────────────────────────────────


class InventoryTransactionOut(BaseModel):
    id: UUID
    inventory_item_id: UUID
    material_id: UUID
    material_name: str
    warehouse_id: UUID
    warehouse_name: str
    user_id: UUID
    username: str
    type: MovementType
    action: str
    quantity: Decimal
    before_quantity: Decimal
    after_quantity: Decimal
    note: str | None
    created_at: datetime

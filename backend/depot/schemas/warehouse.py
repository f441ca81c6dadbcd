from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


# ─── Warehouse ────────────────────────────────────────────────────────────────


class WarehouseCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=50)
    name: str = Field(..., min_length=2, max_length=255)
    location: str | None = None


class WarehouseUpdate(BaseModel):
    code: str | None = Field(None, min_length=2, max_length=50)
    name: str | None = Field(None, min_length=2, max_length=255)
    location: str | None = None
    is_active: bool | None = None


class WarehouseOut(BaseModel):
    id: UUID
    code: str
    name: str
    location: str | None
    is_active: bool

    class Config:
        from_attributes = True


# ─── Stock at Warehouse ───────────────────────────────────────────────────────


class WarehouseStockOut(BaseModel):
    material_id: UUID
    material_code: str
    material_name: str
    uom_symbol: str
    quantity: Decimal
    reserved_quantity: Decimal
    available_quantity: Decimal

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.depot.models.inventory import MovementType, ReferenceType
from backend.depot.models.request import RequestStatus


# ─── Units of measure ─────────────────────────────────────────────────────────


class UomCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    symbol: str = Field(..., min_length=1, max_length=20)


class UomUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=100)
    symbol: str | None = Field(None, min_length=1, max_length=20)


class UomOut(BaseModel):
    id: UUID
    name: str
    symbol: str

    class Config:
        from_attributes = True


# ─── Institutions ─────────────────────────────────────────────────────────────


class InstitutionCreate(BaseModel):
    name: str = Field(..., min_length=2, max_length=255)
    description: str | None = None


class InstitutionUpdate(BaseModel):
    name: str | None = Field(None, min_length=2, max_length=255)
    description: str | None = None


class InstitutionOut(BaseModel):
    id: UUID
    name: str
    description: str | None

    class Config:
        from_attributes = True


# ─── Materials ────────────────────────────────────────────────────────────────


class MaterialAttributeIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    value: str = Field(..., max_length=255)


class MaterialAttributeOut(BaseModel):
    id: UUID
    name: str
    value: str

    class Config:
        from_attributes = True


class MaterialCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=50)
    name: str = Field(..., min_length=3, max_length=255)
    description: str | None = None
    uom_id: UUID
    min_stock_qty: Decimal = Decimal("0")
    attributes: list[MaterialAttributeIn] = []

    @field_validator("min_stock_qty")
    @classmethod
    def threshold_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("min_stock_qty must be non-negative")
        return v


class MaterialUpdate(BaseModel):
    code: str | None = Field(None, min_length=3, max_length=50)
    name: str | None = Field(None, min_length=3, max_length=255)
    description: str | None = None
    uom_id: UUID | None = None
    min_stock_qty: Decimal | None = None

    @field_validator("min_stock_qty")
    @classmethod
    def threshold_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("min_stock_qty must be non-negative")
        return v


class MaterialAttributesIn(BaseModel):
    attributes: list[MaterialAttributeIn]


class MaterialOut(BaseModel):
    id: UUID
    code: str
    name: str
    description: str | None
    uom: UomOut
    min_stock_qty: Decimal
    stock_qty: Decimal = Decimal("0")
    available_qty: Decimal = Decimal("0")
    created_at: datetime


class MaterialRequestStats(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    delivered: int = 0


class MaterialRecentRequest(BaseModel):
    id: UUID
    project_id: UUID
    project_name: str
    requested_qty: Decimal
    revised_qty: Decimal | None
    status: RequestStatus
    created_at: datetime


class MaterialDetailOut(MaterialOut):
    attributes: list[MaterialAttributeOut] = []
    request_stats: MaterialRequestStats
    recent_requests: list[MaterialRecentRequest] = []


class StockMovementOut(BaseModel):
    id: UUID
    material_id: UUID
    user_id: UUID
    type: MovementType
    quantity: Decimal
    previous_stock: Decimal
    new_stock: Decimal
    reference_type: ReferenceType
    reference_id: UUID | None
    notes: str | None
    created_at: datetime

    class Config:
        from_attributes = True

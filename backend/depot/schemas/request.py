from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from backend.depot.models.request import DeliveryStatus, RequestStatus


# ─── Requests ─────────────────────────────────────────────────────────────────


class RequestCreate(BaseModel):
    project_id: UUID
    material_id: UUID
    requested_qty: Decimal
    request_note: str | None = Field(None, max_length=2000)

    @field_validator("requested_qty")
    @classmethod
    def quantity_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Requested quantity must be greater than zero")
        return v


class RequestReview(BaseModel):
    status: RequestStatus
    revised_qty: Decimal | None = None
    note: str | None = Field(None, max_length=2000)

    @field_validator("status")
    @classmethod
    def review_outcome(cls, v: RequestStatus) -> RequestStatus:
        if v not in (RequestStatus.APPROVED, RequestStatus.REJECTED):
            raise ValueError("Review status must be APPROVED or REJECTED")
        return v

    @field_validator("revised_qty")
    @classmethod
    def revised_positive(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v <= 0:
            raise ValueError("Revised quantity must be greater than zero")
        return v


class RequestStatusUpdate(BaseModel):
    status: RequestStatus
    note: str | None = Field(None, max_length=2000)


class RequestOut(BaseModel):
    id: UUID
    project_id: UUID
    project_name: str
    material_id: UUID
    material_code: str
    material_name: str
    uom_symbol: str
    requested_by: UUID
    requester_username: str
    requested_qty: Decimal
    revised_qty: Decimal | None
    status: RequestStatus
    request_note: str | None
    review_note: str | None
    reviewed_by: UUID | None
    reviewed_at: datetime | None
    created_at: datetime


# ─── Deliveries ───────────────────────────────────────────────────────────────


class DeliveryComplete(BaseModel):
    inventory_item_id: UUID
    notes: str | None = Field(None, max_length=2000)


class DeliveryStatusUpdate(BaseModel):
    status: DeliveryStatus


class DeliveryOut(BaseModel):
    id: UUID
    request_id: UUID
    project_id: UUID
    project_name: str
    material_id: UUID
    material_name: str
    inventory_item_id: UUID | None
    quantity: Decimal
    status: DeliveryStatus
    delivery_date: datetime | None
    delivered_by: UUID
    notes: str | None
    created_at: datetime


class RequestDetailOut(RequestOut):
    delivery: DeliveryOut | None = None

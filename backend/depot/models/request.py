from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.depot.core.database import Base


class RequestStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DELIVERED = "DELIVERED"


class DeliveryStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Request(Base):
    """A material-quantity request raised against a project."""

    __tablename__ = "requests"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    requested_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("projects.id"), nullable=False
    )
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    requested_qty: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=3), nullable=False
    )
    revised_qty: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=14, scale=3), nullable=True
    )
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus), nullable=False, default=RequestStatus.PENDING
    )
    request_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    review_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id"), nullable=True
    )
    reviewed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    project: Mapped["Project"] = relationship()  # noqa: F821
    material: Mapped["Material"] = relationship()  # noqa: F821
    requester: Mapped["User"] = relationship(foreign_keys=[requested_by])  # noqa: F821
    delivery: Mapped[Delivery | None] = relationship(back_populates="request")

    @property
    def deliverable_qty(self) -> Decimal:
        return self.revised_qty if self.revised_qty is not None else self.requested_qty

    __table_args__ = (
        CheckConstraint("requested_qty > 0", name="ck_request_qty_positive"),
        CheckConstraint(
            "revised_qty IS NULL OR revised_qty > 0", name="ck_request_revised_qty_positive"
        ),
        Index("ix_requests_status", "status"),
        Index("ix_requests_project", "project_id"),
        Index("ix_requests_material", "material_id"),
        Index("ix_requests_created_at", "created_at"),
    )


class Delivery(Base):
    """Fulfillment record closing out a request."""

    __tablename__ = "deliveries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    request_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("requests.id"), unique=True, nullable=False
    )
    inventory_item_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("inventory_items.id"), nullable=True
    )
    quantity: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=3), nullable=False
    )
    status: Mapped[DeliveryStatus] = mapped_column(
        Enum(DeliveryStatus), nullable=False, default=DeliveryStatus.PENDING
    )
    delivery_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    delivered_by: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    request: Mapped[Request] = relationship(back_populates="delivery")
    inventory_item: Mapped["InventoryItem | None"] = relationship()  # noqa: F821

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_delivery_qty_positive"),
        Index("ix_deliveries_status", "status"),
        Index("ix_deliveries_date", "delivery_date"),
    )

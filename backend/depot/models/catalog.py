from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
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


class Uom(Base):
    """Unit of measure (kg, m, m³, piece, ...)."""

    __tablename__ = "uoms"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    symbol: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Institution(Base):
    __tablename__ = "institutions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class Material(SoftDeleteMixin, Base):
    __tablename__ = "materials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    uom_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("uoms.id"), nullable=False)
    min_stock_qty: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=3), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    uom: Mapped[Uom] = relationship()
    attributes: Mapped[list[MaterialAttribute]] = relationship(
        back_populates="material",
        cascade="all, delete-orphan",
        order_by="MaterialAttribute.name",
    )

    __table_args__ = (
        CheckConstraint("min_stock_qty >= 0", name="ck_material_min_stock_non_negative"),
        Index("ix_materials_name", "name"),
    )


class MaterialAttribute(Base):
    __tablename__ = "material_attributes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    material_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("materials.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(255), nullable=False)

    material: Mapped[Material] = relationship(back_populates="attributes")

    __table_args__ = (
        Index("ix_material_attributes_material", "material_id"),
    )

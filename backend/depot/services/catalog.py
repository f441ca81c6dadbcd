"""Units of measure and institutions: small lookup tables."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.models.catalog import Institution, Material, Uom
from backend.depot.models.inventory import InventoryItem
from backend.depot.schemas.catalog import (
    InstitutionCreate,
    InstitutionOut,
    InstitutionUpdate,
    UomCreate,
    UomOut,
    UomUpdate,
)
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache


# ─── Units of measure ─────────────────────────────────────────────────────────


def get_uom_record(db: Session, uom_id: UUID) -> Uom:
    uom = db.get(Uom, uom_id)
    if uom is None:
        raise NotFoundError("Unit of measure not found")
    return uom


def _check_symbol_free(db: Session, symbol: str, exclude_id: UUID | None = None) -> None:
    query = db.query(Uom).filter(func.lower(Uom.symbol) == symbol.lower())
    if exclude_id is not None:
        query = query.filter(Uom.id != exclude_id)
    if query.first():
        raise ConflictError("Unit symbol already exists")


def list_uoms(db: Session) -> list[UomOut]:
    return [UomOut.model_validate(u) for u in db.query(Uom).order_by(Uom.name).all()]


def create_uom(
    db: Session, data: UomCreate, user_id: UUID, ip_address: str | None = None
) -> UomOut:
    _check_symbol_free(db, data.symbol)
    uom = Uom(name=data.name, symbol=data.symbol)
    db.add(uom)
    db.flush()
    log_action(
        db,
        user_id=user_id,
        action="UOM_CREATED",
        resource_type="uoms",
        resource_id=str(uom.id),
        ip_address=ip_address,
        changes={"name": data.name, "symbol": data.symbol},
    )
    db.commit()
    db.refresh(uom)
    return UomOut.model_validate(uom)


def update_uom(
    db: Session, uom_id: UUID, data: UomUpdate, user_id: UUID, ip_address: str | None = None
) -> UomOut:
    uom = get_uom_record(db, uom_id)
    changes: dict[str, object] = {}
    if data.symbol is not None and data.symbol != uom.symbol:
        _check_symbol_free(db, data.symbol, exclude_id=uom.id)
        changes["symbol"] = {"from": uom.symbol, "to": data.symbol}
        uom.symbol = data.symbol
    if data.name is not None:
        changes["name"] = {"from": uom.name, "to": data.name}
        uom.name = data.name

    log_action(
        db,
        user_id=user_id,
        action="UOM_UPDATED",
        resource_type="uoms",
        resource_id=str(uom.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    cache.invalidate("materials:", "statistics:")
    db.refresh(uom)
    return UomOut.model_validate(uom)


def delete_uom(db: Session, uom_id: UUID, user_id: UUID, ip_address: str | None = None) -> None:
    uom = get_uom_record(db, uom_id)
    in_use = (
        db.query(Material.id).filter(Material.uom_id == uom.id).first() is not None
        or db.query(InventoryItem.id).filter(InventoryItem.uom_id == uom.id).first() is not None
    )
    if in_use:
        raise ValidationError("Unit of measure is used by materials")
    log_action(
        db,
        user_id=user_id,
        action="UOM_DELETED",
        resource_type="uoms",
        resource_id=str(uom.id),
        ip_address=ip_address,
        changes={"symbol": uom.symbol},
    )
    db.delete(uom)
    db.commit()


# ─── Institutions ─────────────────────────────────────────────────────────────


def get_institution_record(db: Session, institution_id: UUID) -> Institution:
    inst = db.get(Institution, institution_id)
    if inst is None:
        raise NotFoundError("Institution not found")
    return inst


def _check_institution_name_free(
    db: Session, name: str, exclude_id: UUID | None = None
) -> None:
    query = db.query(Institution).filter(func.lower(Institution.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Institution.id != exclude_id)
    if query.first():
        raise ConflictError("Institution already exists")


def list_institutions(db: Session) -> list[InstitutionOut]:
    rows = db.query(Institution).order_by(Institution.name).all()
    return [InstitutionOut.model_validate(i) for i in rows]


def create_institution(
    db: Session, data: InstitutionCreate, user_id: UUID, ip_address: str | None = None
) -> InstitutionOut:
    _check_institution_name_free(db, data.name)
    inst = Institution(name=data.name, description=data.description)
    db.add(inst)
    db.flush()
    log_action(
        db,
        user_id=user_id,
        action="INSTITUTION_CREATED",
        resource_type="institutions",
        resource_id=str(inst.id),
        ip_address=ip_address,
        changes={"name": data.name},
    )
    db.commit()
    db.refresh(inst)
    return InstitutionOut.model_validate(inst)


def update_institution(
    db: Session,
    institution_id: UUID,
    data: InstitutionUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> InstitutionOut:
    inst = get_institution_record(db, institution_id)
    changes: dict[str, object] = {}
    if data.name is not None and data.name != inst.name:
        _check_institution_name_free(db, data.name, exclude_id=inst.id)
        changes["name"] = {"from": inst.name, "to": data.name}
        inst.name = data.name
    if data.description is not None:
        changes["description"] = {"from": inst.description, "to": data.description}
        inst.description = data.description

    log_action(
        db,
        user_id=user_id,
        action="INSTITUTION_UPDATED",
        resource_type="institutions",
        resource_id=str(inst.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    db.refresh(inst)
    return InstitutionOut.model_validate(inst)


def delete_institution(
    db: Session, institution_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    inst = get_institution_record(db, institution_id)
    if db.query(InventoryItem.id).filter(InventoryItem.institution_id == inst.id).first():
        raise ValidationError("Institution is referenced by inventory items")
    log_action(
        db,
        user_id=user_id,
        action="INSTITUTION_DELETED",
        resource_type="institutions",
        resource_id=str(inst.id),
        ip_address=ip_address,
        changes={"name": inst.name},
    )
    db.delete(inst)
    db.commit()

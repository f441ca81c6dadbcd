"""Material catalogue: CRUD, attributes, stock totals and movement history."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.models.catalog import Material, MaterialAttribute, Uom
from backend.depot.models.inventory import StockMovement
from backend.depot.models.project import Project
from backend.depot.models.request import Request, RequestStatus
from backend.depot.schemas.catalog import (
    MaterialAttributeIn,
    MaterialAttributeOut,
    MaterialCreate,
    MaterialDetailOut,
    MaterialOut,
    MaterialRecentRequest,
    MaterialRequestStats,
    MaterialUpdate,
    StockMovementOut,
    UomOut,
)
from backend.depot.schemas.common import Page
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache, cache_key
from backend.depot.services.pagination import PageParams, paginate
from backend.depot.services.stock import ZERO, stock_totals

logger = logging.getLogger(__name__)

_SORT_COLUMNS = {
    "code": Material.code,
    "name": Material.name,
    "created_at": Material.created_at,
}
_OPEN_STATUSES = (RequestStatus.PENDING, RequestStatus.APPROVED)


def get_material_record(db: Session, material_id: UUID) -> Material:
    material = (
        db.query(Material)
        .filter(Material.id == material_id, Material.deleted_at.is_(None))
        .first()
    )
    if material is None:
        raise NotFoundError("Material not found")
    return material


def _material_out(material: Material, totals: tuple[Decimal, Decimal] = (ZERO, ZERO)) -> MaterialOut:
    qty, reserved = totals
    return MaterialOut(
        id=material.id,
        code=material.code,
        name=material.name,
        description=material.description,
        uom=UomOut.model_validate(material.uom),
        min_stock_qty=material.min_stock_qty,
        stock_qty=qty,
        available_qty=qty - reserved,
        created_at=material.created_at,
    )


def _require_uom(db: Session, uom_id: UUID) -> Uom:
    uom = db.get(Uom, uom_id)
    if uom is None:
        raise NotFoundError("Unit of measure not found")
    return uom


def _check_code_free(db: Session, code: str, exclude_id: UUID | None = None) -> None:
    query = db.query(Material).filter(func.lower(Material.code) == code.lower())
    if exclude_id is not None:
        query = query.filter(Material.id != exclude_id)
    if query.first():
        raise ConflictError("Material code already exists")


def _invalidate() -> None:
    cache.invalidate("materials:", "statistics:")


# ─── Queries ──────────────────────────────────────────────────────────────────


def _load_materials_page(
    db: Session,
    params: PageParams,
    search: str | None,
    uom_id: UUID | None,
    sort_by: str,
    sort_direction: str,
) -> Page[MaterialOut]:
    query = db.query(Material).filter(Material.deleted_at.is_(None))
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Material.code).like(like),
                func.lower(Material.name).like(like),
                func.lower(func.coalesce(Material.description, "")).like(like),
            )
        )
    if uom_id is not None:
        query = query.filter(Material.uom_id == uom_id)

    column = _SORT_COLUMNS.get(sort_by, Material.created_at)
    order = column.asc() if sort_direction == "asc" else column.desc()
    rows, meta = paginate(query.order_by(order, Material.id), params)

    totals = stock_totals(db, [m.id for m in rows])
    return Page[MaterialOut](
        data=[_material_out(m, totals.get(m.id, (ZERO, ZERO))) for m in rows],
        meta=meta,
    )


def list_materials(
    db: Session,
    params: PageParams,
    *,
    search: str | None = None,
    uom_id: UUID | None = None,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
) -> Page[MaterialOut]:
    key = cache_key(
        "materials",
        page=params.page,
        limit=params.limit,
        search=search,
        uom_id=uom_id,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )
    raw = cache.get_or_set(
        key,
        lambda: _load_materials_page(db, params, search, uom_id, sort_by, sort_direction),
    )
    return Page[MaterialOut].model_validate(raw)


def get_material(db: Session, material_id: UUID) -> MaterialDetailOut:
    material = get_material_record(db, material_id)
    base = _material_out(material, stock_totals(db, [material.id]).get(material.id, (ZERO, ZERO)))

    counts = (
        db.query(
            func.count(Request.id),
            func.sum(case((Request.status == RequestStatus.PENDING, 1), else_=0)),
            func.sum(case((Request.status == RequestStatus.APPROVED, 1), else_=0)),
            func.sum(case((Request.status == RequestStatus.REJECTED, 1), else_=0)),
            func.sum(case((Request.status == RequestStatus.DELIVERED, 1), else_=0)),
        )
        .filter(Request.material_id == material.id)
        .one()
    )
    stats = MaterialRequestStats(
        total=int(counts[0] or 0),
        pending=int(counts[1] or 0),
        approved=int(counts[2] or 0),
        rejected=int(counts[3] or 0),
        delivered=int(counts[4] or 0),
    )

    recent = (
        db.query(Request, Project.name)
        .join(Project, Project.id == Request.project_id)
        .filter(Request.material_id == material.id)
        .order_by(Request.created_at.desc())
        .limit(10)
        .all()
    )
    return MaterialDetailOut(
        **base.model_dump(),
        attributes=[MaterialAttributeOut.model_validate(a) for a in material.attributes],
        request_stats=stats,
        recent_requests=[
            MaterialRecentRequest(
                id=req.id,
                project_id=req.project_id,
                project_name=project_name,
                requested_qty=req.requested_qty,
                revised_qty=req.revised_qty,
                status=req.status,
                created_at=req.created_at,
            )
            for req, project_name in recent
        ],
    )


def list_movements(db: Session, material_id: UUID, params: PageParams) -> Page[StockMovementOut]:
    get_material_record(db, material_id)
    query = (
        db.query(StockMovement)
        .filter(StockMovement.material_id == material_id)
        .order_by(StockMovement.created_at.desc())
    )
    rows, meta = paginate(query, params)
    return Page[StockMovementOut](
        data=[StockMovementOut.model_validate(r) for r in rows], meta=meta
    )


# ─── Mutations ────────────────────────────────────────────────────────────────


def create_material(
    db: Session, data: MaterialCreate, user_id: UUID, ip_address: str | None = None
) -> MaterialDetailOut:
    _check_code_free(db, data.code)
    _require_uom(db, data.uom_id)

    material = Material(
        code=data.code,
        name=data.name,
        description=data.description,
        uom_id=data.uom_id,
        min_stock_qty=data.min_stock_qty,
    )
    material.attributes = [
        MaterialAttribute(name=a.name, value=a.value) for a in data.attributes
    ]
    db.add(material)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="MATERIAL_CREATED",
        resource_type="materials",
        resource_id=str(material.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    db.commit()
    db.refresh(material)
    _invalidate()
    return get_material(db, material.id)


def update_material(
    db: Session,
    material_id: UUID,
    data: MaterialUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> MaterialDetailOut:
    material = get_material_record(db, material_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)

    code_changes = "code" in changes and changes["code"] != material.code
    uom_changes = "uom_id" in changes and changes["uom_id"] != material.uom_id
    if code_changes or uom_changes:
        open_request = (
            db.query(Request.id)
            .filter(Request.material_id == material.id, Request.status.in_(_OPEN_STATUSES))
            .first()
        )
        if open_request is not None:
            raise ValidationError(
                "Code and unit cannot change while the material has open requests"
            )
    if code_changes:
        _check_code_free(db, changes["code"], exclude_id=material.id)
    if uom_changes:
        _require_uom(db, changes["uom_id"])

    for field, value in changes.items():
        setattr(material, field, value)

    log_action(
        db,
        user_id=user_id,
        action="MATERIAL_UPDATED",
        resource_type="materials",
        resource_id=str(material.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    _invalidate()
    return get_material(db, material.id)


def replace_attributes(
    db: Session,
    material_id: UUID,
    attributes: list[MaterialAttributeIn],
    user_id: UUID,
    ip_address: str | None = None,
) -> MaterialDetailOut:
    material = get_material_record(db, material_id)
    material.attributes.clear()
    db.flush()
    for attr in attributes:
        material.attributes.append(MaterialAttribute(name=attr.name, value=attr.value))

    log_action(
        db,
        user_id=user_id,
        action="MATERIAL_ATTRIBUTES_SET",
        resource_type="materials",
        resource_id=str(material.id),
        ip_address=ip_address,
        changes={"attributes": [a.model_dump() for a in attributes]},
    )
    db.commit()
    db.refresh(material)
    _invalidate()
    return get_material(db, material.id)


def delete_material(
    db: Session, material_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    material = get_material_record(db, material_id)
    if db.query(Request.id).filter(Request.material_id == material.id).first():
        raise ValidationError("Material is referenced by requests")

    material.deleted_at = datetime.now(timezone.utc)
    log_action(
        db,
        user_id=user_id,
        action="MATERIAL_DELETED",
        resource_type="materials",
        resource_id=str(material.id),
        ip_address=ip_address,
        changes={"code": material.code},
    )
    db.commit()
    _invalidate()
    logger.info("Material %s soft-deleted by %s", material.code, user_id)

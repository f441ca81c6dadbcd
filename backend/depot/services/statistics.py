"""Dashboard statistics. Every result is cached under ``statistics:``."""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from decimal import Decimal
from uuid import UUID

from pydantic import TypeAdapter
from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.depot.core.security import ensure_aware
from backend.depot.models.catalog import Material, Uom
from backend.depot.models.inventory import MovementType, StockMovement, Warehouse
from backend.depot.models.project import Project, ProjectStatus
from backend.depot.models.request import Delivery, DeliveryStatus, Request, RequestStatus
from backend.depot.schemas.reports import (
    DailyMovementRow,
    DeliveryPerformance,
    MaterialUsageRow,
    OverallStats,
    ProjectRequestRow,
    StatusCount,
    StockLevelRow,
)
from backend.depot.services.cache import cache, cache_key
from backend.depot.services.periods import check_range, day_end, day_start
from backend.depot.services.projects import get_project_record
from backend.depot.services.stock import ZERO, stock_totals, to_qty

LEVEL_OUT = "OUT_OF_STOCK"
LEVEL_LOW = "LOW"
LEVEL_OK = "OK"


def stock_level(available: Decimal, threshold: Decimal) -> str:
    if available <= 0:
        return LEVEL_OUT
    if available <= threshold:
        return LEVEL_LOW
    return LEVEL_OK


# ─── Loaders ──────────────────────────────────────────────────────────────────


def _load_stock_levels(db: Session) -> list[StockLevelRow]:
    materials = (
        db.query(Material, Uom.symbol)
        .join(Uom, Material.uom_id == Uom.id)
        .filter(Material.deleted_at.is_(None))
        .order_by(Material.code)
        .all()
    )
    totals = stock_totals(db, [m.id for m, _ in materials])
    rows = []
    for material, symbol in materials:
        qty, reserved = totals.get(material.id, (ZERO, ZERO))
        available = qty - reserved
        threshold = to_qty(material.min_stock_qty)
        rows.append(
            StockLevelRow(
                material_id=material.id,
                code=material.code,
                name=material.name,
                uom_symbol=symbol,
                total_qty=qty,
                reserved_qty=reserved,
                available_qty=available,
                min_stock_qty=threshold,
                level=stock_level(available, threshold),
            )
        )
    return rows


def _load_overall(db: Session) -> OverallStats:
    by_status = dict(
        db.query(Request.status, func.count(Request.id)).group_by(Request.status).all()
    )
    levels = _load_stock_levels(db)
    return OverallStats(
        projects=db.query(Project).filter(Project.deleted_at.is_(None)).count(),
        active_projects=db.query(Project)
        .filter(Project.deleted_at.is_(None), Project.status == ProjectStatus.ACTIVE)
        .count(),
        materials=len(levels),
        warehouses=db.query(Warehouse).filter(Warehouse.deleted_at.is_(None)).count(),
        requests={s.value: int(by_status.get(s, 0)) for s in RequestStatus},
        deliveries=db.query(Delivery)
        .filter(Delivery.status == DeliveryStatus.COMPLETED)
        .count(),
        low_stock_materials=sum(1 for r in levels if r.level != LEVEL_OK),
    )


def _load_status_distribution(
    db: Session, start_date: date | None, end_date: date | None
) -> list[StatusCount]:
    query = db.query(Request.status, func.count(Request.id))
    if start_date:
        query = query.filter(Request.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(Request.created_at <= day_end(end_date))
    counts = dict(query.group_by(Request.status).all())
    return [StatusCount(status=s.value, count=int(counts.get(s, 0))) for s in RequestStatus]


def _load_project_distribution(
    db: Session, start_date: date | None, end_date: date | None
) -> list[ProjectRequestRow]:
    query = db.query(Request.project_id, Request.status, func.count(Request.id))
    if start_date:
        query = query.filter(Request.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(Request.created_at <= day_end(end_date))

    counts: dict[UUID, dict[str, int]] = defaultdict(dict)
    for project_id, req_status, count in query.group_by(Request.project_id, Request.status):
        counts[project_id][req_status.value] = int(count)

    rows = [
        ProjectRequestRow(
            project_id=p.id,
            name=p.name,
            status=p.status.value,
            total=sum(counts[p.id].values()),
            requests={s.value: counts[p.id].get(s.value, 0) for s in RequestStatus},
        )
        for p in db.query(Project).filter(Project.deleted_at.is_(None)).all()
    ]
    rows.sort(key=lambda r: (-r.total, r.name))
    return rows


def _load_material_usage(
    db: Session, limit: int | None = None, project_id: UUID | None = None
) -> list[MaterialUsageRow]:
    query = (
        db.query(
            Material.id,
            Material.code,
            Material.name,
            Uom.symbol,
            func.sum(Delivery.quantity),
            func.count(Delivery.id),
        )
        .join(Request, Delivery.request_id == Request.id)
        .join(Material, Request.material_id == Material.id)
        .join(Uom, Material.uom_id == Uom.id)
        .filter(Delivery.status == DeliveryStatus.COMPLETED)
    )
    if project_id is not None:
        query = query.filter(Request.project_id == project_id)
    query = query.group_by(Material.id, Material.code, Material.name, Uom.symbol).order_by(
        func.sum(Delivery.quantity).desc(), Material.code
    )
    if limit is not None:
        query = query.limit(limit)
    return [
        MaterialUsageRow(
            material_id=mid,
            code=code,
            name=name,
            uom_symbol=symbol,
            delivered_qty=to_qty(qty),
            delivery_count=int(count),
        )
        for mid, code, name, symbol, qty, count in query.all()
    ]


def _load_delivery_performance(
    db: Session, start_date: date | None, end_date: date | None
) -> DeliveryPerformance:
    query = (
        db.query(Request.created_at, Delivery.delivery_date)
        .join(Request, Delivery.request_id == Request.id)
        .filter(Delivery.status == DeliveryStatus.COMPLETED)
    )
    if start_date:
        query = query.filter(Delivery.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(Delivery.created_at <= day_end(end_date))
    pairs = query.all()

    hours = [
        (ensure_aware(delivered) - ensure_aware(requested)).total_seconds() / 3600
        for requested, delivered in pairs
        if requested is not None and delivered is not None
    ]
    pending = (
        db.query(Request)
        .filter(Request.status.in_([RequestStatus.PENDING, RequestStatus.APPROVED]))
        .count()
    )
    return DeliveryPerformance(
        completed=len(pairs),
        pending_requests=pending,
        average_lead_time_hours=round(sum(hours) / len(hours), 2) if hours else None,
    )


def _load_daily_movements(
    db: Session, start_date: date | None, end_date: date | None
) -> list[DailyMovementRow]:
    query = db.query(StockMovement.created_at, StockMovement.type, StockMovement.quantity)
    if start_date:
        query = query.filter(StockMovement.created_at >= day_start(start_date))
    if end_date:
        query = query.filter(StockMovement.created_at <= day_end(end_date))

    days: dict[str, list[Decimal]] = defaultdict(lambda: [ZERO, ZERO])
    for created_at, movement_type, quantity in query.all():
        bucket = days[created_at.date().isoformat()]
        if movement_type == MovementType.IN:
            bucket[0] += to_qty(quantity)
        else:
            bucket[1] += to_qty(quantity)
    return [
        DailyMovementRow(day=day, in_qty=in_qty, out_qty=out_qty)
        for day, (in_qty, out_qty) in sorted(days.items())
    ]


# ─── Public API ───────────────────────────────────────────────────────────────


def overall(db: Session) -> OverallStats:
    raw = cache.get_or_set(cache_key("statistics", view="overall"), lambda: _load_overall(db))
    return OverallStats.model_validate(raw)


def request_status_distribution(
    db: Session, start_date: date | None = None, end_date: date | None = None
) -> list[StatusCount]:
    check_range(start_date, end_date)
    raw = cache.get_or_set(
        cache_key("statistics", view="status", start=start_date, end=end_date),
        lambda: _load_status_distribution(db, start_date, end_date),
    )
    return TypeAdapter(list[StatusCount]).validate_python(raw)


def most_used_materials(db: Session, limit: int = 10) -> list[MaterialUsageRow]:
    raw = cache.get_or_set(
        cache_key("statistics", view="usage", limit=limit),
        lambda: _load_material_usage(db, limit=limit),
    )
    return TypeAdapter(list[MaterialUsageRow]).validate_python(raw)


def stock_levels(db: Session) -> list[StockLevelRow]:
    raw = cache.get_or_set(
        cache_key("statistics", view="stock_levels"), lambda: _load_stock_levels(db)
    )
    return TypeAdapter(list[StockLevelRow]).validate_python(raw)


def delivery_performance(
    db: Session, start_date: date | None = None, end_date: date | None = None
) -> DeliveryPerformance:
    check_range(start_date, end_date)
    raw = cache.get_or_set(
        cache_key("statistics", view="delivery_performance", start=start_date, end=end_date),
        lambda: _load_delivery_performance(db, start_date, end_date),
    )
    return DeliveryPerformance.model_validate(raw)


def project_material_usage(db: Session, project_id: UUID) -> list[MaterialUsageRow]:
    get_project_record(db, project_id)
    raw = cache.get_or_set(
        cache_key("statistics", view="project_usage", project=project_id),
        lambda: _load_material_usage(db, project_id=project_id),
    )
    return TypeAdapter(list[MaterialUsageRow]).validate_python(raw)


def stock_movements(
    db: Session, start_date: date | None = None, end_date: date | None = None
) -> list[DailyMovementRow]:
    check_range(start_date, end_date)
    raw = cache.get_or_set(
        cache_key("statistics", view="movements", start=start_date, end=end_date),
        lambda: _load_daily_movements(db, start_date, end_date),
    )
    return TypeAdapter(list[DailyMovementRow]).validate_python(raw)


def project_request_distribution(
    db: Session, start_date: date | None = None, end_date: date | None = None
) -> list[ProjectRequestRow]:
    """Requests per project, broken down by status; busiest projects first."""
    check_range(start_date, end_date)
    raw = cache.get_or_set(
        cache_key("statistics", view="project_requests", start=start_date, end=end_date),
        lambda: _load_project_distribution(db, start_date, end_date),
    )
    return TypeAdapter(list[ProjectRequestRow]).validate_python(raw)

from __future__ import annotations

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.reports import (
    DailyMovementRow,
    DeliveryPerformance,
    MaterialUsageRow,
    OverallStats,
    ProjectRequestRow,
    StatusCount,
    StockLevelRow,
)
from backend.depot.services import statistics

router = APIRouter()


@router.get("/overall", response_model=OverallStats)
def overall(
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> OverallStats:
    return statistics.overall(db)


@router.get("/request-status-distribution", response_model=list[StatusCount])
def request_status_distribution(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[StatusCount]:
    return statistics.request_status_distribution(db, start_date, end_date)


@router.get("/project-request-distribution", response_model=list[ProjectRequestRow])
def project_request_distribution(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[ProjectRequestRow]:
    return statistics.project_request_distribution(db, start_date, end_date)


@router.get("/most-used-materials", response_model=list[MaterialUsageRow])
def most_used_materials(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[MaterialUsageRow]:
    return statistics.most_used_materials(db, limit=limit)


@router.get("/stock-levels", response_model=list[StockLevelRow])
def stock_levels(
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[StockLevelRow]:
    return statistics.stock_levels(db)


@router.get("/delivery-performance", response_model=DeliveryPerformance)
def delivery_performance(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> DeliveryPerformance:
    return statistics.delivery_performance(db, start_date, end_date)


@router.get("/project-material-usage/{project_id}", response_model=list[MaterialUsageRow])
def project_material_usage(
    project_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[MaterialUsageRow]:
    return statistics.project_material_usage(db, project_id)


@router.get("/stock-movements", response_model=list[DailyMovementRow])
def stock_movements(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("report:read")),
) -> list[DailyMovementRow]:
    return statistics.stock_movements(db, start_date, end_date)

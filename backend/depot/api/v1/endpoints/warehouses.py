from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope
from backend.depot.schemas.warehouse import (
    WarehouseCreate,
    WarehouseOut,
    WarehouseStockOut,
    WarehouseUpdate,
)
from backend.depot.services.warehouse import (
    create_warehouse,
    delete_warehouse,
    get_warehouse,
    get_warehouse_stock,
    list_warehouses,
    update_warehouse,
)

router = APIRouter()


# ─── Warehouses ───────────────────────────────────────────────────────────────


@router.get("", response_model=list[WarehouseOut])
def get_warehouses(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("warehouse:read")),
) -> list[WarehouseOut]:
    return list_warehouses(db, include_inactive=include_inactive)


@router.get("/{warehouse_id}", response_model=WarehouseOut)
def get_single_warehouse(
    warehouse_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("warehouse:read")),
) -> WarehouseOut:
    return get_warehouse(db, warehouse_id)


@router.post("", response_model=Envelope[WarehouseOut], status_code=status.HTTP_201_CREATED)
def create_new_warehouse(
    payload: WarehouseCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("warehouse:write")),
) -> Envelope[WarehouseOut]:
    wh = create_warehouse(
        db=db,
        data=payload,
        user_id=current_user.id,
        ip_address=client_ip(request),
    )
    return Envelope[WarehouseOut](message="Warehouse created", data=wh)


@router.patch("/{warehouse_id}", response_model=Envelope[WarehouseOut])
def update_existing_warehouse(
    warehouse_id: UUID,
    payload: WarehouseUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("warehouse:write")),
) -> Envelope[WarehouseOut]:
    wh = update_warehouse(
        db=db,
        warehouse_id=warehouse_id,
        data=payload,
        user_id=current_user.id,
        ip_address=client_ip(request),
    )
    return Envelope[WarehouseOut](message="Warehouse updated", data=wh)


@router.delete("/{warehouse_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_existing_warehouse(
    warehouse_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("warehouse:write")),
) -> Response:
    delete_warehouse(
        db=db,
        warehouse_id=warehouse_id,
        user_id=current_user.id,
        ip_address=client_ip(request),
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{warehouse_id}/stock", response_model=list[WarehouseStockOut])
def get_stock(
    warehouse_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("warehouse:read")),
) -> list[WarehouseStockOut]:
    return get_warehouse_stock(db, warehouse_id)

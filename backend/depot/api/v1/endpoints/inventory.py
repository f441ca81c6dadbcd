from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.inventory import MovementType, ReserveStatus
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.inventory import (
    InventoryItemCreate,
    InventoryItemOut,
    InventoryTransactionOut,
    QuantityAdjust,
    ReserveCreate,
    ReserveOut,
)
from backend.depot.services import inventory
from backend.depot.services.pagination import PageParams

items_router = APIRouter()
reserves_router = APIRouter()
transactions_router = APIRouter()


# ─── Inventory items ──────────────────────────────────────────────────────────


@items_router.get("", response_model=Page[InventoryItemOut])
def list_items(
    search: str | None = Query(None),
    warehouse_id: UUID | None = Query(None),
    material_id: UUID | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("inventory:read")),
) -> Page[InventoryItemOut]:
    return inventory.list_items(
        db, params, search=search, warehouse_id=warehouse_id, material_id=material_id
    )


@items_router.get("/{item_id}", response_model=InventoryItemOut)
def get_item(
    item_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("inventory:read")),
) -> InventoryItemOut:
    return inventory.get_item(db, item_id)


@items_router.post(
    "", response_model=Envelope[InventoryItemOut], status_code=status.HTTP_201_CREATED
)
def create_item(
    payload: InventoryItemCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("inventory:write")),
) -> Envelope[InventoryItemOut]:
    item = inventory.create_item(db, payload, current_user.id, client_ip(request))
    return Envelope[InventoryItemOut](message="Inventory item created", data=item)


@items_router.patch("/{item_id}/quantity", response_model=Envelope[InventoryItemOut])
def adjust_item_quantity(
    item_id: UUID,
    payload: QuantityAdjust,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("inventory:adjust")),
) -> Envelope[InventoryItemOut]:
    """Set, increase or decrease the on-hand quantity.

    A concurrent change to the same item between read and write yields 409;
    the client should re-read the item and retry.
    """
    item = inventory.adjust_quantity(db, item_id, payload, current_user.id, client_ip(request))
    return Envelope[InventoryItemOut](message="Quantity updated", data=item)


@items_router.delete("/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_item(
    item_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("inventory:write")),
) -> Response:
    inventory.delete_item(db, item_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Reserves ─────────────────────────────────────────────────────────────────


@reserves_router.get("", response_model=Page[ReserveOut])
def list_reserves(
    search: str | None = Query(None),
    status: ReserveStatus | None = Query(None),
    project_id: UUID | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("inventory:read")),
) -> Page[ReserveOut]:
    return inventory.list_reserves(
        db, params, search=search, status=status, project_id=project_id
    )


@reserves_router.post(
    "", response_model=Envelope[ReserveOut], status_code=status.HTTP_201_CREATED
)
def create_reserve(
    payload: ReserveCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("inventory:write")),
) -> Envelope[ReserveOut]:
    reserve = inventory.create_reserve(db, payload, current_user.id, client_ip(request))
    return Envelope[ReserveOut](message="Stock reserved", data=reserve)


@reserves_router.post("/{reserve_id}/cancel", response_model=Envelope[ReserveOut])
def cancel_reserve(
    reserve_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("inventory:write")),
) -> Envelope[ReserveOut]:
    reserve = inventory.cancel_reserve(db, reserve_id, current_user.id, client_ip(request))
    return Envelope[ReserveOut](message="Reserve cancelled", data=reserve)


# ─── Transactions ─────────────────────────────────────────────────────────────


@transactions_router.get("", response_model=Page[InventoryTransactionOut])
def list_transactions(
    search: str | None = Query(None),
    type: MovementType | None = Query(None),
    inventory_item_id: UUID | None = Query(None),
    warehouse_id: UUID | None = Query(None),
    material_id: UUID | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("inventory:read")),
) -> Page[InventoryTransactionOut]:
    return inventory.list_transactions(
        db,
        params,
        search=search,
        movement_type=type,
        inventory_item_id=inventory_item_id,
        warehouse_id=warehouse_id,
        material_id=material_id,
    )

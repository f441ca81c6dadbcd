from __future__ import annotations

from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.catalog import (
    MaterialAttributesIn,
    MaterialCreate,
    MaterialDetailOut,
    MaterialOut,
    MaterialUpdate,
    StockMovementOut,
)
from backend.depot.schemas.common import Envelope, Page
from backend.depot.services import materials
from backend.depot.services import search as search_service
from backend.depot.services.pagination import PageParams

router = APIRouter()


@router.get("", response_model=Page[MaterialOut])
def list_materials(
    search: str | None = Query(None),
    uom_id: UUID | None = Query(None),
    sort_by: Literal["code", "name", "created_at"] = Query("created_at"),
    sort_direction: Literal["asc", "desc"] = Query("desc"),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("material:read")),
) -> Page[MaterialOut]:
    return materials.list_materials(
        db,
        params,
        search=search,
        uom_id=uom_id,
        sort_by=sort_by,
        sort_direction=sort_direction,
    )


@router.get("/suggestions", response_model=list[str])
def material_suggestions(
    prefix: str = Query(..., min_length=1, max_length=100),
    field: str = Query("name"),
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("material:read")),
) -> list[str]:
    return search_service.suggestions(db, "materials", field, prefix, limit)


@router.get("/{material_id}", response_model=MaterialDetailOut)
def get_material(
    material_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("material:read")),
) -> MaterialDetailOut:
    return materials.get_material(db, material_id)


@router.get("/{material_id}/movements", response_model=Page[StockMovementOut])
def list_material_movements(
    material_id: UUID,
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("material:read")),
) -> Page[StockMovementOut]:
    return materials.list_movements(db, material_id, params)


@router.post(
    "", response_model=Envelope[MaterialDetailOut], status_code=status.HTTP_201_CREATED
)
def create_material(
    body: MaterialCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("material:write")),
) -> Envelope[MaterialDetailOut]:
    material = materials.create_material(db, body, current_user.id, client_ip(request))
    return Envelope[MaterialDetailOut](message="Material created", data=material)


@router.put("/{material_id}", response_model=Envelope[MaterialDetailOut])
def update_material(
    material_id: UUID,
    body: MaterialUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("material:write")),
) -> Envelope[MaterialDetailOut]:
    material = materials.update_material(
        db, material_id, body, current_user.id, client_ip(request)
    )
    return Envelope[MaterialDetailOut](message="Material updated", data=material)


@router.put("/{material_id}/attributes", response_model=Envelope[MaterialDetailOut])
def replace_material_attributes(
    material_id: UUID,
    body: MaterialAttributesIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("material:write")),
) -> Envelope[MaterialDetailOut]:
    material = materials.replace_attributes(
        db, material_id, body.attributes, current_user.id, client_ip(request)
    )
    return Envelope[MaterialDetailOut](message="Material attributes updated", data=material)


@router.delete("/{material_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_material(
    material_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("material:write")),
) -> Response:
    materials.delete_material(db, material_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

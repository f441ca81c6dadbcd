"""Units of measure and institutions."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.catalog import (
    InstitutionCreate,
    InstitutionOut,
    InstitutionUpdate,
    UomCreate,
    UomOut,
    UomUpdate,
)
from backend.depot.schemas.common import Envelope
from backend.depot.services import catalog

uom_router = APIRouter()
institution_router = APIRouter()


# ─── Units of measure ─────────────────────────────────────────────────────────


@uom_router.get("", response_model=list[UomOut])
def list_uoms(
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("catalog:read")),
) -> list[UomOut]:
    return catalog.list_uoms(db)


@uom_router.post("", response_model=Envelope[UomOut], status_code=status.HTTP_201_CREATED)
def create_uom(
    body: UomCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Envelope[UomOut]:
    uom = catalog.create_uom(db, body, current_user.id, client_ip(request))
    return Envelope[UomOut](message="Unit of measure created", data=uom)


@uom_router.put("/{uom_id}", response_model=Envelope[UomOut])
def update_uom(
    uom_id: UUID,
    body: UomUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Envelope[UomOut]:
    uom = catalog.update_uom(db, uom_id, body, current_user.id, client_ip(request))
    return Envelope[UomOut](message="Unit of measure updated", data=uom)


@uom_router.delete("/{uom_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_uom(
    uom_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Response:
    catalog.delete_uom(db, uom_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Institutions ─────────────────────────────────────────────────────────────


@institution_router.get("", response_model=list[InstitutionOut])
def list_institutions(
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("catalog:read")),
) -> list[InstitutionOut]:
    return catalog.list_institutions(db)


@institution_router.post(
    "", response_model=Envelope[InstitutionOut], status_code=status.HTTP_201_CREATED
)
def create_institution(
    body: InstitutionCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Envelope[InstitutionOut]:
    inst = catalog.create_institution(db, body, current_user.id, client_ip(request))
    return Envelope[InstitutionOut](message="Institution created", data=inst)


@institution_router.put("/{institution_id}", response_model=Envelope[InstitutionOut])
def update_institution(
    institution_id: UUID,
    body: InstitutionUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Envelope[InstitutionOut]:
    inst = catalog.update_institution(
        db, institution_id, body, current_user.id, client_ip(request)
    )
    return Envelope[InstitutionOut](message="Institution updated", data=inst)


@institution_router.delete("/{institution_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_institution(
    institution_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("catalog:write")),
) -> Response:
    catalog.delete_institution(db, institution_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

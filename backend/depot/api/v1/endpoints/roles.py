from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.permission import RoleType
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope
from backend.depot.schemas.staff import RoleCreate, RoleOut, RolePermissionsIn, RoleUpdate
from backend.depot.services import staff

router = APIRouter()


@router.get("", response_model=list[RoleOut])
def list_roles(
    type: RoleType | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("role:read")),
) -> list[RoleOut]:
    return staff.list_roles(db, role_type=type)


@router.get("/{role_id}", response_model=RoleOut)
def get_role(
    role_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("role:read")),
) -> RoleOut:
    return staff.get_role(db, role_id)


@router.post("", response_model=Envelope[RoleOut], status_code=status.HTTP_201_CREATED)
def create_role(
    body: RoleCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("role:write")),
) -> Envelope[RoleOut]:
    role = staff.create_role(db, body, current_user.id, client_ip(request))
    return Envelope[RoleOut](message="Role created", data=role)


@router.put("/{role_id}", response_model=Envelope[RoleOut])
def update_role(
    role_id: UUID,
    body: RoleUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("role:write")),
) -> Envelope[RoleOut]:
    role = staff.update_role(db, role_id, body, current_user.id, client_ip(request))
    return Envelope[RoleOut](message="Role updated", data=role)


@router.put("/{role_id}/permissions", response_model=Envelope[RoleOut])
def set_role_permissions(
    role_id: UUID,
    body: RolePermissionsIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("role:write")),
) -> Envelope[RoleOut]:
    role = staff.set_role_permissions(
        db, role_id, body.codes, current_user.id, client_ip(request)
    )
    return Envelope[RoleOut](message="Role permissions updated", data=role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    role_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("role:write")),
) -> Response:
    staff.delete_role(db, role_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

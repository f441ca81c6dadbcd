from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.staff import EmployeeCreate, EmployeeOut, EmployeeUpdate
from backend.depot.services import staff
from backend.depot.services.pagination import PageParams

router = APIRouter()


@router.get("", response_model=Page[EmployeeOut])
def list_employees(
    search: str | None = Query(None),
    role_id: UUID | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("employee:read")),
) -> Page[EmployeeOut]:
    return staff.list_employees(db, params, search=search, role_id=role_id)


@router.get("/{employee_id}", response_model=EmployeeOut)
def get_employee(
    employee_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("employee:read")),
) -> EmployeeOut:
    return staff.get_employee(db, employee_id)


@router.post("", response_model=Envelope[EmployeeOut], status_code=status.HTTP_201_CREATED)
def create_employee(
    body: EmployeeCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("employee:write")),
) -> Envelope[EmployeeOut]:
    emp = staff.create_employee(db, body, current_user.id, client_ip(request))
    return Envelope[EmployeeOut](message="Employee created", data=emp)


@router.put("/{employee_id}", response_model=Envelope[EmployeeOut])
def update_employee(
    employee_id: UUID,
    body: EmployeeUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("employee:write")),
) -> Envelope[EmployeeOut]:
    emp = staff.update_employee(db, employee_id, body, current_user.id, client_ip(request))
    return Envelope[EmployeeOut](message="Employee updated", data=emp)


@router.delete("/{employee_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_employee(
    employee_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("employee:write")),
) -> Response:
    staff.delete_employee(db, employee_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)

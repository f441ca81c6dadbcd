from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.project import ProjectStatus
from backend.depot.models.user import User
from backend.depot.schemas.common import Envelope, Page
from backend.depot.schemas.project import (
    ProjectCreate,
    ProjectEmployeeIn,
    ProjectEmployeeOut,
    ProjectOut,
    ProjectUpdate,
    ProjectUserIn,
    ProjectUserOut,
)
from backend.depot.services import projects
from backend.depot.services.pagination import PageParams

router = APIRouter()


# ─── Projects ─────────────────────────────────────────────────────────────────


@router.get("", response_model=Page[ProjectOut])
def list_projects(
    search: str | None = Query(None),
    status: ProjectStatus | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("project:read")),
) -> Page[ProjectOut]:
    return projects.list_projects(db, params, search=search, status=status)


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(
    project_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("project:read")),
) -> ProjectOut:
    return projects.get_project(db, project_id)


@router.post("", response_model=Envelope[ProjectOut], status_code=status.HTTP_201_CREATED)
def create_project(
    body: ProjectCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Envelope[ProjectOut]:
    project = projects.create_project(db, body, current_user.id, client_ip(request))
    return Envelope[ProjectOut](message="Project created", data=project)


@router.put("/{project_id}", response_model=Envelope[ProjectOut])
def update_project(
    project_id: UUID,
    body: ProjectUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Envelope[ProjectOut]:
    project = projects.update_project(
        db, project_id, body, current_user.id, client_ip(request)
    )
    return Envelope[ProjectOut](message="Project updated", data=project)


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_project(
    project_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Response:
    projects.delete_project(db, project_id, current_user.id, client_ip(request))
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ─── Members ──────────────────────────────────────────────────────────────────


@router.get("/{project_id}/users", response_model=list[ProjectUserOut])
def list_project_users(
    project_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("project:read")),
) -> list[ProjectUserOut]:
    return projects.list_project_users(db, project_id)


@router.post(
    "/{project_id}/users",
    response_model=Envelope[list[ProjectUserOut]],
    status_code=status.HTTP_201_CREATED,
)
def add_project_user(
    project_id: UUID,
    body: ProjectUserIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Envelope[list[ProjectUserOut]]:
    members = projects.add_project_user(
        db, project_id, body, current_user.id, client_ip(request)
    )
    return Envelope[list[ProjectUserOut]](message="User added to project", data=members)


@router.delete("/{project_id}/users/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_project_user(
    project_id: UUID,
    user_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Response:
    projects.remove_project_user(
        db, project_id, user_id, current_user.id, client_ip(request)
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{project_id}/employees", response_model=list[ProjectEmployeeOut])
def list_project_employees(
    project_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("project:read")),
) -> list[ProjectEmployeeOut]:
    return projects.list_project_employees(db, project_id)


@router.post(
    "/{project_id}/employees",
    response_model=Envelope[list[ProjectEmployeeOut]],
    status_code=status.HTTP_201_CREATED,
)
def add_project_employee(
    project_id: UUID,
    body: ProjectEmployeeIn,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Envelope[list[ProjectEmployeeOut]]:
    staff = projects.add_project_employee(
        db, project_id, body, current_user.id, client_ip(request)
    )
    return Envelope[list[ProjectEmployeeOut]](
        message="Employee added to project", data=staff
    )


@router.delete(
    "/{project_id}/employees/{employee_id}", status_code=status.HTTP_204_NO_CONTENT
)
def remove_project_employee(
    project_id: UUID,
    employee_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("project:write")),
) -> Response:
    projects.remove_project_employee(
        db, project_id, employee_id, current_user.id, client_ip(request)
    )
    return Response(status_code=status.HTTP_204_NO_CONTENT)

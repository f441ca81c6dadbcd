from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.models.permission import Role
from backend.depot.models.project import (
    Project,
    ProjectEmployee,
    ProjectStatus,
    ProjectUser,
    ProjectUserRole,
)
from backend.depot.models.user import User
from backend.depot.schemas.common import Page
from backend.depot.schemas.project import (
    ProjectCreate,
    ProjectEmployeeIn,
    ProjectEmployeeOut,
    ProjectOut,
    ProjectUpdate,
    ProjectUserIn,
    ProjectUserOut,
)
from backend.depot.services.audit import log_action
from backend.depot.services.cache import cache
from backend.depot.services.pagination import PageParams, paginate
from backend.depot.services.staff import get_employee_record


def get_project_record(db: Session, project_id: UUID) -> Project:
    project = (
        db.query(Project)
        .filter(Project.id == project_id, Project.deleted_at.is_(None))
        .first()
    )
    if project is None:
        raise NotFoundError("Project not found")
    return project


def _member_counts(db: Session, project_ids: list[UUID]) -> dict[UUID, tuple[int, int]]:
    if not project_ids:
        return {}
    rows = (
        db.query(
            ProjectUser.project_id,
            func.sum(case((ProjectUser.role == ProjectUserRole.ENGINEER, 1), else_=0)),
            func.sum(case((ProjectUser.role == ProjectUserRole.CONTRACTOR, 1), else_=0)),
        )
        .filter(ProjectUser.project_id.in_(project_ids))
        .group_by(ProjectUser.project_id)
        .all()
    )
    return {pid: (int(eng or 0), int(con or 0)) for pid, eng, con in rows}


def _project_out(project: Project, counts: tuple[int, int] = (0, 0)) -> ProjectOut:
    return ProjectOut(
        id=project.id,
        name=project.name,
        description=project.description,
        status=project.status,
        start_date=project.start_date,
        end_date=project.end_date,
        engineer_count=counts[0],
        contractor_count=counts[1],
        created_at=project.created_at,
    )


# ─── Project CRUD ─────────────────────────────────────────────────────────────


def list_projects(
    db: Session,
    params: PageParams,
    search: str | None = None,
    status: ProjectStatus | None = None,
) -> Page[ProjectOut]:
    query = db.query(Project).filter(Project.deleted_at.is_(None))
    if search:
        query = query.filter(func.lower(Project.name).like(f"%{search.lower()}%"))
    if status is not None:
        query = query.filter(Project.status == status)
    rows, meta = paginate(query.order_by(Project.created_at.desc()), params)
    counts = _member_counts(db, [p.id for p in rows])
    return Page[ProjectOut](
        data=[_project_out(p, counts.get(p.id, (0, 0))) for p in rows], meta=meta
    )


def get_project(db: Session, project_id: UUID) -> ProjectOut:
    project = get_project_record(db, project_id)
    return _project_out(project, _member_counts(db, [project.id]).get(project.id, (0, 0)))


def create_project(
    db: Session, data: ProjectCreate, user_id: UUID, ip_address: str | None = None
) -> ProjectOut:
    project = Project(**data.model_dump())
    db.add(project)
    db.flush()
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_CREATED",
        resource_type="projects",
        resource_id=str(project.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    db.commit()
    db.refresh(project)
    cache.invalidate("statistics:")
    return _project_out(project)


def update_project(
    db: Session,
    project_id: UUID,
    data: ProjectUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> ProjectOut:
    project = get_project_record(db, project_id)
    changes = data.model_dump(exclude_unset=True)
    for field, value in changes.items():
        if value is None and field in ("name", "status"):
            continue
        setattr(project, field, value)
    if project.start_date and project.end_date and project.end_date < project.start_date:
        raise ValidationError("end_date must not be before start_date")

    log_action(
        db,
        user_id=user_id,
        action="PROJECT_UPDATED",
        resource_type="projects",
        resource_id=str(project.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    db.refresh(project)
    cache.invalidate("statistics:")
    return get_project(db, project.id)


def delete_project(
    db: Session, project_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    project = get_project_record(db, project_id)
    project.deleted_at = datetime.now(timezone.utc)
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_DELETED",
        resource_type="projects",
        resource_id=str(project.id),
        ip_address=ip_address,
        changes={"name": project.name},
    )
    db.commit()
    cache.invalidate("statistics:")


# ─── Members (users) ──────────────────────────────────────────────────────────


def list_project_users(db: Session, project_id: UUID) -> list[ProjectUserOut]:
    get_project_record(db, project_id)
    rows = (
        db.query(ProjectUser, User)
        .join(User, User.id == ProjectUser.user_id)
        .filter(ProjectUser.project_id == project_id)
        .order_by(User.username)
        .all()
    )
    return [
        ProjectUserOut(
            user_id=user.id,
            username=user.username,
            full_name=user.full_name,
            role=pu.role,
            created_at=pu.created_at,
        )
        for pu, user in rows
    ]


def add_project_user(
    db: Session,
    project_id: UUID,
    data: ProjectUserIn,
    user_id: UUID,
    ip_address: str | None = None,
) -> list[ProjectUserOut]:
    get_project_record(db, project_id)
    if db.get(User, data.user_id) is None:
        raise NotFoundError("User not found")
    existing = (
        db.query(ProjectUser)
        .filter(ProjectUser.project_id == project_id, ProjectUser.user_id == data.user_id)
        .first()
    )
    if existing:
        raise ConflictError("User is already a member of this project")

    db.add(ProjectUser(project_id=project_id, user_id=data.user_id, role=data.role))
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_USER_ADDED",
        resource_type="projects",
        resource_id=str(project_id),
        ip_address=ip_address,
        changes={"user_id": data.user_id, "role": data.role.value},
    )
    db.commit()
    return list_project_users(db, project_id)


def remove_project_user(
    db: Session,
    project_id: UUID,
    member_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> None:
    get_project_record(db, project_id)
    link = (
        db.query(ProjectUser)
        .filter(ProjectUser.project_id == project_id, ProjectUser.user_id == member_id)
        .first()
    )
    if link is None:
        raise NotFoundError("User is not a member of this project")
    db.delete(link)
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_USER_REMOVED",
        resource_type="projects",
        resource_id=str(project_id),
        ip_address=ip_address,
        changes={"user_id": member_id},
    )
    db.commit()


# ─── Staff (employees) ────────────────────────────────────────────────────────


def list_project_employees(db: Session, project_id: UUID) -> list[ProjectEmployeeOut]:
    project = get_project_record(db, project_id)
    return [
        ProjectEmployeeOut(
            employee_id=link.employee_id,
            full_name=link.employee.full_name,
            role_id=link.role_id,
            role_name=link.role.name if link.role else None,
            created_at=link.created_at,
        )
        for link in project.staff
        if link.employee.deleted_at is None
    ]


def add_project_employee(
    db: Session,
    project_id: UUID,
    data: ProjectEmployeeIn,
    user_id: UUID,
    ip_address: str | None = None,
) -> list[ProjectEmployeeOut]:
    get_project_record(db, project_id)
    employee = get_employee_record(db, data.employee_id)
    role_id = data.role_id or employee.role_id
    if data.role_id is not None:
        role = db.query(Role).filter(Role.id == data.role_id, Role.deleted_at.is_(None)).first()
        if role is None:
            raise NotFoundError("Role not found")
    existing = (
        db.query(ProjectEmployee)
        .filter(
            ProjectEmployee.project_id == project_id,
            ProjectEmployee.employee_id == data.employee_id,
        )
        .first()
    )
    if existing:
        raise ConflictError("Employee is already assigned to this project")

    db.add(ProjectEmployee(project_id=project_id, employee_id=employee.id, role_id=role_id))
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_EMPLOYEE_ADDED",
        resource_type="projects",
        resource_id=str(project_id),
        ip_address=ip_address,
        changes={"employee_id": employee.id, "role_id": role_id},
    )
    db.commit()
    return list_project_employees(db, project_id)


def remove_project_employee(
    db: Session,
    project_id: UUID,
    employee_id: UUID,
    user_id: UUID,
    ip_address: str | None = None,
) -> None:
    get_project_record(db, project_id)
    link = (
        db.query(ProjectEmployee)
        .filter(
            ProjectEmployee.project_id == project_id,
            ProjectEmployee.employee_id == employee_id,
        )
        .first()
    )
    if link is None:
        raise NotFoundError("Employee is not assigned to this project")
    db.delete(link)
    log_action(
        db,
        user_id=user_id,
        action="PROJECT_EMPLOYEE_REMOVED",
        resource_type="projects",
        resource_id=str(project_id),
        ip_address=ip_address,
        changes={"employee_id": employee_id},
    )
    db.commit()

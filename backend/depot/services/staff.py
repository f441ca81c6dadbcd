"""Roles (with their permission grants) and site employees."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.core.permissions import ALL_PERMISSION_CODES, ROLE_DESCRIPTIONS, ROLE_PERMISSIONS
from backend.depot.models.permission import Permission, Role, RolePermission, RoleType
from backend.depot.models.project import Employee, ProjectEmployee
from backend.depot.models.user import User
from backend.depot.schemas.common import Page
from backend.depot.schemas.staff import (
    EmployeeCreate,
    EmployeeOut,
    EmployeeUpdate,
    RoleCreate,
    RoleOut,
    RoleUpdate,
)
from backend.depot.services.audit import log_action
from backend.depot.services.pagination import PageParams, paginate


# ─── Seeding ──────────────────────────────────────────────────────────────────


def ensure_system_roles(db: Session) -> dict[str, Role]:
    """Create any missing permissions and system roles. Idempotent; flushes only."""
    perm_map = {p.code: p for p in db.query(Permission).all()}
    for code, desc, cat in ALL_PERMISSION_CODES:
        if code not in perm_map:
            perm = Permission(code=code, description=desc, category=cat)
            db.add(perm)
            perm_map[code] = perm
    db.flush()

    roles: dict[str, Role] = {}
    for role_name, codes in ROLE_PERMISSIONS.items():
        role = db.query(Role).filter(Role.name == role_name).first()
        if role is None:
            role = Role(
                name=role_name,
                description=ROLE_DESCRIPTIONS.get(role_name, f"{role_name} role"),
                type=RoleType.USER,
                is_system=True,
            )
            db.add(role)
            db.flush()
        granted = {rp.permission_id for rp in role.role_permissions}
        for code in codes:
            if perm_map[code].id not in granted:
                db.add(RolePermission(role_id=role.id, permission_id=perm_map[code].id))
        roles[role_name] = role
    db.flush()
    return roles


# ─── Roles ────────────────────────────────────────────────────────────────────


def _role_out(role: Role) -> RoleOut:
    return RoleOut(
        id=role.id,
        name=role.name,
        description=role.description,
        type=role.type,
        is_system=role.is_system,
        permissions=sorted(rp.permission.code for rp in role.role_permissions),
        created_at=role.created_at,
    )


def _get_role(db: Session, role_id: UUID) -> Role:
    role = (
        db.query(Role)
        .filter(Role.id == role_id, Role.deleted_at.is_(None))
        .first()
    )
    if role is None:
        raise NotFoundError("Role not found")
    return role


def _check_role_name_free(db: Session, name: str, exclude_id: UUID | None = None) -> None:
    query = db.query(Role).filter(func.lower(Role.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Role.id != exclude_id)
    if query.first():
        raise ConflictError("Role name already exists")


def list_roles(db: Session, role_type: RoleType | None = None) -> list[RoleOut]:
    query = db.query(Role).filter(Role.deleted_at.is_(None))
    if role_type is not None:
        query = query.filter(Role.type == role_type)
    return [_role_out(r) for r in query.order_by(Role.name).all()]


def get_role(db: Session, role_id: UUID) -> RoleOut:
    return _role_out(_get_role(db, role_id))


def create_role(
    db: Session, data: RoleCreate, user_id: UUID, ip_address: str | None = None
) -> RoleOut:
    _check_role_name_free(db, data.name)
    role = Role(name=data.name, description=data.description, type=data.type, is_system=False)
    db.add(role)
    db.flush()
    log_action(
        db,
        user_id=user_id,
        action="ROLE_CREATED",
        resource_type="roles",
        resource_id=str(role.id),
        ip_address=ip_address,
        changes={"name": role.name, "type": role.type.value},
    )
    db.commit()
    db.refresh(role)
    return _role_out(role)


def update_role(
    db: Session,
    role_id: UUID,
    data: RoleUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> RoleOut:
    role = _get_role(db, role_id)
    changes: dict[str, object] = {}
    if data.name is not None and data.name != role.name:
        if role.is_system:
            raise ValidationError("System roles cannot be renamed")
        _check_role_name_free(db, data.name, exclude_id=role.id)
        changes["name"] = {"from": role.name, "to": data.name}
        role.name = data.name
    if data.description is not None:
        changes["description"] = {"from": role.description, "to": data.description}
        role.description = data.description

    log_action(
        db,
        user_id=user_id,
        action="ROLE_UPDATED",
        resource_type="roles",
        resource_id=str(role.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    db.refresh(role)
    return _role_out(role)


def set_role_permissions(
    db: Session,
    role_id: UUID,
    codes: list[str],
    user_id: UUID,
    ip_address: str | None = None,
) -> RoleOut:
    role = _get_role(db, role_id)
    if role.type != RoleType.USER:
        raise ValidationError("Only USER roles carry permissions")

    wanted = set(codes)
    perms = db.query(Permission).filter(Permission.code.in_(wanted)).all() if wanted else []
    unknown = wanted - {p.code for p in perms}
    if unknown:
        raise ValidationError("Unknown permission codes", details=sorted(unknown))

    role.role_permissions.clear()
    db.flush()
    for perm in perms:
        role.role_permissions.append(RolePermission(permission_id=perm.id))

    log_action(
        db,
        user_id=user_id,
        action="ROLE_PERMISSIONS_SET",
        resource_type="roles",
        resource_id=str(role.id),
        ip_address=ip_address,
        changes={"codes": sorted(wanted)},
    )
    db.commit()
    db.refresh(role)
    return _role_out(role)


def delete_role(
    db: Session, role_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    role = _get_role(db, role_id)
    if role.is_system:
        raise ValidationError("System roles cannot be deleted")
    in_use = (
        db.query(User.id).filter(User.role_id == role.id).first() is not None
        or db.query(Employee.id)
        .filter(Employee.role_id == role.id, Employee.deleted_at.is_(None))
        .first()
        is not None
    )
    if in_use:
        raise ValidationError("Role is still assigned")

    role.deleted_at = datetime.now(timezone.utc)
    log_action(
        db,
        user_id=user_id,
        action="ROLE_DELETED",
        resource_type="roles",
        resource_id=str(role.id),
        ip_address=ip_address,
        changes={"name": role.name},
    )
    db.commit()


# ─── Employees ────────────────────────────────────────────────────────────────


def _employee_out(emp: Employee) -> EmployeeOut:
    return EmployeeOut(
        id=emp.id,
        first_name=emp.first_name,
        last_name=emp.last_name,
        full_name=emp.full_name,
        phone=emp.phone,
        role_id=emp.role_id,
        role_name=emp.role.name,
        created_at=emp.created_at,
    )


def _employee_role(db: Session, role_id: UUID) -> Role:
    role = _get_role(db, role_id)
    if role.type != RoleType.EMPLOYEE:
        raise ValidationError("Employees need an EMPLOYEE role")
    return role


def get_employee_record(db: Session, employee_id: UUID) -> Employee:
    emp = (
        db.query(Employee)
        .filter(Employee.id == employee_id, Employee.deleted_at.is_(None))
        .first()
    )
    if emp is None:
        raise NotFoundError("Employee not found")
    return emp


def list_employees(
    db: Session, params: PageParams, search: str | None = None, role_id: UUID | None = None
) -> Page[EmployeeOut]:
    query = db.query(Employee).filter(Employee.deleted_at.is_(None))
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(Employee.first_name).like(like),
                func.lower(Employee.last_name).like(like),
                func.lower(func.coalesce(Employee.phone, "")).like(like),
            )
        )
    if role_id is not None:
        query = query.filter(Employee.role_id == role_id)
    rows, meta = paginate(query.order_by(Employee.last_name, Employee.first_name), params)
    return Page[EmployeeOut](data=[_employee_out(e) for e in rows], meta=meta)


def get_employee(db: Session, employee_id: UUID) -> EmployeeOut:
    return _employee_out(get_employee_record(db, employee_id))


def create_employee(
    db: Session, data: EmployeeCreate, user_id: UUID, ip_address: str | None = None
) -> EmployeeOut:
    _employee_role(db, data.role_id)
    emp = Employee(
        first_name=data.first_name,
        last_name=data.last_name,
        phone=data.phone,
        role_id=data.role_id,
    )
    db.add(emp)
    db.flush()
    log_action(
        db,
        user_id=user_id,
        action="EMPLOYEE_CREATED",
        resource_type="employees",
        resource_id=str(emp.id),
        ip_address=ip_address,
        changes=data.model_dump(),
    )
    db.commit()
    db.refresh(emp)
    return _employee_out(emp)


def update_employee(
    db: Session,
    employee_id: UUID,
    data: EmployeeUpdate,
    user_id: UUID,
    ip_address: str | None = None,
) -> EmployeeOut:
    emp = get_employee_record(db, employee_id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "role_id" in changes:
        _employee_role(db, changes["role_id"])
    for field, value in changes.items():
        setattr(emp, field, value)

    log_action(
        db,
        user_id=user_id,
        action="EMPLOYEE_UPDATED",
        resource_type="employees",
        resource_id=str(emp.id),
        ip_address=ip_address,
        changes=changes,
    )
    db.commit()
    db.refresh(emp)
    return _employee_out(emp)


def delete_employee(
    db: Session, employee_id: UUID, user_id: UUID, ip_address: str | None = None
) -> None:
    emp = get_employee_record(db, employee_id)
    emp.deleted_at = datetime.now(timezone.utc)
    db.query(ProjectEmployee).filter(ProjectEmployee.employee_id == emp.id).delete(
        synchronize_session=False
    )
    log_action(
        db,
        user_id=user_id,
        action="EMPLOYEE_DELETED",
        resource_type="employees",
        resource_id=str(emp.id),
        ip_address=ip_address,
    )
    db.commit()

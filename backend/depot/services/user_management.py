"""User management service: CRUD operations for user accounts.

All mutations are audit-logged. This module does NOT call db.commit();
the caller (endpoint) is responsible for committing.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from backend.depot.core.errors import ConflictError, NotFoundError, ValidationError
from backend.depot.core.security import get_password_hash, verify_password
from backend.depot.models.permission import Permission, Role, RolePermission
from backend.depot.models.user import RoleEnum, User
from backend.depot.schemas.common import Page
from backend.depot.schemas.user import UserOut
from backend.depot.services.audit import log_action
from backend.depot.services.pagination import PageParams, paginate


def load_user_permissions(db: Session, user: User) -> set[str]:
    """Return the set of permission codes assigned to *user* via their role."""
    if user.role_id is None:
        return set()
    rows = (
        db.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(Role, Role.id == RolePermission.role_id)
        .filter(RolePermission.role_id == user.role_id, Role.deleted_at.is_(None))
        .all()
    )
    return {r[0] for r in rows}


def list_users(
    db: Session,
    params: PageParams,
    *,
    search: str | None = None,
    role: RoleEnum | None = None,
    is_active: bool | None = None,
) -> Page[UserOut]:
    """Return users ordered by creation date descending."""
    query = db.query(User)
    if search:
        like = f"%{search.lower()}%"
        query = query.filter(
            or_(
                func.lower(User.username).like(like),
                func.lower(func.coalesce(User.full_name, "")).like(like),
                func.lower(func.coalesce(User.email, "")).like(like),
            )
        )
    if role is not None:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))
    rows, meta = paginate(query.order_by(User.created_at.desc()), params)
    return Page[UserOut](data=[UserOut.model_validate(u) for u in rows], meta=meta)


def get_user(db: Session, user_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _role_record(db: Session, role: RoleEnum) -> Role | None:
    return (
        db.query(Role)
        .filter(Role.name == role.value, Role.deleted_at.is_(None))
        .first()
    )


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    role: RoleEnum,
    admin_id: UUID,
    email: str | None = None,
    full_name: str | None = None,
    phone: str | None = None,
) -> User:
    """Create a new user account. Raises ConflictError if username taken."""
    existing = db.query(User).filter(
        func.lower(User.username) == username.lower()
    ).first()
    if existing:
        raise ConflictError("Username already exists")

    role_record = _role_record(db, role)

    user = User(
        username=username,
        hashed_password=get_password_hash(password),
        email=email,
        full_name=full_name,
        phone=phone,
        role=role,
        role_id=role_record.id if role_record else None,
    )
    db.add(user)
    db.flush()

    log_action(
        db,
        user_id=admin_id,
        action="USER_CREATED",
        resource_type="users",
        resource_id=str(user.id),
        changes={"username": username, "role": role.value},
    )
    return user


def update_user(
    db: Session,
    *,
    user_id: UUID,
    admin_id: UUID,
    email: str | None = None,
    full_name: str | None = None,
    phone: str | None = None,
    role: RoleEnum | None = None,
) -> User:
    """Update profile fields and/or role."""
    user = get_user(db, user_id)

    changes: dict[str, object] = {}
    for field, value in (("email", email), ("full_name", full_name), ("phone", phone)):
        if value is not None and value != getattr(user, field):
            changes[field] = {"old": getattr(user, field), "new": value}
            setattr(user, field, value)

    if role is not None and role != user.role:
        if user_id == admin_id and user.role == RoleEnum.ADMIN:
            raise ValidationError("Cannot change your own admin role")
        changes["role"] = {"old": user.role.value, "new": role.value}
        user.role = role
        role_record = _role_record(db, role)
        user.role_id = role_record.id if role_record else None

    if changes:
        db.flush()
        log_action(
            db,
            user_id=admin_id,
            action="USER_UPDATED",
            resource_type="users",
            resource_id=str(user.id),
            changes=changes,
        )

    return user


def toggle_user_active(
    db: Session,
    *,
    user_id: UUID,
    admin_id: UUID,
) -> User:
    """Toggle a user's is_active flag. Admins cannot deactivate themselves."""
    user = get_user(db, user_id)

    if user_id == admin_id and user.is_active:
        raise ValidationError("Cannot deactivate yourself")

    user.is_active = not user.is_active
    db.flush()

    log_action(
        db,
        user_id=admin_id,
        action="USER_TOGGLED_ACTIVE",
        resource_type="users",
        resource_id=str(user.id),
        changes={"is_active": user.is_active},
    )
    return user


def reset_password(
    db: Session,
    *,
    user_id: UUID,
    new_password: str,
    admin_id: UUID,
) -> User:
    """Admin resets a user's password and clears any lockout."""
    user = get_user(db, user_id)

    user.hashed_password = get_password_hash(new_password)
    user.failed_login_attempts = 0
    user.locked_until = None
    db.flush()

    log_action(
        db,
        user_id=admin_id,
        action="USER_PASSWORD_RESET",
        resource_type="users",
        resource_id=str(user.id),
        changes={"reset_by": str(admin_id)},
    )
    return user


def change_own_password(
    db: Session,
    *,
    user_id: UUID,
    current_password: str,
    new_password: str,
) -> User:
    """User changes their own password. Raises ValidationError if current is wrong."""
    user = get_user(db, user_id)

    if not verify_password(current_password, user.hashed_password):
        raise ValidationError("Current password is incorrect")

    user.hashed_password = get_password_hash(new_password)
    db.flush()

    log_action(
        db,
        user_id=user_id,
        action="USER_PASSWORD_CHANGED",
        resource_type="users",
        resource_id=str(user_id),
    )
    return user

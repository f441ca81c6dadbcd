from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import get_current_user, pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import RoleEnum, User
from backend.depot.schemas.common import Envelope, MessageOut, Page
from backend.depot.schemas.user import (
    ChangePasswordIn,
    MeOut,
    ResetPasswordIn,
    UserCreate,
    UserOut,
    UserUpdate,
)
from backend.depot.services.pagination import PageParams
from backend.depot.services.user_management import (
    change_own_password,
    create_user,
    get_user,
    list_users,
    load_user_permissions,
    reset_password,
    toggle_user_active,
    update_user,
)

router = APIRouter()


# ─── Current user ─────────────────────────────────────────────────────────────


@router.get("/me", response_model=MeOut)
def read_current_user(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MeOut:
    perms = sorted(load_user_permissions(db, current_user))
    return MeOut(**UserOut.model_validate(current_user).model_dump(), permissions=perms)


@router.post("/change-password", response_model=MessageOut)
def change_password(
    body: ChangePasswordIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict[str, str]:
    """Authenticated user changes their own password."""
    change_own_password(
        db,
        user_id=current_user.id,
        current_password=body.current_password,
        new_password=body.new_password,
    )
    db.commit()
    return {"detail": "Password changed successfully"}


# ─── Administration ───────────────────────────────────────────────────────────


@router.get("", response_model=Page[UserOut])
def list_all_users(
    search: str | None = Query(None),
    role: RoleEnum | None = Query(None),
    is_active: bool | None = Query(None),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("user:read")),
) -> Page[UserOut]:
    return list_users(db, params, search=search, role=role, is_active=is_active)


@router.get("/{user_id}", response_model=UserOut)
def read_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(require_permission("user:read")),
) -> User:
    return get_user(db, user_id)


@router.post("", response_model=Envelope[UserOut], status_code=status.HTTP_201_CREATED)
def create_new_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("user:manage")),
) -> Envelope[UserOut]:
    """Create a new user account. Admin only."""
    user = create_user(
        db,
        username=body.username,
        password=body.password,
        role=body.role,
        admin_id=current_user.id,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
    )
    db.commit()
    db.refresh(user)
    return Envelope[UserOut](message="User created", data=UserOut.model_validate(user))


@router.patch("/{user_id}", response_model=Envelope[UserOut])
def update_existing_user(
    user_id: UUID,
    body: UserUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("user:manage")),
) -> Envelope[UserOut]:
    """Update a user's profile fields and/or role. Admin only."""
    user = update_user(
        db,
        user_id=user_id,
        admin_id=current_user.id,
        email=body.email,
        full_name=body.full_name,
        phone=body.phone,
        role=body.role,
    )
    db.commit()
    db.refresh(user)
    return Envelope[UserOut](message="User updated", data=UserOut.model_validate(user))


@router.patch("/{user_id}/toggle-active", response_model=Envelope[UserOut])
def toggle_active(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("user:manage")),
) -> Envelope[UserOut]:
    """Activate or deactivate a user. Admin only."""
    user = toggle_user_active(db, user_id=user_id, admin_id=current_user.id)
    db.commit()
    db.refresh(user)
    state = "activated" if user.is_active else "deactivated"
    return Envelope[UserOut](message=f"User {state}", data=UserOut.model_validate(user))


@router.post("/{user_id}/reset-password", response_model=MessageOut)
def admin_reset_password(
    user_id: UUID,
    body: ResetPasswordIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_permission("user:manage")),
) -> dict[str, str]:
    """Reset a user's password. Admin only."""
    reset_password(
        db,
        user_id=user_id,
        new_password=body.new_password,
        admin_id=current_user.id,
    )
    db.commit()
    return {"detail": "Password reset successfully"}

"""Granular permission dependencies.

Usage in endpoints::

    @router.post("")
    def create_material(
        body: MaterialCreate,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_permission("material:write")),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from backend.depot.api.deps import get_current_user
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.services.user_management import load_user_permissions


def require_permission(*permission_codes: str):
    """FastAPI dependency factory that checks user has **all** listed permissions.

    Returns the authenticated ``User`` so the endpoint can use it::

        current_user = Depends(require_permission("inventory:adjust"))
    """

    def _checker(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db),
    ) -> User:
        user_perms = load_user_permissions(db, current_user)
        missing = set(permission_codes) - user_perms
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing permissions: {', '.join(sorted(missing))}",
            )
        return current_user

    return _checker

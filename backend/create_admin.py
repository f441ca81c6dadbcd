"""Create or recover the depot administrator account.

Usage:
    python -m backend.create_admin

Running it against an existing username resets that account's password,
clears any lockout and promotes it to ADMIN.
"""

from __future__ import annotations

import getpass

from sqlalchemy import func
from sqlalchemy.orm import Session

# Import all models so SQLAlchemy resolves relationships
import backend.depot.models.registry  # noqa: F401
from backend.depot.core.database import SessionLocal
from backend.depot.core.security import get_password_hash, validate_password_strength
from backend.depot.models.user import RoleEnum, User
from backend.depot.services.staff import ensure_system_roles


def bootstrap_admin(
    db: Session, username: str, password: str, email: str | None = None
) -> tuple[User, bool]:
    """Return ``(user, created)``. Commits."""
    admin_role = ensure_system_roles(db)["ADMIN"]
    hashed = get_password_hash(password)

    user = db.query(User).filter(func.lower(User.username) == username.lower()).first()
    created = user is None
    if created:
        user = User(username=username, hashed_password=hashed, email=email)
        db.add(user)
    else:
        user.hashed_password = hashed
        user.is_active = True
        user.failed_login_attempts = 0
        user.locked_until = None
        if email:
            user.email = email

    user.role = RoleEnum.ADMIN
    user.role_id = admin_role.id
    db.commit()
    db.refresh(user)
    return user, created


def main() -> None:
    username = input("Username [admin]: ").strip() or "admin"
    email = input("Email (optional): ").strip() or None
    password = getpass.getpass("Password: ")
    problem = "password cannot be empty" if not password else validate_password_strength(password)
    if problem:
        print(f"Error: {problem}")
        return

    db = SessionLocal()
    try:
        user, created = bootstrap_admin(db, username, password, email)
    finally:
        db.close()

    print("Admin user created." if created else "Existing account reset and promoted to ADMIN.")
    print(f"  ID:       {user.id}")
    print(f"  Username: {user.username}")


if __name__ == "__main__":
    main()

"""Password login with per-account lockout.

Every attempt, good or bad, leaves an audit row under resource type ``auth``.
Failed attempts are counted on the user; reaching ``MAX_LOGIN_ATTEMPTS``
locks the account for ``LOCKOUT_MINUTES``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.depot.core.config import settings
from backend.depot.core.errors import (
    AccountLockedError,
    AuthenticationError,
    PermissionDeniedError,
)
from backend.depot.core.security import ensure_aware, verify_password
from backend.depot.models.user import User
from backend.depot.services.audit import log_action

logger = logging.getLogger(__name__)


def _audit(
    db: Session,
    user: User | None,
    attempted_username: str,
    action: str,
    ip: str | None,
    **changes: Any,
) -> None:
    log_action(
        db,
        user_id=user.id if user else None,
        action=action,
        resource_type="auth",
        resource_id=str(user.id) if action == "LOGIN_SUCCESS" and user else attempted_username,
        ip_address=ip,
        changes=changes or None,
    )


def _minutes_left(locked_until: datetime, now: datetime) -> int:
    return int((locked_until - now).total_seconds() // 60) + 1


def _record_failure(db: Session, user: User, username: str, ip: str | None, now: datetime) -> None:
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts < settings.MAX_LOGIN_ATTEMPTS:
        return
    user.locked_until = now + timedelta(minutes=settings.LOCKOUT_MINUTES)
    logger.warning("Account %s locked after %d failed logins", username, user.failed_login_attempts)
    _audit(db, user, username, "ACCOUNT_LOCKED", ip, failed_attempts=user.failed_login_attempts)


def authenticate(db: Session, username: str, password: str, ip: str | None) -> User:
    """Check credentials and return the user, committing the attempt's bookkeeping.

    Raises AccountLockedError (423), AuthenticationError (401) or
    PermissionDeniedError (403) for an inactive account.
    """
    user = db.query(User).filter(func.lower(User.username) == username.lower()).first()
    now = datetime.now(timezone.utc)

    if user is not None and user.locked_until is not None:
        locked_until = ensure_aware(user.locked_until)
        if now < locked_until:
            _audit(db, user, username, "LOGIN_BLOCKED", ip, reason="account_locked")
            db.commit()
            raise AccountLockedError(
                f"Account locked. Try again in {_minutes_left(locked_until, now)} minutes."
            )
        user.failed_login_attempts = 0
        user.locked_until = None

    if user is None or not verify_password(password, user.hashed_password):
        if user is not None:
            _record_failure(db, user, username, ip, now)
        _audit(db, user, username, "LOGIN_FAILED", ip, reason="invalid_credentials")
        db.commit()
        raise AuthenticationError("Incorrect username or password")

    if not user.is_active:
        _audit(db, user, username, "LOGIN_FAILED", ip, reason="inactive_user")
        db.commit()
        raise PermissionDeniedError("Inactive user")

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login = now
    _audit(db, user, username, "LOGIN_SUCCESS", ip, username=user.username, role=user.role.value)
    db.commit()
    return user

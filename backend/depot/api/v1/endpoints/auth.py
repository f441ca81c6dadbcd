from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from backend.depot.api.deps import client_ip, oauth2_scheme
from backend.depot.core.config import settings
from backend.depot.core.database import get_db
from backend.depot.core.security import create_access_token, revoke_token
from backend.depot.middleware.rate_limit import InMemoryRateLimiter
from backend.depot.schemas.common import MessageOut
from backend.depot.services.auth import authenticate

router = APIRouter()

# Per-IP budget for the login form, separate from the global API limiter.
_login_limiter = InMemoryRateLimiter(window_seconds=60, max_attempts=5)


@router.post("/login/access-token")
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    ip = client_ip(request)
    if settings.RATE_LIMIT_ENABLED:
        _login_limiter.check(ip or "unknown")

    user = authenticate(db, form_data.username, form_data.password, ip)
    return {
        "access_token": create_access_token(subject=str(user.id)),
        "token_type": "bearer",
    }


@router.post("/logout", response_model=MessageOut)
def logout(token: str = Depends(oauth2_scheme)) -> dict[str, str]:
    """Revoke the bearer token used for this call."""
    revoke_token(token)
    return {"detail": "Logged out successfully"}

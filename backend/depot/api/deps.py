from __future__ import annotations

from uuid import UUID

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose.exceptions import ExpiredSignatureError, JWTError
from sqlalchemy.orm import Session

from backend.depot.core.database import SessionLocal, get_db
from backend.depot.core.security import decode_access_token, is_token_revoked
from backend.depot.models.registry import User
from backend.depot.services.pagination import PageParams

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login/access-token")


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_from_token(db: Session, token: str) -> User:
    # Check if token was revoked (logout)
    if is_token_revoked(token):
        raise _credentials_exception("Token has been revoked")

    try:
        payload = decode_access_token(token)
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise _credentials_exception()
        subject = UUID(user_id)
    except ExpiredSignatureError:
        raise _credentials_exception("Token has expired")
    except (JWTError, ValueError):
        raise _credentials_exception()

    user = db.query(User).filter(User.id == subject).first()
    if user is None:
        raise _credentials_exception()
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )
    return user


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    return user_from_token(db, token)


def get_stream_user(
    token: str = Query(..., description="Access token; EventSource cannot send headers"),
) -> User:
    """Authenticate an event stream on its own short-lived session.

    The session is closed before the stream starts, so an open stream holds
    no pooled connection. The returned user is detached.
    """
    db = SessionLocal()
    try:
        return user_from_token(db, token)
    finally:
        db.close()


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None

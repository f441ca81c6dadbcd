"""Domain errors and the handlers that render them.

Services raise subclasses of :class:`DepotError`; the handlers registered by
:func:`register_exception_handlers` turn every failure into the same body::

    {"error": {"message", "status", "type", "details", "path", "method", "timestamp"}}
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class DepotError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(DepotError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(ValidationError):
    pass


class AuthenticationError(DepotError):
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(DepotError):
    status_code = status.HTTP_403_FORBIDDEN


class AccountLockedError(DepotError):
    status_code = status.HTTP_423_LOCKED



class NotFoundError(DepotError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(DepotError):
    status_code = status.HTTP_409_CONFLICT


class ConcurrentUpdateError(ConflictError):
    """The row changed between read and conditional update."""


def error_body(
    request: Request,
    *,
    message: str,
    status_code: int,
    error_type: str,
    details: Any = None,
) -> dict[str, Any]:
    return {
        "error": {
            "message": message,
            "status": status_code,
            "type": error_type,
            "details": jsonable_encoder(details),
            "path": request.url.path,
            "method": request.method,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }


def _respond(
    request: Request,
    *,
    message: str,
    status_code: int,
    error_type: str,
    details: Any = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_body(
            request,
            message=message,
            status_code=status_code,
            error_type=error_type,
            details=details,
        ),
        headers=headers,
    )


async def depot_error_handler(request: Request, exc: DepotError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _respond(
        request,
        message=exc.message,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    return _respond(
        request,
        message=str(exc.detail),
        status_code=exc.status_code,
        error_type="HTTPException",
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(loc) for loc in err.get("loc", ())),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in exc.errors()
    ]
    return _respond(
        request,
        message="Validation failed",
        status_code=status.HTTP_400_BAD_REQUEST,
        error_type="ValidationError",
        details=details,
    )


async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
    return _respond(
        request,
        message="Database constraint violated",
        status_code=status.HTTP_400_BAD_REQUEST,
        error_type="DatabaseIntegrityError",
        details=str(exc.orig),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _respond(
        request,
        message="Internal server error",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_type="InternalServerError",
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DepotError, depot_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)

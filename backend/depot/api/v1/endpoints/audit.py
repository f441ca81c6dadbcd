from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.depot.api.deps import pagination_params
from backend.depot.api.permission_deps import require_permission
from backend.depot.core.database import get_db
from backend.depot.models.user import User
from backend.depot.schemas.audit import AuditLogOut
from backend.depot.schemas.common import Page
from backend.depot.services import audit as audit_service
from backend.depot.services.pagination import PageParams

router = APIRouter()


@router.get("", response_model=Page[AuditLogOut])
def list_audit_logs(
    user_id: UUID | None = Query(None),
    action: str | None = Query(None, description="e.g. LOGIN_SUCCESS, DELIVERY_COMPLETED"),
    resource_type: str | None = Query(None, description="e.g. auth, requests, inventory_items"),
    params: PageParams = Depends(pagination_params),
    db: Session = Depends(get_db),
    _auditor: User = Depends(require_permission("audit:read")),
) -> Page[AuditLogOut]:
    return audit_service.list_audit_logs(
        db, params, user_id=user_id, action=action, resource_type=resource_type
    )

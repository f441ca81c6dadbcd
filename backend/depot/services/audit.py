"""Append-only audit trail.

Every state-changing operation writes one row through :func:`log_action`.
Rows are keyed by resource type and id; the API exposes them with those
names rather than the underlying column names.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.orm import Session

from backend.depot.models.audit import AuditLog
from backend.depot.schemas.audit import AuditLogOut
from backend.depot.schemas.common import Page
from backend.depot.services.pagination import PageParams, paginate


def log_action(
    db: Session,
    *,
    user_id: UUID | None,
    action: str,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's transaction. Does not commit.

    Decimals, UUIDs and datetimes in *changes* are stored as JSON-safe values.
    """
    entry = AuditLog(
        table_name=resource_type,
        record_id=str(resource_id),
        action=action,
        changed_by=user_id,
        new_values=jsonable_encoder(changes) if changes is not None else None,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry


def _to_out(row: AuditLog) -> AuditLogOut:
    return AuditLogOut(
        id=row.id,
        user_id=row.changed_by,
        action=row.action,
        resource_type=row.table_name,
        resource_id=row.record_id,
        changes=row.new_values,
        ip_address=row.ip_address,
        timestamp=row.created_at,
    )


def list_audit_logs(
    db: Session,
    params: PageParams,
    *,
    user_id: UUID | None = None,
    action: str | None = None,
    resource_type: str | None = None,
) -> Page[AuditLogOut]:
    query = db.query(AuditLog)
    if user_id is not None:
        query = query.filter(AuditLog.changed_by == user_id)
    if action is not None:
        query = query.filter(AuditLog.action == action)
    if resource_type is not None:
        query = query.filter(AuditLog.table_name == resource_type)

    rows, meta = paginate(query.order_by(AuditLog.created_at.desc()), params)
    return Page[AuditLogOut](data=[_to_out(r) for r in rows], meta=meta)

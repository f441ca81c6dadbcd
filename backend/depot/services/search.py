"""Type-ahead suggestions: distinct column values starting with a prefix."""

from __future__ import annotations

from sqlalchemy import func
from sqlalchemy.orm import InstrumentedAttribute, Session

from backend.depot.core.errors import ValidationError
from backend.depot.models.catalog import Material
from backend.depot.models.request import Delivery, Request
from backend.depot.services.cache import cache, cache_key

SUGGESTION_FIELDS: dict[str, dict[str, InstrumentedAttribute]] = {
    "materials": {"code": Material.code, "name": Material.name},
    "requests": {"request_note": Request.request_note, "review_note": Request.review_note},
    "deliveries": {"notes": Delivery.notes},
}


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _load(db: Session, resource: str, field: str, prefix: str, limit: int) -> list[str]:
    column = SUGGESTION_FIELDS[resource][field]
    query = db.query(column).filter(
        column.is_not(None),
        func.lower(column).like(f"{_escape_like(prefix.lower())}%", escape="\\"),
    )
    if resource == "materials":
        query = query.filter(Material.deleted_at.is_(None))
    return [value for (value,) in query.distinct().order_by(column).limit(limit).all()]


def suggestions(
    db: Session, resource: str, field: str, prefix: str, limit: int = 10
) -> list[str]:
    """Up to *limit* distinct values of *field* starting with *prefix* (case-insensitive).

    Material suggestions are cached under ``materials:`` so catalog writes drop them.
    """
    allowed = SUGGESTION_FIELDS[resource]
    if field not in allowed:
        raise ValidationError(
            f"Suggestions are not available for field '{field}'",
            details={"allowed": sorted(allowed)},
        )
    if resource != "materials":
        return _load(db, resource, field, prefix, limit)
    return cache.get_or_set(
        cache_key("materials", view="suggestions", field=field, prefix=prefix.lower(), limit=limit),
        lambda: _load(db, resource, field, prefix, limit),
    )

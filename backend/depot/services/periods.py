"""Date-range helpers shared by list filters, reports and statistics."""

from __future__ import annotations

from datetime import date, datetime, time, timezone

from backend.depot.core.errors import ValidationError


def day_start(d: date) -> datetime:
    """Start of day *d* in UTC."""
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


def day_end(d: date) -> datetime:
    """Last microsecond of day *d* in UTC."""
    return datetime.combine(d, time.max, tzinfo=timezone.utc)


def check_range(start_date: date | None, end_date: date | None) -> None:
    if start_date and end_date and end_date < start_date:
        raise ValidationError("end_date must not be before start_date")

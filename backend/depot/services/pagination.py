from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Query

from backend.depot.schemas.common import PageMeta


@dataclass(frozen=True)
class PageParams:
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def paginate(query: Query, params: PageParams) -> tuple[list[Any], PageMeta]:
    """Run *query* for one page and count the full result set."""
    total = query.order_by(None).count()
    rows = query.offset(params.offset).limit(params.limit).all()
    meta = PageMeta(
        total=total,
        page=params.page,
        limit=params.limit,
        total_pages=math.ceil(total / params.limit) if total else 0,
    )
    return rows, meta

"""
services/pagination.py — Offset pagination for list endpoints.

Returns the page of ORM objects plus the pagination block sent next to
"data" in list responses:

    {"total": 42, "page": 2, "limit": 10, "total_pages": 5}
"""

from __future__ import annotations

import math

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def paginate(
        stmt: Select,
        page: int,
        limit: int,
        session: Session,
        options: tuple = (),
) -> tuple[list, dict]:
    """
    Runs a COUNT over `stmt` and then fetches page `page` (1-based).

    `options` are ORM loader options applied to the page query only; they
    are kept off the count subquery.
    """
    total = session.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()

    page_stmt = stmt.offset((page - 1) * limit).limit(limit)
    if options:
        page_stmt = page_stmt.options(*options)
    items = list(session.execute(page_stmt).scalars().all())

    return items, {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }

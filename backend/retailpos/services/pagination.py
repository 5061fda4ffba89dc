# Overview: Shared page/per_page handling for list endpoints.

from __future__ import annotations

from flask import current_app


def clamp_page_args(page: int | None, per_page: int | None) -> tuple[int, int]:
    default = current_app.config.get("DEFAULT_PAGE_SIZE", 20)
    maximum = current_app.config.get("MAX_PAGE_SIZE", 100)
    page = max(page or 1, 1)
    per_page = min(max(per_page or default, 1), maximum)
    return page, per_page


def paginate(query, *, page: int | None, per_page: int | None, serialize=None) -> dict:
    """
    Run `query` for one page.

    Returns {"items", "count", "pagination": {page, per_page, total,
    total_pages, has_next, has_prev}}; items are serialized with
    `serialize` (default: to_dict()).
    """
    page, per_page = clamp_page_args(page, per_page)
    serialize = serialize or (lambda obj: obj.to_dict())

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(row) for row in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }

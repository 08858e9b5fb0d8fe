"""Paging and sorting helpers shared by the list endpoints."""

import math
import re
from dataclasses import dataclass

from modloot.config import get_settings

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(name: str) -> str:
    return _CAMEL_RE.sub("_", name).lower()


@dataclass(frozen=True)
class PageRequest:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_request(page: int = 1, limit: int | None = None) -> PageRequest:
    """Clamp client paging input into a sane window."""
    settings = get_settings()
    page = max(page or 1, 1)
    limit = limit or settings.default_page_size
    limit = min(max(limit, 1), settings.max_page_size)
    return PageRequest(page=page, limit=limit)


def catalog_pagination(total: int, req: PageRequest) -> dict:
    return {
        "currentPage": req.page,
        "totalPages": math.ceil(total / req.limit) if total else 0,
        "totalItems": total,
        "itemsPerPage": req.limit,
    }


def order_by(model, sort_by: str | None, sort_order: str | None, allowed: set[str], default: str = "created_at"):
    """ORDER BY clause for a whitelisted column; unknown columns fall back to the default."""
    column_name = to_snake(sort_by) if sort_by else default
    if column_name not in allowed:
        column_name = default
    column = getattr(model, column_name)
    if (sort_order or "desc").lower() == "asc":
        return column.asc()
    return column.desc()

from __future__ import annotations

from typing import Final

from localnode_engine.app.domain.errors import PageOutOfRangeError


DEFAULT_PER_PAGE: Final[int] = 30
MAX_PER_PAGE: Final[int] = 100


def normalize_per_page(requested: int | None = None) -> int:
    """
    Below 1 falls back to the default (not to 1), above the maximum clamps
    to the maximum (not to the default).
    """
    if requested is None:
        return DEFAULT_PER_PAGE
    if requested < 1:
        return DEFAULT_PER_PAGE
    if requested > MAX_PER_PAGE:
        return MAX_PER_PAGE
    return requested


def page_count(total_count: int, per_page: int) -> int:
    # one page even if it's empty
    return max(1, -(-total_count // per_page))


def resolve_page(requested: int | None, per_page: int, total_count: int) -> int:
    if per_page < 1:
        raise ValueError(f"zero or negative per_page: {per_page}")

    if requested is None:
        return 1

    pages = page_count(total_count, per_page)
    if requested < 1 or requested > pages:
        raise PageOutOfRangeError(
            f"page should be within [1, {pages}] range, given {requested}",
            page_count=pages,
        )
    return requested


def compute_skip(page: int, per_page: int) -> int:
    return max(0, (page - 1) * per_page)


def page_size(total: int, skip: int, per_page: int) -> int:
    """Number of items to take from `skip` onwards; never negative."""
    return max(0, min(per_page, total - skip))

from __future__ import annotations

from typing import Final, Iterable

from localnode_engine.app.domain.errors import InvalidOrderByError
from localnode_engine.app.domain.models import TxResult


ORDER_ASC: Final[str] = "asc"
ORDER_DESC: Final[str] = "desc"
_VALID_ORDERS: Final[tuple[str, ...]] = ("", ORDER_ASC, ORDER_DESC)


def validate_order_by(order_by: str) -> str:
    if order_by not in _VALID_ORDERS:
        raise InvalidOrderByError(
            f"expected order_by to be either `asc` or `desc` or empty, got {order_by!r}"
        )
    return order_by or ORDER_ASC


def sort_search_hits(hits: Iterable[TxResult], order_by: str) -> list[TxResult]:
    """
    Sort search hits by (height, index).

    Must run over the full result set before any pagination: page
    boundaries are defined over this order.
    """
    direction = validate_order_by(order_by)
    return sorted(
        hits,
        key=lambda r: (r.height, r.index),
        reverse=direction == ORDER_DESC,
    )

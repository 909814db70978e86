from __future__ import annotations

from localnode_engine.app.domain.errors import (
    HeightOutOfRangeError,
    HeightPrunedError,
    InvalidHeightError,
)


def resolve_height(
    *,
    latest_height: int,
    base: int,
    requested: int | None = None,
) -> int:
    """
    Resolve an optional requested height against the chain's live bounds.

    - requested is None          -> latest_height
    - requested <= 0             -> InvalidHeightError
    - requested > latest_height  -> HeightOutOfRangeError
    - requested < base           -> HeightPrunedError (below the pruning floor)
    """
    if requested is None:
        return latest_height

    if requested <= 0:
        raise InvalidHeightError(f"height must be greater than 0, but got {requested}")
    if requested > latest_height:
        raise HeightOutOfRangeError(
            f"height {requested} must be less than or equal to the current blockchain "
            f"height {latest_height}"
        )
    if requested < base:
        raise HeightPrunedError(
            f"height {requested} is not available, lowest height is {base}"
        )
    return requested

from __future__ import annotations


class NodeQueryError(Exception):
    """
    Base class for every failure surfaced by the local node facade.

    `stage` names the step that produced the error (height resolution,
    pagination, tx indexer, ...) so callers can branch on the type and
    still see where the failure came from.
    """

    default_stage: str = "query"

    def __init__(self, message: str, *, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        return f"[{self.stage}] {self.message}"


class InvalidHeightError(NodeQueryError):
    default_stage = "height"


class HeightOutOfRangeError(NodeQueryError):
    default_stage = "height"


class HeightPrunedError(NodeQueryError):
    default_stage = "height"


class PageOutOfRangeError(NodeQueryError):
    default_stage = "pagination"

    def __init__(self, message: str, *, page_count: int, stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.page_count = page_count
        # page callers fall back to when they choose to recover
        self.recovery_page = 1


class InvalidOrderByError(NodeQueryError):
    default_stage = "search_sort"


class IndexingDisabledError(NodeQueryError):
    default_stage = "tx_indexer"


class NotFoundError(NodeQueryError):
    pass


class DecodeError(NodeQueryError):
    default_stage = "decode"


class QueryParseError(NodeQueryError):
    default_stage = "query_parse"

    def __init__(self, message: str, *, position: int | None = None, stage: str | None = None) -> None:
        super().__init__(message, stage=stage)
        self.position = position


class UpstreamError(NodeQueryError):
    """
    Wraps a collaborator failure verbatim; the original exception is kept
    as `__cause__`.
    """

    default_stage = "upstream"

from __future__ import annotations

from typing import Callable, Dict

from sqlalchemy.ext.asyncio import AsyncEngine

from localnode_engine.app.domain.ports.out import BlockIndexer, TxIndexer
from localnode_engine.app.infrastructure.adapters.block_indexer import (
    NullBlockIndexer,
    SqlAlchemyBlockIndexer,
)
from localnode_engine.app.infrastructure.adapters.tx_indexer import (
    NullTxIndexer,
    SqlAlchemyTxIndexer,
)


IndexersFactory = Callable[[AsyncEngine], tuple[TxIndexer, BlockIndexer]]

_INDEXERS_REGISTRY: Dict[str, IndexersFactory] = {
    "kv": lambda engine: (
        SqlAlchemyTxIndexer(engine=engine),
        SqlAlchemyBlockIndexer(engine=engine),
    ),
    "null": lambda engine: (NullTxIndexer(), NullBlockIndexer()),
}


def indexers_factory(
    backend: str,
    engine: AsyncEngine,
) -> tuple[TxIndexer, BlockIndexer]:
    """
    Build the tx and block indexers for the configured variant.

    Selected once at bootstrap; "null" disables indexing and the facade
    reports it through `TxIndexer.enabled`.
    """
    try:
        factory = _INDEXERS_REGISTRY[backend]
    except KeyError:
        raise ValueError(f"Unsupported tx indexer backend: {backend!r}")
    return factory(engine)

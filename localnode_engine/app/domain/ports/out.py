from __future__ import annotations

from typing import Any, AsyncIterator, Mapping, Protocol, Sequence

from localnode_engine.app.domain.models import (
    Block,
    BlockMeta,
    DecodedTx,
    Event,
    ExecutionResults,
    GenesisDoc,
    ResultEvent,
    TxResult,
    ValidatorSet,
)
from localnode_engine.app.domain.query import Query


class BlockStore(Protocol):
    """
    Port for reading committed blocks out of the node's block store.

    `base()` is the pruning floor (lowest retained height) and `height()`
    the latest committed height; both are 0 for an empty store.
    """

    async def height(self) -> int: ...

    async def base(self) -> int: ...

    async def load_block(self, height: int) -> Block | None: ...

    async def load_block_meta(self, height: int) -> BlockMeta | None: ...


class StateStore(Protocol):
    """
    Port for the node's state store: validator sets and the execution
    results (ABCI responses) recorded per height.
    """

    async def load_validators(self, height: int) -> ValidatorSet: ...

    async def load_execution_results(self, height: int) -> ExecutionResults | None: ...


class TxIndexer(Protocol):
    """
    Port for the transaction indexer.

    `enabled` is fixed at construction: the null variant reports False and
    is never asked for lookups by the facade.
    """

    @property
    def enabled(self) -> bool: ...

    async def get(self, hash: bytes) -> TxResult | None: ...

    async def search(self, query: Query) -> list[TxResult]: ...

    async def index(self, result: TxResult) -> None: ...


class BlockIndexer(Protocol):
    """
    Port for the block events indexer. Written to by the indexer service,
    never read through the facade's public surface.
    """

    @property
    def enabled(self) -> bool: ...

    async def index(self, *, height: int, events: Sequence[Event]) -> None: ...


class ConsensusStateSource(Protocol):
    def round_state_snapshot(self) -> bytes:
        """
        Return the consensus engine's current round state as JSON bytes.
        """
        ...


class GenesisProvider(Protocol):
    def genesis_doc(self) -> GenesisDoc: ...


class TxDecoder(Protocol):
    def decode(self, raw_tx: bytes) -> DecodedTx:
        """
        Decode a raw transaction payload.

        Raise DecodeError when the payload is not a valid encoding.
        """
        ...


class EventSubscription(Protocol):
    """
    Readable stream of matching events plus an explicit cancellation
    handle. `cancel()` must be idempotent.
    """

    @property
    def subscriber(self) -> str: ...

    @property
    def query(self) -> Query: ...

    @property
    def cancelled(self) -> bool: ...

    def cancel(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[ResultEvent]: ...


class EventBus(Protocol):
    async def start(self) -> None: ...

    async def stop(self) -> None: ...

    async def publish(
        self,
        event_type: str,
        data: Mapping[str, Any],
        events: Mapping[str, list[str]] | None = None,
    ) -> None: ...

    async def subscribe(
        self,
        subscriber: str,
        query: Query,
        *,
        capacity: int | None = 100,
    ) -> EventSubscription: ...

    async def unsubscribe(self, subscriber: str, query: Query) -> None: ...

    async def unsubscribe_all(self, subscriber: str) -> None: ...

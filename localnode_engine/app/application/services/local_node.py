from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterator

from eth_utils import decode_hex
from pydantic import ValidationError

from localnode_engine.app.application.services.height import resolve_height
from localnode_engine.app.application.services.pagination import (
    compute_skip,
    normalize_per_page,
    page_size,
    resolve_page,
)
from localnode_engine.app.application.services.search_sort import sort_search_hits, validate_order_by
from localnode_engine.app.domain.errors import (
    DecodeError,
    IndexingDisabledError,
    NodeQueryError,
    NotFoundError,
    UpstreamError,
)
from localnode_engine.app.domain.models import (
    BlockID,
    GenesisDoc,
    ResultBlock,
    ResultBlockResults,
    ResultGenesis,
    ResultTx,
    ResultTxSearch,
    ResultValidators,
    RoundStateSimple,
    TransactionResponse,
    tx_hash,
    tx_hash_hex,
)
from localnode_engine.app.domain.ports.out import (
    BlockStore,
    ConsensusStateSource,
    EventBus,
    EventSubscription,
    StateStore,
    TxDecoder,
    TxIndexer,
)
from localnode_engine.app.domain.query import Query


logger = logging.getLogger(__name__)

NEW_BLOCK_QUERY = "tm.event = 'NewBlock'"
_TX_HASH_SIZE = 32


@contextmanager
def _upstream(stage: str) -> Iterator[None]:
    """Re-raise collaborator failures as UpstreamError tagged with `stage`."""
    try:
        yield
    except NodeQueryError:
        raise
    except Exception as exc:
        raise UpstreamError(str(exc) or type(exc).__name__, stage=stage) from exc


def _rfc3339(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class LocalNode:
    """
    Read-only query facade over a local node's block store, state store,
    tx indexer, consensus state and event bus.

    Holds no mutable state besides references to its collaborators, so
    queries may run concurrently as long as the collaborators allow
    concurrent reads. Nothing is retried: collaborator failures surface
    immediately as UpstreamError.
    """

    def __init__(
        self,
        *,
        genesis: GenesisDoc,
        block_store: BlockStore,
        state_store: StateStore,
        tx_indexer: TxIndexer,
        consensus_state: ConsensusStateSource,
        event_bus: EventBus,
        tx_decoder: TxDecoder,
        event_capacity: int = 100,
        on_stop: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._genesis = genesis
        self._block_store = block_store
        self._state_store = state_store
        self._tx_indexer = tx_indexer
        self._consensus_state = consensus_state
        self._event_bus = event_bus
        self._tx_decoder = tx_decoder
        self._event_capacity = event_capacity
        self._on_stop = on_stop

    async def _resolve_height(self, requested: int | None) -> int:
        with _upstream("block_store"):
            latest = await self._block_store.height()
            base = await self._block_store.base() if requested is not None else 0
        return resolve_height(latest_height=latest, base=base, requested=requested)

    async def genesis(self) -> ResultGenesis:
        return ResultGenesis(genesis=self._genesis)

    async def latest_height(self) -> int:
        with _upstream("block_store"):
            return await self._block_store.height()

    async def chain_id(self) -> str:
        return self._genesis.chain_id

    async def validators(self, height: int | None = None) -> ResultValidators:
        resolved = await self._resolve_height(height)
        logger.debug("Loading validators: height=%s", resolved)

        with _upstream("state_store"):
            val_set = await self._state_store.load_validators(resolved)

        return ResultValidators(
            block_height=resolved,
            validators=val_set.validators,
            count=len(val_set.validators),
            total=len(val_set.validators),
        )

    async def block(self, height: int | None = None) -> ResultBlock:
        resolved = await self._resolve_height(height)
        logger.debug("Loading block: height=%s", resolved)

        with _upstream("block_store"):
            block = await self._block_store.load_block(resolved)
            meta = await self._block_store.load_block_meta(resolved)

        if block is None:
            raise NotFoundError(f"block at height {resolved} not found", stage="block_store")
        # meta can be missing at the earliest retained height
        if meta is None:
            return ResultBlock(block_id=BlockID.empty(), block=block)
        return ResultBlock(block_id=meta.block_id, block=block)

    async def block_results(self, height: int | None = None) -> ResultBlockResults:
        resolved = await self._resolve_height(height)
        logger.debug("Loading block results: height=%s", resolved)

        with _upstream("state_store"):
            results = await self._state_store.load_execution_results(resolved)

        if results is None:
            raise NotFoundError(
                f"no execution results recorded for height {resolved}", stage="state_store"
            )
        return ResultBlockResults(
            height=resolved,
            txs_results=tuple(results.txs_results),
            begin_block_events=tuple(results.begin_block_events),
            end_block_events=tuple(results.end_block_events),
            validator_updates=tuple(results.validator_updates),
            consensus_param_updates=results.consensus_param_updates,
        )

    async def tx(self, hash: str) -> TransactionResponse:
        if not self._tx_indexer.enabled:
            raise IndexingDisabledError("transaction indexing is disabled")

        try:
            hash_bz = decode_hex(hash)
        except ValueError as exc:
            raise DecodeError(f"invalid tx hash {hash!r}: {exc}", stage="tx_hash") from exc
        if len(hash_bz) != _TX_HASH_SIZE:
            raise DecodeError(
                f"invalid tx hash {hash!r}: expected {_TX_HASH_SIZE} bytes, got {len(hash_bz)}",
                stage="tx_hash",
            )

        with _upstream("tx_indexer"):
            r = await self._tx_indexer.get(hash_bz)
        if r is None:
            raise NotFoundError(f"tx {hash} not found", stage="tx_indexer")

        res_block = await self.block(r.height)
        decoded = self._tx_decoder.decode(r.tx)

        return TransactionResponse(
            hash=hash_bz.hex().upper(),
            height=r.height,
            index=r.index,
            code=r.result.code,
            codespace=r.result.codespace,
            gas_wanted=r.result.gas_wanted,
            gas_used=r.result.gas_used,
            raw_log=r.result.log,
            events=tuple(r.result.events),
            tx=decoded,
            timestamp=_rfc3339(res_block.block.header.time),
            block_hash=res_block.block_id.hash,
        )

    async def txs(self, block: ResultBlock) -> list[TransactionResponse]:
        """Resolve every tx of `block` in block order; fails on the first miss."""
        responses: list[TransactionResponse] = []
        for raw_tx in block.block.txs:
            responses.append(await self.tx(tx_hash_hex(raw_tx)))
        return responses

    async def tx_search(
        self,
        query: str,
        page: int | None = None,
        per_page: int | None = None,
        order_by: str = "",
    ) -> ResultTxSearch:
        validate_order_by(order_by)
        q = Query.parse(query)

        with _upstream("tx_indexer"):
            results = await self._tx_indexer.search(q)

        # sort results (must be done before pagination)
        results = sort_search_hits(results, order_by)

        total_count = len(results)
        resolved_per_page = normalize_per_page(per_page)
        resolved_page = resolve_page(page, resolved_per_page, total_count)
        skip = compute_skip(resolved_page, resolved_per_page)
        size = page_size(total_count, skip, resolved_per_page)

        logger.debug(
            "Tx search: query=%r, total=%s, page=%s, per_page=%s, order_by=%r",
            str(q),
            total_count,
            resolved_page,
            resolved_per_page,
            order_by,
        )

        txs = tuple(
            ResultTx(
                hash=tx_hash(r.tx),
                height=r.height,
                index=r.index,
                tx_result=r.result,
                tx=r.tx,
            )
            for r in results[skip : skip + size]
        )
        return ResultTxSearch(txs=txs, total_count=total_count)

    async def consensus_state(self) -> RoundStateSimple:
        with _upstream("consensus"):
            bz = self._consensus_state.round_state_snapshot()
        try:
            return RoundStateSimple.model_validate_json(bz)
        except ValidationError as exc:
            raise DecodeError(f"malformed round state: {exc}", stage="consensus") from exc

    async def subscribe_events(
        self,
        subscriber: str,
        query: str,
        *,
        capacity: int | None = None,
    ) -> EventSubscription:
        q = Query.parse(query)
        with _upstream("event_bus"):
            return await self._event_bus.subscribe(
                subscriber,
                q,
                capacity=self._event_capacity if capacity is None else capacity,
            )

    async def subscribe_new_blocks(self, subscriber: str) -> EventSubscription:
        return await self.subscribe_events(subscriber, NEW_BLOCK_QUERY)

    async def stop(self) -> None:
        if self._on_stop is not None:
            await self._on_stop()

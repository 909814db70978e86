from __future__ import annotations

import asyncio
import logging
from typing import Final

from localnode_engine.app.domain.models import BlockHeader, Event, TxResult
from localnode_engine.app.domain.ports.out import BlockIndexer, EventBus, EventSubscription, TxIndexer
from localnode_engine.app.domain.query import Query


logger = logging.getLogger(__name__)

SUBSCRIBER: Final[str] = "IndexerService"
_TX_QUERY: Final[str] = "tm.event = 'Tx'"
_BLOCK_HEADER_QUERY: Final[str] = "tm.event = 'NewBlockHeader'"


class IndexerService:
    """
    Feeds the tx and block indexers from the event bus.

    Runs two consumer tasks, one per subscription. Both subscriptions are
    unbounded, so a burst of events (a block with many txs) is queued rather
    than dropped. A failure to index one event is logged and does not stop
    the service.
    """

    def __init__(
        self,
        *,
        tx_indexer: TxIndexer,
        block_indexer: BlockIndexer,
        event_bus: EventBus,
    ) -> None:
        self._tx_indexer = tx_indexer
        self._block_indexer = block_indexer
        self._event_bus = event_bus
        self._subscriptions: list[EventSubscription] = []
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    async def start(self) -> None:
        if self._tasks:
            return

        tx_sub = await self._event_bus.subscribe(
            SUBSCRIBER, Query.parse(_TX_QUERY), capacity=None
        )
        header_sub = await self._event_bus.subscribe(
            SUBSCRIBER, Query.parse(_BLOCK_HEADER_QUERY), capacity=None
        )
        self._subscriptions = [tx_sub, header_sub]
        self._tasks = [
            asyncio.create_task(self._consume_txs(tx_sub), name="indexer-service-txs"),
            asyncio.create_task(self._consume_headers(header_sub), name="indexer-service-headers"),
        ]
        logger.info(
            "Indexer service started: tx_indexer_enabled=%s, block_indexer_enabled=%s",
            self._tx_indexer.enabled,
            self._block_indexer.enabled,
        )

    async def stop(self) -> None:
        if not self._tasks:
            return

        for sub in self._subscriptions:
            sub.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)

        self._subscriptions = []
        self._tasks = []
        logger.info("Indexer service stopped")

    async def _consume_txs(self, sub: EventSubscription) -> None:
        async for event in sub:
            result: TxResult = event.data["tx_result"]
            try:
                await self._tx_indexer.index(result)
            except Exception:
                logger.exception(
                    "Failed to index tx: height=%s, index=%s", result.height, result.index
                )
        self._log_stream_end(sub)

    async def _consume_headers(self, sub: EventSubscription) -> None:
        async for event in sub:
            header: BlockHeader = event.data["header"]
            events: list[Event] = event.data.get("events", [])
            try:
                await self._block_indexer.index(height=header.height, events=events)
            except Exception:
                logger.exception("Failed to index block events: height=%s", header.height)
        self._log_stream_end(sub)

    @staticmethod
    def _log_stream_end(sub: EventSubscription) -> None:
        if not sub.cancelled:
            logger.warning("Indexer service stream ended before stop: query=%s", sub.query)

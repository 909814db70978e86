"""In-process event bus the node publishes block and tx events on.

Each subscription owns a bounded asyncio.Queue. Publishing never blocks:
a subscriber whose queue is full is terminated (it keeps what it already
buffered, then its stream ends) instead of stalling the publisher.

Usage:
    ```python
    bus = InMemoryEventBus()
    await bus.start()

    sub = await bus.subscribe("explorer", Query.parse("tm.event = 'NewBlock'"))
    async for event in sub:
        ...
    sub.cancel()

    await bus.stop()
    ```
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Final, Mapping

from localnode_engine.app.domain.models import (
    Block,
    BlockHeader,
    Event,
    ResultEvent,
    TxResult,
    tx_hash_hex,
)
from localnode_engine.app.domain.query import Query, flatten_events


logger = logging.getLogger(__name__)

EVENT_TYPE_KEY: Final[str] = "tm.event"

EVENT_NEW_BLOCK: Final[str] = "NewBlock"
EVENT_NEW_BLOCK_HEADER: Final[str] = "NewBlockHeader"
EVENT_TX: Final[str] = "Tx"


class Subscription:
    """
    Readable stream of events matching `query`, with an idempotent
    `cancel()`.

    Iteration ends once the subscription is cancelled, terminated by the
    bus (slow consumer) or the bus stops. Cancelling stops delivery at once
    and drops anything still buffered.
    """

    def __init__(
        self,
        *,
        subscriber: str,
        query: Query,
        capacity: int | None,
        on_cancel: Callable[["Subscription"], None],
    ) -> None:
        self._subscriber = subscriber
        self._query = query
        self._queue: asyncio.Queue[ResultEvent | None] = asyncio.Queue(
            maxsize=0 if capacity is None else capacity
        )
        self._on_cancel = on_cancel
        self._cancelled = False
        self._closed = False
        self.termination_reason: str | None = None

    @property
    def subscriber(self) -> str:
        return self._subscriber

    @property
    def query(self) -> Query:
        return self._query

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def closed(self) -> bool:
        return self._closed or self._cancelled

    def deliver(self, event: ResultEvent) -> bool:
        """Enqueue without blocking; False when the subscription can't take it."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self.termination_reason = self.termination_reason or "cancelled"
        self._on_cancel(self)

        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)

    def close(self, reason: str) -> None:
        """Producer side is done: buffered events stay readable, then the stream ends."""
        if self.closed:
            return
        self._closed = True
        self.termination_reason = reason
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # queue not empty, so no reader is waiting; it will hit the closed check
            pass

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ResultEvent:
        if self._cancelled:
            raise StopAsyncIteration

        if self._closed:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                raise StopAsyncIteration
        else:
            item = await self._queue.get()

        if item is None or self._cancelled:
            raise StopAsyncIteration
        return item

    async def next_event(self, timeout: float | None = None) -> ResultEvent:
        """Await one event; StopAsyncIteration once the stream has ended."""
        return await asyncio.wait_for(self.__anext__(), timeout=timeout)


class InMemoryEventBus:
    """
    Topic-less pub/sub: every published event carries composite keys
    (`tm.event` plus flattened event attributes) and is delivered to each
    subscription whose query matches them.

    One subscription per (subscriber, query) pair.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[tuple[str, str], Subscription] = {}
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def num_clients(self) -> int:
        return len({subscriber for subscriber, _ in self._subscriptions})

    def num_client_subscriptions(self, subscriber: str) -> int:
        return sum(1 for s, _ in self._subscriptions if s == subscriber)

    async def start(self) -> None:
        self._started = True
        logger.info("Event bus started")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False

        subscriptions = list(self._subscriptions.values())
        self._subscriptions.clear()
        for sub in subscriptions:
            sub.close("event bus stopped")

        logger.info("Event bus stopped, closed %s subscriptions", len(subscriptions))

    async def publish(
        self,
        event_type: str,
        data: Mapping[str, Any],
        events: Mapping[str, list[str]] | None = None,
    ) -> None:
        if not self._started:
            raise RuntimeError("event bus not started")

        composite: dict[str, list[str]] = {k: list(v) for k, v in (events or {}).items()}
        composite[EVENT_TYPE_KEY] = [event_type]

        for sub in list(self._subscriptions.values()):
            if not sub.query.matches(composite):
                continue
            delivered = sub.deliver(
                ResultEvent(query=str(sub.query), data=data, events=composite)
            )
            if not delivered and not sub.closed:
                logger.warning(
                    "Subscriber out of capacity, terminating subscription: subscriber=%s, query=%s",
                    sub.subscriber,
                    sub.query,
                )
                self._remove(sub)
                sub.close("out of capacity")

    async def publish_event_new_block(self, block: Block, events: list[Event] | None = None) -> None:
        composite = flatten_events(events or [])
        composite["block.height"] = [str(block.height)]
        await self.publish(EVENT_NEW_BLOCK, {"block": block}, composite)

    async def publish_event_new_block_header(
        self,
        header: BlockHeader,
        events: list[Event] | None = None,
    ) -> None:
        composite = flatten_events(events or [])
        composite["block.height"] = [str(header.height)]
        await self.publish(
            EVENT_NEW_BLOCK_HEADER,
            {"header": header, "events": list(events or [])},
            composite,
        )

    async def publish_event_tx(self, result: TxResult) -> None:
        composite = flatten_events(result.result.events)
        composite["tx.hash"] = [tx_hash_hex(result.tx)]
        composite["tx.height"] = [str(result.height)]
        await self.publish(EVENT_TX, {"tx_result": result}, composite)

    async def subscribe(
        self,
        subscriber: str,
        query: Query,
        *,
        capacity: int | None = 100,
    ) -> Subscription:
        """
        Register `subscriber` for events matching `query`.

        `capacity=None` makes the queue unbounded: such a subscription is never
        terminated for falling behind.
        """
        if not self._started:
            raise RuntimeError("event bus not started")
        if capacity is not None and capacity < 1:
            raise ValueError(f"capacity must be positive, got {capacity}")

        key = (subscriber, str(query))
        if key in self._subscriptions:
            raise ValueError(f"{subscriber!r} is already subscribed to {str(query)!r}")

        sub = Subscription(
            subscriber=subscriber,
            query=query,
            capacity=capacity,
            on_cancel=self._remove,
        )
        self._subscriptions[key] = sub
        logger.debug("Subscription added: subscriber=%s, query=%s", subscriber, query)
        return sub

    async def unsubscribe(self, subscriber: str, query: Query) -> None:
        sub = self._subscriptions.get((subscriber, str(query)))
        if sub is None:
            raise ValueError(f"subscription not found: {subscriber!r} {str(query)!r}")
        sub.cancel()

    async def unsubscribe_all(self, subscriber: str) -> None:
        subs = [s for (name, _), s in self._subscriptions.items() if name == subscriber]
        if not subs:
            raise ValueError(f"subscription not found: {subscriber!r}")
        for sub in subs:
            sub.cancel()

    def _remove(self, sub: Subscription) -> None:
        key = (sub.subscriber, str(sub.query))
        if self._subscriptions.get(key) is sub:
            del self._subscriptions[key]
            logger.debug("Subscription removed: subscriber=%s, query=%s", sub.subscriber, sub.query)

"""
Tests for the in-memory event bus and its subscriptions.
"""

import pytest

from conftest import make_header, make_hit
from localnode_engine.app.domain.query import Query
from localnode_engine.app.infrastructure.adapters.event_bus import InMemoryEventBus


NEW_BLOCK = Query.parse("tm.event = 'NewBlock'")
TXS = Query.parse("tm.event = 'Tx'")


class TestLifecycle:
    async def test_publish_requires_start(self):
        bus = InMemoryEventBus()
        with pytest.raises(RuntimeError):
            await bus.publish("NewBlock", {})

    async def test_subscribe_requires_start(self):
        bus = InMemoryEventBus()
        with pytest.raises(RuntimeError):
            await bus.subscribe("client", NEW_BLOCK)

    async def test_stop_is_idempotent(self, event_bus):
        await event_bus.stop()
        await event_bus.stop()
        assert not event_bus.started

    async def test_stop_closes_subscriptions_after_buffered_events(self, event_bus):
        sub = await event_bus.subscribe("client", TXS)
        await event_bus.publish_event_tx(make_hit(1, 0))

        await event_bus.stop()

        events = [e async for e in sub]
        assert len(events) == 1
        assert sub.termination_reason == "event bus stopped"
        # cancelling after the producer side closed is safe
        sub.cancel()
        sub.cancel()


class TestSubscriptions:
    async def test_tm_event_key_is_always_set(self, event_bus):
        sub = await event_bus.subscribe("client", Query.parse("tm.event EXISTS"))
        await event_bus.publish("Custom", {"x": 1}, {"custom.key": ["v"]})

        event = await sub.next_event(timeout=1)
        assert event.events == {"custom.key": ["v"], "tm.event": ["Custom"]}
        assert event.data == {"x": 1}

    async def test_tx_event_composite_keys(self, event_bus):
        sub = await event_bus.subscribe("client", Query.parse("message.sender = 'alice'"))
        await event_bus.publish_event_tx(make_hit(1, 0, sender="bob"))
        await event_bus.publish_event_tx(make_hit(1, 1, sender="alice"))

        event = await sub.next_event(timeout=1)
        assert event.events["tx.height"] == ["1"]
        assert event.data["tx_result"].index == 1

    async def test_block_header_event(self, event_bus):
        sub = await event_bus.subscribe("client", Query.parse("block.height = 3"))
        await event_bus.publish_event_new_block_header(make_header(3))

        event = await sub.next_event(timeout=1)
        assert event.events["tm.event"] == ["NewBlockHeader"]
        assert event.data["header"].height == 3

    async def test_duplicate_subscription_is_rejected(self, event_bus):
        await event_bus.subscribe("client", NEW_BLOCK)
        with pytest.raises(ValueError):
            await event_bus.subscribe("client", NEW_BLOCK)
        # another client may use the same query
        await event_bus.subscribe("other", NEW_BLOCK)
        assert event_bus.num_clients() == 2

    async def test_non_positive_capacity_is_rejected(self, event_bus):
        with pytest.raises(ValueError):
            await event_bus.subscribe("client", NEW_BLOCK, capacity=0)

    async def test_unsubscribe(self, event_bus):
        sub = await event_bus.subscribe("client", NEW_BLOCK)
        await event_bus.unsubscribe("client", NEW_BLOCK)
        assert sub.cancelled
        with pytest.raises(ValueError):
            await event_bus.unsubscribe("client", NEW_BLOCK)

    async def test_unsubscribe_all(self, event_bus):
        a = await event_bus.subscribe("client", NEW_BLOCK)
        b = await event_bus.subscribe("client", TXS)
        await event_bus.unsubscribe_all("client")
        assert a.cancelled and b.cancelled
        assert event_bus.num_client_subscriptions("client") == 0
        with pytest.raises(ValueError):
            await event_bus.unsubscribe_all("client")

    async def test_cancel_drops_buffered_events(self, event_bus):
        sub = await event_bus.subscribe("client", TXS)
        await event_bus.publish_event_tx(make_hit(1, 0))
        sub.cancel()
        assert [e async for e in sub] == []

    async def test_slow_subscriber_is_terminated_without_blocking(self, event_bus):
        slow = await event_bus.subscribe("slow", TXS, capacity=2)
        fast = await event_bus.subscribe("fast", TXS, capacity=10)

        for i in range(3):
            await event_bus.publish_event_tx(make_hit(1, i))

        assert slow.termination_reason == "out of capacity"
        assert event_bus.num_client_subscriptions("slow") == 0
        assert len([e async for e in slow]) == 2

        received = [await fast.next_event(timeout=1) for _ in range(3)]
        assert [e.data["tx_result"].index for e in received] == [0, 1, 2]

    async def test_unbounded_subscription_is_never_terminated(self, event_bus):
        sub = await event_bus.subscribe("indexer", TXS, capacity=None)
        for i in range(500):
            await event_bus.publish_event_tx(make_hit(1, i))

        assert sub.termination_reason is None
        assert event_bus.num_client_subscriptions("indexer") == 1
        received = [await sub.next_event(timeout=1) for _ in range(500)]
        assert received[-1].data["tx_result"].index == 499

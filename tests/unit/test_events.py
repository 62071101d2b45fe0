"""Tests for the in-process status event bus."""

from procurement_core.lifecycle.events import (
    CONTRACT_STATUS_UPDATED,
    SUPPLIER_STATUS_UPDATED,
    EventBus,
)


class TestEventBus:
    async def test_publish_to_subscribers(self):
        bus = EventBus()
        queue = bus.subscribe(SUPPLIER_STATUS_UPDATED)
        assert bus.publish(SUPPLIER_STATUS_UPDATED, {"id": "s-1"}) == 1
        assert queue.get_nowait() == (SUPPLIER_STATUS_UPDATED, {"id": "s-1"})

    async def test_no_subscribers(self):
        bus = EventBus()
        assert bus.publish(CONTRACT_STATUS_UPDATED, {"id": "c-1"}) == 0

    async def test_events_are_isolated_by_name(self):
        bus = EventBus()
        queue = bus.subscribe(SUPPLIER_STATUS_UPDATED)
        bus.publish(CONTRACT_STATUS_UPDATED, {"id": "c-1"})
        assert queue.empty()

    async def test_full_queue_drops(self):
        bus = EventBus(max_queue_size=1)
        slow = bus.subscribe(SUPPLIER_STATUS_UPDATED)
        bus.publish(SUPPLIER_STATUS_UPDATED, {"n": 1})
        assert bus.publish(SUPPLIER_STATUS_UPDATED, {"n": 2}) == 0
        assert slow.qsize() == 1

    async def test_unsubscribe(self):
        bus = EventBus()
        queue = bus.subscribe(SUPPLIER_STATUS_UPDATED)
        bus.unsubscribe(SUPPLIER_STATUS_UPDATED, queue)
        assert bus.subscriber_count(SUPPLIER_STATUS_UPDATED) == 0
        assert bus.publish(SUPPLIER_STATUS_UPDATED, {}) == 0

"""In-process status-change event bus.

Subscribers receive ``(event_name, payload)`` tuples on their own queue.
Publishing never blocks: a full subscriber queue drops the event for that
subscriber only.
"""

import asyncio
import logging
from typing import Any

logger = logging.getLogger(__name__)

SUPPLIER_STATUS_UPDATED = "SUPPLIER_STATUS_UPDATED"
CONTRACT_STATUS_UPDATED = "CONTRACT_STATUS_UPDATED"
PAYMENT_STATUS_UPDATED = "PAYMENT_STATUS_UPDATED"
SYSTEM_SETTING_UPDATED = "SYSTEM_SETTING_UPDATED"


class EventBus:
    def __init__(self, max_queue_size: int = 100):
        self._max_queue_size = max_queue_size
        self._subscribers: dict[str, list[asyncio.Queue]] = {}

    def subscribe(self, event_name: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.setdefault(event_name, []).append(queue)
        return queue

    def unsubscribe(self, event_name: str, queue: asyncio.Queue) -> None:
        queues = self._subscribers.get(event_name, [])
        if queue in queues:
            queues.remove(queue)

    def publish(self, event_name: str, payload: dict[str, Any]) -> int:
        """Deliver to current subscribers. Returns how many received it."""
        delivered = 0
        for queue in list(self._subscribers.get(event_name, [])):
            try:
                queue.put_nowait((event_name, payload))
                delivered += 1
            except asyncio.QueueFull:
                logger.warning("Dropping %s for a slow subscriber", event_name)
        return delivered

    def subscriber_count(self, event_name: str) -> int:
        return len(self._subscribers.get(event_name, []))

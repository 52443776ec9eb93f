"""EventHub — fan-out of core events to presenter queues.

Every presenter (terminal loop, each WebSocket) owns one bounded queue of
``(event, data)`` pairs. The core never waits on a presenter: when a queue is
full its oldest pending event is discarded to make room.
"""
import asyncio
import logging
from collections import Counter
from typing import Any

logger = logging.getLogger(__name__)

QUEUE_SIZE = 50


class EventHub:
    def __init__(self, queue_size: int = QUEUE_SIZE):
        self.queue_size = queue_size
        self._queues: dict[str, asyncio.Queue] = {}
        self.dropped: Counter = Counter()

    def subscribe(self, name: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._queues[name] = queue
        return queue

    def unsubscribe(self, name: str):
        if self._queues.pop(name, None) is not None:
            self.dropped.pop(name, None)

    @property
    def client_count(self) -> int:
        return len(self._queues)

    def emit(self, event: str, data: Any):
        """Deliver to every subscriber without awaiting."""
        logger.debug("event %s -> %d subscriber(s)", event, len(self._queues))
        for name, queue in self._queues.items():
            if queue.full():
                queue.get_nowait()
                self.dropped[name] += 1
                if self.dropped[name] % self.queue_size == 1:
                    logger.warning("Presenter %s is falling behind (%d events dropped)", name, self.dropped[name])
            queue.put_nowait((event, data))

    async def broadcast(self, event: str, data: Any):
        self.emit(event, data)

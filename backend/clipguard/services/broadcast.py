"""Process-wide fan-out of video status events."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from clipguard.schemas.video import StatusEvent

logger = logging.getLogger(__name__)


class StatusBroadcaster:
    """In-process broadcast channel.

    Opened at application start and closed at shutdown. The pipeline only
    calls :meth:`publish`; subscriptions belong to the request layer.
    Delivery is best-effort: closed channels and full subscriber queues drop
    events.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: set[asyncio.Queue[StatusEvent]] = set()
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False
        self._subscribers.clear()

    def publish(self, event: StatusEvent) -> int:
        if not self._open:
            logger.warning("Broadcast channel closed, dropping %s", event.model_dump(by_alias=True, mode="json"))
            return 0

        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Subscriber queue full, dropping event for %s", event.video_id)
        return delivered

    @asynccontextmanager
    async def subscribe(self) -> AsyncIterator[asyncio.Queue[StatusEvent]]:
        queue: asyncio.Queue[StatusEvent] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        try:
            yield queue
        finally:
            self._subscribers.discard(queue)


broadcaster = StatusBroadcaster()

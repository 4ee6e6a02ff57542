"""
In-process change notifications.

Writes publish a ChangeEvent for the table they touched; the admin dashboard
listens on /admin/events and refetches the affected view. Each subscriber owns
a bounded queue and is removed when its consumer stops iterating.
"""

import asyncio
import logging
from dataclasses import dataclass, asdict
from typing import AsyncIterator, Optional, Set

logger = logging.getLogger(__name__)

WATCHED_TABLES = (
    "quote_requests",
    "call_bookings",
    "client_statuses",
    "call_booking_notes",
    "invoices",
    "projects",
    "opportunities",
    "admin_tasks",
    "prospects",
    "quotes",
)


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str  # 'insert' | 'update' | 'delete'
    record_id: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class EventBus:
    def __init__(self, max_queue: int = 100):
        self._subscribers: Set[asyncio.Queue] = set()
        self._max_queue = max_queue

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: ChangeEvent) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # slow consumer: it refetches everything anyway
                logger.warning("Dropping %s event for a slow subscriber", event.table)

    async def subscribe(
        self, tables: Optional[Set[str]] = None, heartbeat: Optional[float] = None
    ) -> AsyncIterator[Optional[ChangeEvent]]:
        """
        Yield events as they are published. With a heartbeat, None is yielded
        after that many idle seconds so the consumer can ping its client.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue)
        self._subscribers.add(queue)
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), heartbeat)
                except asyncio.TimeoutError:
                    yield None
                    continue
                if tables and event.table not in tables:
                    continue
                yield event
        finally:
            self._subscribers.discard(queue)


event_bus = EventBus()


def get_event_bus() -> EventBus:
    return event_bus

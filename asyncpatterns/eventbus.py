"""A broadcast event bus: every subscriber gets its own queue of every event."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from collections import deque
from typing import Generic, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")


class EventBus(Generic[T]):
    """Delivers each sent event to every current subscriber.

    Unsubscribed queues are only removed by ``collect_garbage``.
    """

    def __init__(self) -> None:
        self._chamber: dict[int, deque[T]] = {}
        self._lock = asyncio.Lock()
        self._ids = itertools.count()
        self._dead_ids: list[int] = []
        self._dead_lock = threading.Lock()

    async def subscribe(self) -> EventHandle[T]:
        async with self._lock:
            subscriber_id = next(self._ids)
            self._chamber[subscriber_id] = deque()
        return EventHandle(subscriber_id, self)

    def unsubscribe(self, subscriber_id: int) -> None:
        with self._dead_lock:
            self._dead_ids.append(subscriber_id)

    async def poll(self, subscriber_id: int) -> T | None:
        """Take the subscriber's next event, or None if there is none.

        Raises KeyError for an unknown or collected subscriber.
        """
        async with self._lock:
            events = self._chamber[subscriber_id]
            return events.popleft() if events else None

    async def send(self, event: T) -> None:
        async with self._lock:
            for events in self._chamber.values():
                events.append(event)

    async def collect_garbage(self) -> list[int]:
        """Drop the queues of unsubscribed subscribers; return their ids."""
        async with self._lock:
            with self._dead_lock:
                dead, self._dead_ids = self._dead_ids, []
            for subscriber_id in dead:
                self._chamber.pop(subscriber_id, None)
        return dead

    def subscriber_ids(self) -> list[int]:
        return sorted(self._chamber)


class EventHandle(Generic[T]):
    """A subscription; closing it unsubscribes from the bus."""

    def __init__(self, subscriber_id: int, event_bus: EventBus[T]) -> None:
        self.id = subscriber_id
        self._event_bus = event_bus
        self._closed = False

    async def poll(self) -> T | None:
        return await self._event_bus.poll(self.id)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._event_bus.unsubscribe(self.id)

    def __enter__(self) -> EventHandle[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


async def consume_event_bus(event_bus: EventBus[float], stop_value: float = 3.0) -> list[float]:
    """Subscribe and collect events until ``stop_value`` arrives; return them in order."""
    received: list[float] = []
    with await event_bus.subscribe() as handle:
        while True:
            event = await handle.poll()
            if event is None:
                await asyncio.sleep(0)
                continue
            _log.info("id: %s value: %s", handle.id, event)
            received.append(event)
            if event == stop_value:
                return received


async def garbage_collector(event_bus: EventBus, interval: float = 1.0) -> None:
    """Collect unsubscribed queues every ``interval`` seconds, forever."""
    while True:
        await event_bus.collect_garbage()
        await asyncio.sleep(interval)
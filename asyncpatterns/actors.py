"""Channel-based actors and the lock-based alternative they are compared against."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Generic, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised when sending on a channel that has been closed."""


class Channel(Generic[T]):
    """A bounded multi-producer queue; ``recv`` returns None once closed and drained."""

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._capacity = capacity
        self._items: deque[T] = deque()
        self._closed = False
        self._getters: deque[asyncio.Future[None]] = deque()
        self._putters: deque[asyncio.Future[None]] = deque()

    @staticmethod
    def _wake(waiters: deque[asyncio.Future[None]]) -> None:
        while waiters:
            waiter = waiters.popleft()
            if not waiter.done():
                waiter.set_result(None)

    async def send(self, item: T) -> None:
        """Queue an item, waiting while the channel is full."""
        while True:
            if self._closed:
                raise ChannelClosed("channel is closed")
            if len(self._items) < self._capacity:
                self._items.append(item)
                self._wake(self._getters)
                return
            waiter = asyncio.get_running_loop().create_future()
            self._putters.append(waiter)
            await waiter

    async def recv(self) -> T | None:
        """Take the next item, or return None when the channel is closed and empty."""
        while True:
            if self._items:
                item = self._items.popleft()
                self._wake(self._putters)
                return item
            if self._closed:
                return None
            waiter = asyncio.get_running_loop().create_future()
            self._getters.append(waiter)
            await waiter

    def close(self) -> None:
        self._closed = True
        self._wake(self._getters)
        self._wake(self._putters)

    async def __aiter__(self) -> AsyncIterator[T]:
        while (item := await self.recv()) is not None:
            yield item


@dataclass
class Message:
    value: int


@dataclass
class RespMessage:
    value: int
    responder: asyncio.Future[int]


async def basic_actor(receiver: Channel[Message]) -> int:
    """Add up received values; return the total once the channel closes."""
    state = 0
    async for message in receiver:
        state += message.value
        _log.info("Received: %s", message.value)
        _log.info("State: %s", state)
    return state


async def resp_actor(receiver: Channel[RespMessage]) -> int:
    """Add up received values, answering each message with the running total."""
    state = 0
    async for message in receiver:
        state += message.value
        if message.responder.done():
            _log.error("Failed to send response")
        else:
            message.responder.set_result(state)
    return state


class SharedState:
    """A value guarded by an asyncio lock."""

    def __init__(self, value: int = 0) -> None:
        self.value = value
        self.lock = asyncio.Lock()


async def actor_replacement(state: SharedState, value: int) -> int:
    """Add ``value`` under the lock and return the new total."""
    async with state.lock:
        state.value += value
        return state.value
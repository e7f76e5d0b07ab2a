"""A key-value store whose actors send heartbeats and are restarted by a supervisor."""

from __future__ import annotations

import asyncio
import enum
import json
import logging
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from asyncpatterns.actors import Channel, ChannelClosed
from asyncpatterns.kvstore import (
    CHANNEL_CAPACITY,
    DeleteKeyValueMessage,
    GetKeyValueMessage,
    KeyValueMessage,
    SetKeyValueMessage,
    WriterLogMessage,
    WriterOp,
    load_map,
)

_log = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 0.2
DEFAULT_STALE_AFTER = 0.7


class ActorType(enum.Enum):
    """The actors the supervisor watches."""

    KEY_VALUE = "key_value"
    WRITER = "writer"


@dataclass(frozen=True)
class _Heartbeat:
    actor_type: ActorType


@dataclass(frozen=True)
class _Reset:
    actor_type: ActorType


RoutingMessage = Union[KeyValueMessage, _Heartbeat, _Reset]


async def _notify(router_sender: Channel[RoutingMessage], message: RoutingMessage) -> None:
    with suppress(ChannelClosed):
        await router_sender.send(message)


def _respond(future: asyncio.Future, value: object) -> None:
    if not future.done():
        future.set_result(value)


def _encode(store: dict[str, bytes]) -> str:
    return json.dumps({key: list(value) for key, value in store.items()}, separators=(",", ":"))


async def heartbeat_actor(
    receiver: Channel[ActorType],
    router_sender: Channel[RoutingMessage],
    timeout: float = DEFAULT_TIMEOUT,
    stale_after: float = DEFAULT_STALE_AFTER,
) -> None:
    """Record when each actor last reported in and ask for a reset when one goes quiet.

    Staleness is checked each time a heartbeat arrives. Ends when the channel closes.
    """
    last_seen: dict[ActorType, float] = {}
    loop = asyncio.get_running_loop()
    while True:
        try:
            actor_type = await asyncio.wait_for(receiver.recv(), timeout)
        except asyncio.TimeoutError:
            continue
        if actor_type is None:
            return
        last_seen[actor_type] = loop.time()

        cutoff = loop.time() - stale_after
        stale = next((key for key, seen in last_seen.items() if seen < cutoff), None)
        if stale is not None:
            _log.warning("sending reset message for %s", stale)
            await _notify(router_sender, _Reset(ActorType.KEY_VALUE))
            last_seen.pop(ActorType.KEY_VALUE, None)
            last_seen.pop(ActorType.WRITER, None)


async def supervised_writer_actor(
    receiver: Channel[WriterLogMessage],
    router_sender: Channel[RoutingMessage],
    path: str | Path = "./data.json",
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, bytes]:
    """Mirror the map into a file, sending a heartbeat whenever it is idle for ``timeout``.

    Returns the final map once the channel closes.
    """
    store = await load_map(path)
    with open(path, "w", encoding="utf-8") as handle:
        while True:
            try:
                message = await asyncio.wait_for(receiver.recv(), timeout)
            except asyncio.TimeoutError:
                await _notify(router_sender, _Heartbeat(ActorType.WRITER))
                continue
            if message is None:
                break
            if message.op is WriterOp.SET:
                store[message.key] = bytes(message.value)
            elif message.op is WriterOp.DELETE:
                store.pop(message.key, None)
            elif message.response is not None:
                _respond(message.response, dict(store))
            handle.seek(0)
            handle.truncate()
            handle.write(_encode(store))
            handle.flush()
    return store


async def supervised_key_value_actor(
    receiver: Channel[KeyValueMessage],
    router_sender: Channel[RoutingMessage],
    path: str | Path = "./data.json",
    timeout: float = DEFAULT_TIMEOUT,
) -> dict[str, bytes]:
    """Serve store requests backed by its own writer, with heartbeats when idle.

    The writer is stopped and awaited when this actor ends or is cancelled.
    Returns the final map.
    """
    _log.info("Starting key_value_actor")
    writer_channel: Channel[WriterLogMessage] = Channel(CHANNEL_CAPACITY)
    writer_task = asyncio.create_task(
        supervised_writer_actor(writer_channel, router_sender, path, timeout)
    )
    store: dict[str, bytes] = {}
    try:
        loaded: asyncio.Future[dict[str, bytes]] = asyncio.get_running_loop().create_future()
        await writer_channel.send(WriterLogMessage(WriterOp.GET, response=loaded))
        store = dict(await loaded)

        while True:
            try:
                message = await asyncio.wait_for(receiver.recv(), timeout)
            except asyncio.TimeoutError:
                await _notify(router_sender, _Heartbeat(ActorType.KEY_VALUE))
                continue
            if message is None:
                break
            log = WriterLogMessage.from_key_value_message(message)
            if log is not None:
                with suppress(ChannelClosed):
                    await writer_channel.send(log)
            if isinstance(message, GetKeyValueMessage):
                _respond(message.response, store.get(message.key))
            elif isinstance(message, DeleteKeyValueMessage):
                store.pop(message.key, None)
                _respond(message.response, None)
            elif isinstance(message, SetKeyValueMessage):
                store[message.key] = bytes(message.value)
                _respond(message.response, None)
            else:
                raise TypeError(f"unexpected message: {message!r}")
    finally:
        writer_channel.close()
        await asyncio.wait([writer_task])
        if not writer_task.cancelled() and writer_task.exception() is not None:
            _log.error("writer actor failed: %s", writer_task.exception())
    return store


async def _fail_pending(channel: Channel[KeyValueMessage]) -> None:
    channel.close()
    while (message := await channel.recv()) is not None:
        if not message.response.done():
            message.response.set_exception(RuntimeError("key-value actor was reset"))


async def supervised_router(
    receiver: Channel[RoutingMessage],
    router_sender: Channel[RoutingMessage],
    path: str | Path = "./data.json",
    timeout: float = DEFAULT_TIMEOUT,
) -> None:
    """Route store requests and heartbeats, restarting the store actors on a reset."""
    kv_channel: Channel[KeyValueMessage] = Channel(CHANNEL_CAPACITY)
    kv_task = asyncio.create_task(
        supervised_key_value_actor(kv_channel, router_sender, path, timeout)
    )
    heartbeat_channel: Channel[ActorType] = Channel(CHANNEL_CAPACITY)
    heartbeat_task = asyncio.create_task(
        heartbeat_actor(heartbeat_channel, router_sender, timeout, timeout * 3.5)
    )
    try:
        async for message in receiver:
            if isinstance(message, _Heartbeat):
                with suppress(ChannelClosed):
                    await heartbeat_channel.send(message.actor_type)
            elif isinstance(message, _Reset):
                kv_task.cancel()
                await asyncio.wait([kv_task])
                await _fail_pending(kv_channel)
                kv_channel = Channel(CHANNEL_CAPACITY)
                kv_task = asyncio.create_task(
                    supervised_key_value_actor(kv_channel, router_sender, path, timeout)
                )
            else:
                with suppress(ChannelClosed):
                    await kv_channel.send(message)
    finally:
        kv_channel.close()
        heartbeat_channel.close()
        await asyncio.wait([kv_task, heartbeat_task])


class SupervisedStore:
    """Client for the supervised key-value actors."""

    def __init__(self, path: str | Path = "./data.json", timeout: float = DEFAULT_TIMEOUT) -> None:
        self.path = path
        self.timeout = timeout
        self._sender: Channel[RoutingMessage] | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("store is already started")
        self._sender = Channel(CHANNEL_CAPACITY)
        self._task = asyncio.create_task(
            supervised_router(self._sender, self._sender, self.path, self.timeout)
        )

    def _running_sender(self) -> Channel[RoutingMessage]:
        if self._sender is None:
            raise RuntimeError("store is not running")
        return self._sender

    async def _request(self, message: KeyValueMessage) -> object:
        await self._running_sender().send(message)
        return await message.response

    async def set(self, key: str, value: bytes) -> None:
        future = asyncio.get_running_loop().create_future()
        await self._request(SetKeyValueMessage(key, bytes(value), future))

    async def get(self, key: str) -> bytes | None:
        future = asyncio.get_running_loop().create_future()
        return await self._request(GetKeyValueMessage(key, future))

    async def delete(self, key: str) -> None:
        future = asyncio.get_running_loop().create_future()
        await self._request(DeleteKeyValueMessage(key, future))

    async def reset(self) -> None:
        """Ask the supervisor to restart the key-value and writer actors."""
        await self._running_sender().send(_Reset(ActorType.KEY_VALUE))

    async def close(self) -> None:
        if self._sender is None or self._task is None:
            return
        self._sender.close()
        task, self._task, self._sender = self._task, None, None
        await task

    async def __aenter__(self) -> SupervisedStore:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
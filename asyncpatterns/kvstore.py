"""A key-value store run by actors, with optional write-through to a JSON file."""

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

_log = logging.getLogger(__name__)

CHANNEL_CAPACITY = 32


@dataclass
class SetKeyValueMessage:
    key: str
    value: bytes
    response: asyncio.Future[None]


@dataclass
class GetKeyValueMessage:
    key: str
    response: asyncio.Future[bytes | None]


@dataclass
class DeleteKeyValueMessage:
    key: str
    response: asyncio.Future[None]


KeyValueMessage = Union[SetKeyValueMessage, GetKeyValueMessage, DeleteKeyValueMessage]


class WriterOp(enum.Enum):
    SET = "set"
    DELETE = "delete"
    GET = "get"


@dataclass
class WriterLogMessage:
    """An instruction for the writer actor: record a change or hand back its map."""

    op: WriterOp
    key: str | None = None
    value: bytes | None = None
    response: asyncio.Future[dict[str, bytes]] | None = None

    @classmethod
    def from_key_value_message(cls, message: KeyValueMessage) -> WriterLogMessage | None:
        """Return the log entry a store message causes, or None for reads."""
        if isinstance(message, SetKeyValueMessage):
            return cls(WriterOp.SET, message.key, bytes(message.value))
        if isinstance(message, DeleteKeyValueMessage):
            return cls(WriterOp.DELETE, message.key)
        return None


def _respond(future: asyncio.Future, value: object) -> None:
    if not future.done():
        future.set_result(value)


def _encode(store: dict[str, bytes]) -> str:
    return json.dumps({key: list(value) for key, value in store.items()}, separators=(",", ":"))


async def read_data_from_file(path: str | Path) -> dict[str, bytes]:
    """Load a map of keys to byte arrays from a JSON file.

    Raises OSError when the file cannot be read and ValueError when it is malformed.
    """
    with open(path, encoding="utf-8") as handle:
        raw = json.load(handle)
    if not isinstance(raw, dict):
        raise ValueError("expected a JSON object")
    result: dict[str, bytes] = {}
    for key, value in raw.items():
        if not isinstance(value, list) or not all(
            isinstance(byte, int) and not isinstance(byte, bool) and 0 <= byte <= 255
            for byte in value
        ):
            raise ValueError(f"value for {key!r} is not a byte array")
        result[key] = bytes(value)
    return result


async def load_map(path: str | Path) -> dict[str, bytes]:
    """Load the map from a file, falling back to an empty map on any error."""
    try:
        data = await read_data_from_file(path)
    except (OSError, ValueError) as exc:
        _log.warning("Failed to read from file: %s", exc)
        _log.info("Starting with an empty hashmap.")
        return {}
    _log.info("Data loaded from file: %r", data)
    return data


async def key_value_actor(
    receiver: Channel[KeyValueMessage],
    writer_sender: Channel[WriterLogMessage] | None = None,
) -> dict[str, bytes]:
    """Serve get, set and delete requests until the channel closes.

    With a writer channel, the initial map is fetched from the writer and every
    change is forwarded to it; the writer channel is closed when this actor ends.
    Returns the final map.
    """
    store: dict[str, bytes] = {}
    try:
        if writer_sender is not None:
            loaded: asyncio.Future[dict[str, bytes]] = asyncio.get_running_loop().create_future()
            await writer_sender.send(WriterLogMessage(WriterOp.GET, response=loaded))
            store = dict(await loaded)

        async for message in receiver:
            if writer_sender is not None:
                log = WriterLogMessage.from_key_value_message(message)
                if log is not None:
                    with suppress(ChannelClosed):
                        await writer_sender.send(log)
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
        if writer_sender is not None:
            writer_sender.close()
    return store


async def writer_actor(
    receiver: Channel[WriterLogMessage], path: str | Path = "./data.json"
) -> dict[str, bytes]:
    """Keep a copy of the map and rewrite the whole file after every message.

    The file is loaded first, then recreated empty. Returns the final map.
    """
    store = await load_map(path)
    with open(path, "w", encoding="utf-8") as handle:
        async for message in receiver:
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


async def router(receiver: Channel[KeyValueMessage], path: str | Path | None = None) -> None:
    """Start the store actors and forward every message to them until the channel closes.

    With a path the store is backed by a writer actor for that file.
    """
    kv_channel: Channel[KeyValueMessage] = Channel(CHANNEL_CAPACITY)
    writer_task: asyncio.Task | None = None
    if path is not None:
        writer_channel: Channel[WriterLogMessage] = Channel(CHANNEL_CAPACITY)
        writer_task = asyncio.create_task(writer_actor(writer_channel, path))
        kv_task = asyncio.create_task(key_value_actor(kv_channel, writer_channel))
    else:
        kv_task = asyncio.create_task(key_value_actor(kv_channel))
    try:
        async for message in receiver:
            with suppress(ChannelClosed):
                await kv_channel.send(message)
    finally:
        kv_channel.close()
        await kv_task
        if writer_task is not None:
            await writer_task


class KeyValueStore:
    """Client for the routed key-value actors."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = path
        self._sender: Channel[KeyValueMessage] | None = None
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("store is already started")
        self._sender = Channel(CHANNEL_CAPACITY)
        self._task = asyncio.create_task(router(self._sender, self.path))

    async def _request(self, message: KeyValueMessage) -> object:
        if self._sender is None:
            raise RuntimeError("store is not running")
        await self._sender.send(message)
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

    async def close(self) -> None:
        """Stop the actors, waiting for pending writes to reach the file."""
        if self._sender is None or self._task is None:
            return
        self._sender.close()
        task, self._task, self._sender = self._task, None, None
        await task

    async def __aenter__(self) -> KeyValueStore:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
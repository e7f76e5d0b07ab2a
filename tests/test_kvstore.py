import asyncio
import json

import pytest

from asyncpatterns.actors import Channel
from asyncpatterns.kvstore import (
    DeleteKeyValueMessage,
    GetKeyValueMessage,
    KeyValueStore,
    SetKeyValueMessage,
    WriterLogMessage,
    WriterOp,
    key_value_actor,
    load_map,
    read_data_from_file,
    router,
    writer_actor,
)


def _future():
    return asyncio.get_running_loop().create_future()


@pytest.mark.asyncio
async def test_in_memory_set_get_delete():
    store = KeyValueStore()
    await store.start()
    await store.set("hello", b"world")
    assert await store.get("hello") == b"world"
    await store.delete("hello")
    assert await store.get("hello") is None
    await store.close()


@pytest.mark.asyncio
async def test_start_twice_is_an_error():
    store = KeyValueStore()
    await store.start()
    with pytest.raises(RuntimeError):
        await store.start()
    await store.close()


@pytest.mark.asyncio
async def test_request_without_start_is_an_error():
    store = KeyValueStore()
    with pytest.raises(RuntimeError):
        await store.get("hello")


@pytest.mark.asyncio
async def test_persisted_file_format(tmp_path):
    path = tmp_path / "data.json"
    async with KeyValueStore(path) as store:
        await store.set("hello", b"world")
    assert path.read_text(encoding="utf-8") == '{"hello":[119,111,114,108,100]}'


@pytest.mark.asyncio
async def test_state_recovered_from_file(tmp_path):
    path = tmp_path / "data.json"
    async with KeyValueStore(path) as store:
        await store.set("hello", b"world")
        await store.set("other", b"value")
        await store.delete("other")
    async with KeyValueStore(path) as store:
        assert await store.get("hello") == b"world"
        assert await store.get("other") is None
    assert json.loads(path.read_text(encoding="utf-8")) == {"hello": list(b"world")}


@pytest.mark.asyncio
async def test_read_data_from_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        await read_data_from_file(tmp_path / "missing.json")


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["not json", "[1, 2]", '{"a": [300]}', '{"a": "text"}'])
async def test_read_data_rejects_malformed(tmp_path, text):
    path = tmp_path / "bad.json"
    path.write_text(text, encoding="utf-8")
    with pytest.raises(ValueError):
        await read_data_from_file(path)


@pytest.mark.asyncio
async def test_load_map_falls_back_to_empty(tmp_path):
    assert await load_map(tmp_path / "missing.json") == {}


@pytest.mark.asyncio
async def test_load_map_reads_values(tmp_path):
    path = tmp_path / "data.json"
    path.write_text(json.dumps({"k": list(b"abc")}), encoding="utf-8")
    assert await load_map(path) == {"k": b"abc"}


@pytest.mark.asyncio
async def test_writer_log_message_from_key_value_message():
    assert WriterLogMessage.from_key_value_message(GetKeyValueMessage("k", _future())) is None
    log = WriterLogMessage.from_key_value_message(SetKeyValueMessage("k", b"v", _future()))
    assert (log.op, log.key, log.value) == (WriterOp.SET, "k", b"v")
    log = WriterLogMessage.from_key_value_message(DeleteKeyValueMessage("k", _future()))
    assert (log.op, log.key) == (WriterOp.DELETE, "k")


@pytest.mark.asyncio
async def test_key_value_actor_without_writer():
    channel = Channel(4)
    task = asyncio.create_task(key_value_actor(channel))
    done = _future()
    await channel.send(SetKeyValueMessage("a", b"1", done))
    await done
    got = _future()
    await channel.send(GetKeyValueMessage("a", got))
    assert await got == b"1"
    channel.close()
    assert await task == {"a": b"1"}


@pytest.mark.asyncio
async def test_writer_actor_round_trip(tmp_path):
    path = tmp_path / "data.json"
    channel = Channel(4)
    task = asyncio.create_task(writer_actor(channel, path))
    await channel.send(WriterLogMessage(WriterOp.SET, "a", b"xy"))
    snapshot = _future()
    await channel.send(WriterLogMessage(WriterOp.GET, response=snapshot))
    assert await snapshot == {"a": b"xy"}
    await channel.send(WriterLogMessage(WriterOp.DELETE, "a"))
    channel.close()
    assert await task == {}
    assert json.loads(path.read_text(encoding="utf-8")) == {}


@pytest.mark.asyncio
async def test_key_value_actor_forwards_to_writer(tmp_path):
    path = tmp_path / "data.json"
    writer_channel = Channel(4)
    writer_task = asyncio.create_task(writer_actor(writer_channel, path))
    kv_channel = Channel(4)
    kv_task = asyncio.create_task(key_value_actor(kv_channel, writer_channel))
    done = _future()
    await kv_channel.send(SetKeyValueMessage("key", b"val", done))
    await done
    kv_channel.close()
    await kv_task
    await writer_task
    assert await read_data_from_file(path) == {"key": b"val"}


@pytest.mark.asyncio
async def test_router_forwards_messages():
    channel = Channel(4)
    task = asyncio.create_task(router(channel))
    done = _future()
    await channel.send(SetKeyValueMessage("r", b"z", done))
    await done
    got = _future()
    await channel.send(GetKeyValueMessage("r", got))
    assert await got == b"z"
    channel.close()
    await task
    assert task.done()
# asyncpatterns

Small, working building blocks for asynchronous programs, using only the
standard library.

## What is in the package

- `asyncpatterns.coroutines`: hand-driven coroutines.
  `ReadCoroutine` returns one integer per line of a file on each `resume()`
  (and `None` at the end or at the first line that is not a 32-bit integer);
  `WriteCoroutine` appends one number per line; `CoroutineManager` pipes a
  reader into a writer; `read_numbers` and `append_number_to_file` are the
  one-shot helpers. `RandCoroutine` and `run_until_low` resume random-value
  coroutines round-robin. `SleepCoroutine` and `CoroutineExecutor` show a
  round-robin queue of coroutines resumed until they complete.
  `MutexCoroutine` only advances when it can take the lock of a
  `SharedCounter`. `SleepCoroutine` and `MutexCoroutine` can also be awaited.
- `asyncpatterns.wire`: `Data`, a record of a u32, a u16 and a UTF-8 string,
  with `serialize()` and `Data.deserialize(...)` (native byte order,
  length-prefixed string; `EOFError` on short input, `ValueError` on bad UTF-8).
- `asyncpatterns.runtime`: a single-threaded `Executor` that steps spawned
  awaitables in turn, a `JoinHandle` whose `recv(timeout)` can be called from
  another thread, a busy-polling `Sleep`, non-blocking `TcpSender` and
  `TcpReceiver`, and `CountingFuture`, which completes with 4 on its fourth poll.
- `asyncpatterns.server`: a TCP `Server` that hands connections round-robin to
  `Worker` threads, each running its own `Executor`. `handle_client` reads one
  `Data` message, waits, replies `Hello, client!` and closes the connection.
  `send_data` and `run_clients` are the matching client.
- `asyncpatterns.actors`: a bounded async `Channel` (with `ChannelClosed`),
  `basic_actor`, `resp_actor` answering each `RespMessage` with the running
  total, and the lock-based `actor_replacement` over a `SharedState`.
- `asyncpatterns.kvstore`: `KeyValueStore`, a key-value store made of a
  `router`, a `key_value_actor` and, when given a path, a `writer_actor` that
  rewrites a JSON file after every change and reloads it at start.
- `asyncpatterns.supervision`: `SupervisedStore`, the same store whose actors
  send heartbeats when idle; `heartbeat_actor` asks the router to restart the
  actors when one goes quiet, and `SupervisedStore.reset()` restarts them on
  request.
- `asyncpatterns.eventbus`: `EventBus`, which broadcasts every event to every
  subscriber's queue, `EventHandle` subscriptions, `consume_event_bus` and a
  `garbage_collector` that drops the queues of closed handles.
- `asyncpatterns.thermostat`: a thermostat simulation — `Thermostat` state,
  `DisplayTask`, `HeaterTask`, `HeatLossTask`, `render` and `run`.
- `asyncpatterns.patterns`: `HelloWorld` and the `ExcitedGreeting` decorator,
  `LoggingFuture` (calls a log function on every poll), `CircuitBreaker` with
  `CircuitOpenError`, `retry` with doubling delays, the `State`/`Event`
  `transition` state machine, and `run_waterfall` / `run_waterfall_logic`.
- `asyncpatterns.background`: `BackgroundRuntime` (an event loop on its own
  thread, with `spawn`, `block_on` and `shutdown`), `AddService` for
  start-now-collect-later additions by id, and `LocalPool`, a set of worker
  threads with per-thread state counted by `count_number` and merged by
  `complete_count()`.
- `asyncpatterns.processing`: `do_something` and `do_something_async`, written
  against an injected `AsyncProcess` handle so they can be tested with mocks;
  they raise `ResultTooBigError` for results above 10.

## Installing

```
pip install .
```

## Examples

The key-value store, backed by a JSON file:

```python
import asyncio
from asyncpatterns.kvstore import KeyValueStore

async def demo():
    async with KeyValueStore("data.json") as store:
        await store.set("hello", b"world")
        print(await store.get("hello"))   # b'world'
        await store.delete("hello")
        print(await store.get("hello"))   # None

asyncio.run(demo())
```

Leave out the path for a store kept only in memory.

Retrying a flaky operation, doubling the delay after each failure:

```python
from asyncpatterns.patterns import retry

result = await retry(fetch, attempts=5, initial_delay=1.0)
```

Polling awaitables with the small runtime:

```python
import threading
from asyncpatterns.runtime import CountingFuture, Executor

executor = Executor()
handle = executor.spawn(CountingFuture())
threading.Thread(target=lambda: [executor.poll() for _ in range(10)]).start()
print(handle.recv(timeout=5))   # 4
```

## Commands

Start the TCP server (default `127.0.0.1:7878`, three workers, one second
before each reply):

```
asyncpatterns-server serve --host 127.0.0.1 --port 7878 --workers 3 --delay 1.0
```

Send messages to it from many concurrent clients and print each reply:

```
asyncpatterns-server client --host 127.0.0.1 --port 7878 --count 4000
```

Run the thermostat simulation in the terminal until interrupted:

```
asyncpatterns-thermostat --tick 0.01
```

## What the package does not do

- The thermostat command takes no keyboard input: the desired temperature is
  whatever the `Thermostat` was created with (21.00 by default). Change it by
  building your own `Thermostat` and passing it to `run`.
- The server does not act on the messages it receives; it decodes them, logs
  them and always sends the same reply.
- The executor in `asyncpatterns.runtime` busy-polls; it has no waker or
  I/O readiness notification.

## Running the tests

```
pip install .[test]
pytest
```
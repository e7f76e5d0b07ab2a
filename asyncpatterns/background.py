"""Event loops running on background threads: a shared runtime, a deferred adder and a pinned pool."""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
import uuid
from collections import Counter
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")


class _LoopThread:
    """An asyncio event loop running forever on its own daemon thread."""

    def __init__(self, name: str) -> None:
        self.loop = asyncio.new_event_loop()
        self._closed = False
        self._lock = threading.Lock()
        self.thread = threading.Thread(target=self._run, name=name, daemon=True)
        self.thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        try:
            self.loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()
            if pending:
                self.loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            self.loop.run_until_complete(self.loop.shutdown_asyncgens())
            self.loop.close()

    def submit(self, coroutine: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        with self._lock:
            if self._closed:
                coroutine.close()
                raise RuntimeError("runtime has been shut down")
            return asyncio.run_coroutine_threadsafe(coroutine, self.loop)

    def stop(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join()


class BackgroundRuntime:
    """Runs coroutines on an event loop owned by a background thread."""

    def __init__(self, name: str = "background runtime") -> None:
        self.name = name
        self._loop_thread = _LoopThread(name)

    def spawn(self, coroutine: Coroutine[Any, Any, T]) -> concurrent.futures.Future[T]:
        """Schedule the coroutine and return a future for its result."""
        return self._loop_thread.submit(coroutine)

    def block_on(
        self, coroutine: Coroutine[Any, Any, T] | concurrent.futures.Future[T]
    ) -> T:
        """Wait for a coroutine, or an already spawned future, and return its result."""
        if isinstance(coroutine, concurrent.futures.Future):
            return coroutine.result()
        return self.spawn(coroutine).result()

    def shutdown(self) -> None:
        """Stop the loop, cancelling whatever is still running."""
        self._loop_thread.stop()

    def __enter__(self) -> BackgroundRuntime:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


async def async_add(a: int, b: int, delay: float = 3.0) -> int:
    """Wait ``delay`` seconds, then return the sum."""
    _log.info("starting async_add")
    await asyncio.sleep(delay)
    _log.info("finished async_add")
    return a + b


class AddService:
    """Starts additions in the background and hands out ids to collect them by."""

    def __init__(self, runtime: BackgroundRuntime | None = None, delay: float = 3.0) -> None:
        self.runtime = runtime if runtime is not None else BackgroundRuntime("add runtime")
        self.delay = delay
        self._handles: dict[str, concurrent.futures.Future[int]] = {}
        self._lock = threading.Lock()

    def send_add(self, a: int, b: int) -> str:
        """Start adding ``a`` and ``b``; return the id to fetch the result with."""
        future = self.runtime.spawn(async_add(a, b, self.delay))
        handle_id = str(uuid.uuid4())
        with self._lock:
            self._handles[handle_id] = future
        return handle_id

    def get_add(self, handle_id: str) -> int:
        """Wait for and return the result for ``handle_id``; each id can be collected once.

        Raises KeyError for an unknown or already collected id.
        """
        with self._lock:
            future = self._handles.pop(handle_id, None)
        if future is None:
            raise KeyError("No handle found")
        return future.result()


_thread_state = threading.local()


def _thread_counter() -> Counter[int]:
    counter = getattr(_thread_state, "counter", None)
    if counter is None:
        counter = Counter()
        _thread_state.counter = counter
    return counter


async def count_number(number: int) -> int:
    """Count ``number`` in the counter of the thread this runs on; return the number."""
    await asyncio.sleep(0)
    _thread_counter()[number] += 1
    return number


async def _extract_counter() -> Counter[int]:
    return Counter(_thread_counter())


class LocalPool:
    """A fixed set of worker threads, each with its own loop and thread-local state."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("size must be at least 1")
        self._workers = [_LoopThread(f"local pool worker {i}") for i in range(size)]
        self._pending = [0] * size
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._workers)

    def spawn_pinned(
        self, factory: Callable[[], Awaitable[T]]
    ) -> concurrent.futures.Future[T]:
        """Run the awaitable made by ``factory`` on the least busy worker."""
        with self._lock:
            index = min(range(len(self._pending)), key=self._pending.__getitem__)
        return self.spawn_pinned_by_idx(factory, index)

    def spawn_pinned_by_idx(
        self, factory: Callable[[], Awaitable[T]], index: int
    ) -> concurrent.futures.Future[T]:
        """Run the awaitable made by ``factory`` on worker ``index``.

        The factory itself is called on that worker's thread.
        """
        if not 0 <= index < len(self._workers):
            raise IndexError(f"worker index {index} out of range")

        async def run() -> T:
            return await factory()

        future = self._workers[index].submit(run())
        with self._lock:
            self._pending[index] += 1

        def finished(_: concurrent.futures.Future[T]) -> None:
            with self._lock:
                self._pending[index] -= 1

        future.add_done_callback(finished)
        return future

    def complete_count(self) -> Counter[int]:
        """Merge the counters that ``count_number`` kept on every worker thread."""
        futures = [
            self.spawn_pinned_by_idx(_extract_counter, index)
            for index in range(len(self._workers))
        ]
        total: Counter[int] = Counter()
        for future in futures:
            try:
                total.update(future.result())
            except Exception as exc:
                _log.warning("failed to read a worker's counter: %s", exc)
        return total

    def shutdown(self) -> None:
        for worker in self._workers:
            worker.stop()

    def __enter__(self) -> LocalPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()
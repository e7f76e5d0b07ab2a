"""A minimal single-threaded executor with busy-polling sleep and socket futures."""

from __future__ import annotations

import queue
import socket
import time
from collections import deque
from collections.abc import Awaitable, Coroutine, Generator
from typing import Any, Generic, TypeVar

T = TypeVar("T")

_READ_CHUNK = 1024


class JoinHandle(Generic[T]):
    """Receives the outcome of a spawned task, possibly from another thread."""

    def __init__(self) -> None:
        self._queue: queue.SimpleQueue[tuple[bool, Any]] = queue.SimpleQueue()
        self._outcome: tuple[bool, Any] | None = None

    def _finish(self, ok: bool, value: Any) -> None:
        self._queue.put((ok, value))

    def recv(self, timeout: float | None = None) -> T:
        """Block until the task finishes and return its result.

        Re-raises the task's exception; raises TimeoutError if it has not
        finished within ``timeout`` seconds.
        """
        if self._outcome is None:
            try:
                self._outcome = self._queue.get(timeout=timeout)
            except queue.Empty:
                raise TimeoutError("task has not finished") from None
        ok, value = self._outcome
        if ok:
            return value
        raise value


class Executor:
    """Round-robin queue of tasks; each poll steps the front task once."""

    def __init__(self) -> None:
        self._tasks: deque[tuple[Coroutine[Any, Any, Any], JoinHandle[Any]]] = deque()

    def spawn(self, awaitable: Awaitable[T]) -> JoinHandle[T]:
        handle: JoinHandle[T] = JoinHandle()

        async def task() -> T:
            return await awaitable

        self._tasks.append((task(), handle))
        return handle

    def poll(self) -> None:
        """Step the front task; requeue it if it is still pending."""
        try:
            coroutine, handle = self._tasks.popleft()
        except IndexError:
            return
        try:
            coroutine.send(None)
        except StopIteration as done:
            handle._finish(True, done.value)
        except Exception as exc:
            handle._finish(False, exc)
        else:
            self._tasks.append((coroutine, handle))

    def __len__(self) -> int:
        return len(self._tasks)


class Sleep:
    """Completes once the given number of seconds has passed since creation."""

    def __init__(self, duration: float) -> None:
        self.when = time.monotonic() + duration

    def __await__(self) -> Generator[None, None, None]:
        while time.monotonic() < self.when:
            yield


class TcpSender:
    """Writes a whole buffer to a socket without blocking the executor."""

    def __init__(self, stream: socket.socket, buffer: bytes) -> None:
        self.stream = stream
        self.buffer = bytes(buffer)

    def __await__(self) -> Generator[None, None, None]:
        self.stream.setblocking(False)
        view = memoryview(self.buffer)
        sent = 0
        while sent < len(view):
            try:
                sent += self.stream.send(view[sent:])
            except (BlockingIOError, InterruptedError):
                yield


class TcpReceiver:
    """Reads from a socket until the peer closes it, returning everything read."""

    def __init__(self, stream: socket.socket) -> None:
        self.stream = stream
        self.buffer = bytearray()

    def __await__(self) -> Generator[None, None, bytes]:
        self.stream.setblocking(False)
        while True:
            try:
                chunk = self.stream.recv(_READ_CHUNK)
            except (BlockingIOError, InterruptedError):
                yield
                continue
            if not chunk:
                return bytes(self.buffer)
            self.buffer.extend(chunk)
            yield


class CountingFuture:
    """Stays pending for three polls and completes with 4 on the fourth."""

    def __init__(self) -> None:
        self.count = 0

    def __await__(self) -> Generator[None, None, int]:
        while True:
            self.count += 1
            if self.count == 4:
                return self.count
            yield
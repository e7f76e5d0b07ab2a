"""Hand-driven coroutines: readers, writers, sleepers and lock-contending tasks."""

from __future__ import annotations

import enum
import random
import re
import threading
import time
from collections import deque
from collections.abc import Generator, Iterable, Iterator
from pathlib import Path
from typing import Any, Protocol

_I32_MIN = -(2**31)
_I32_MAX = 2**31 - 1
_INTEGER = re.compile(r"[+-]?[0-9]+")


class CoroutineState(enum.Enum):
    """Outcome of resuming a coroutine once."""

    YIELDED = "yielded"
    COMPLETE = "complete"


def _parse_i32(text: str) -> int | None:
    """Parse a strict signed 32-bit integer; return None when the text is not one."""
    if not _INTEGER.fullmatch(text):
        return None
    number = int(text)
    if not _I32_MIN <= number <= _I32_MAX:
        return None
    return number


class ReadCoroutine:
    """Reads one integer per line from a file each time it is resumed."""

    def __init__(self, path: str | Path) -> None:
        self._file = open(path, "r", encoding="utf-8", newline=None)

    def resume(self) -> int | None:
        """Return the next number, or None when the file ends or a line is not a number."""
        line = self._file.readline()
        if not line:
            return None
        return _parse_i32(line.rstrip("\n"))

    def __iter__(self) -> Iterator[int]:
        while (number := self.resume()) is not None:
            yield number

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> ReadCoroutine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class WriteCoroutine:
    """Appends one number per line to a file each time it is resumed."""

    def __init__(self, path: str | Path) -> None:
        self._file = open(path, "a", encoding="utf-8", buffering=1)

    def resume(self, value: int) -> CoroutineState:
        self._file.write(f"{value}\n")
        return CoroutineState.YIELDED

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> WriteCoroutine:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CoroutineManager:
    """Pipes numbers from a reader coroutine into a writer coroutine."""

    def __init__(self, read_path: str | Path, write_path: str | Path) -> None:
        self._reader = ReadCoroutine(read_path)
        try:
            self._writer = WriteCoroutine(write_path)
        except BaseException:
            self._reader.close()
            raise

    def run(self) -> None:
        for number in self._reader:
            self._writer.resume(number)

    def close(self) -> None:
        self._reader.close()
        self._writer.close()

    def __enter__(self) -> CoroutineManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def read_numbers(path: str | Path) -> Iterator[int]:
    """Yield the leading numbers of a file, stopping at the first line that is not one."""
    with ReadCoroutine(path) as reader:
        yield from reader


def append_number_to_file(number: int, path: str | Path = "numbers.txt") -> None:
    """Open the file, append one number on its own line, and close it again."""
    with open(path, "a", encoding="utf-8") as handle:
        handle.write(f"{number}\n")


class _RandomSource(Protocol):
    def randint(self, a: int, b: int) -> int: ...


class RandCoroutine:
    """Yields a fresh random value between 0 and 10 on every resume."""

    def __init__(self, rng: _RandomSource | None = None) -> None:
        self._rng = rng if rng is not None else random.Random()
        self.value = 0
        self.live = True
        self.generate()

    def generate(self) -> None:
        self.value = self._rng.randint(0, 10)

    def resume(self) -> int:
        self.generate()
        return self.value


def run_until_low(coroutines: Iterable[RandCoroutine]) -> int:
    """Resume live coroutines round-robin until each has produced a value below 9.

    Returns the sum of every value produced.
    """
    pool = list(coroutines)
    total = 0
    while True:
        live = [coroutine for coroutine in pool if coroutine.live]
        if not live:
            return total
        for coroutine in live:
            total += coroutine.resume()
            if coroutine.value < 9:
                coroutine.live = False


class _Awaitable:
    """Lets a resumable coroutine be awaited: it yields control until complete."""

    def resume(self) -> CoroutineState:  # pragma: no cover - overridden
        raise NotImplementedError

    def __await__(self) -> Generator[Any, None, None]:
        while self.resume() is CoroutineState.YIELDED:
            yield


class SleepCoroutine(_Awaitable):
    """Completes once the given number of seconds has passed since creation."""

    def __init__(self, duration: float) -> None:
        self.start = time.monotonic()
        self.duration = duration

    def resume(self) -> CoroutineState:
        if time.monotonic() - self.start >= self.duration:
            return CoroutineState.COMPLETE
        return CoroutineState.YIELDED


class CoroutineExecutor:
    """Round-robin queue of coroutines that are resumed until they complete."""

    def __init__(self) -> None:
        self._coroutines: deque[Any] = deque()

    def add(self, coroutine: Any) -> None:
        self._coroutines.append(coroutine)

    def poll(self) -> None:
        """Resume the front coroutine; requeue it if it yielded.

        Raises IndexError when there is nothing to poll.
        """
        coroutine = self._coroutines.popleft()
        if coroutine.resume() is CoroutineState.YIELDED:
            self._coroutines.append(coroutine)

    def __len__(self) -> int:
        return len(self._coroutines)


class SharedCounter:
    """A counter guarded by a lock; holding it with ``with`` blocks other writers."""

    def __init__(self, value: int = 0) -> None:
        self.value = value
        self.lock = threading.Lock()

    def __enter__(self) -> SharedCounter:
        self.lock.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.lock.release()


class MutexCoroutine(_Awaitable):
    """Increments a shared counter when its lock is free; completes after `threshold` increments."""

    def __init__(self, handle: SharedCounter, threshold: int) -> None:
        self.handle = handle
        self.threshold = threshold

    def resume(self) -> CoroutineState:
        if self.threshold <= 0:
            raise RuntimeError("coroutine has already completed")
        if not self.handle.lock.acquire(blocking=False):
            return CoroutineState.YIELDED
        try:
            self.handle.value += 1
        finally:
            self.handle.lock.release()
        self.threshold -= 1
        if self.threshold == 0:
            return CoroutineState.COMPLETE
        return CoroutineState.YIELDED
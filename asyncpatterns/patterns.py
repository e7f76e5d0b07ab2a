"""Small async design patterns: decorators, circuit breaking, retries, state machines, waterfalls."""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from collections.abc import Awaitable, Callable, Coroutine, Generator
from typing import Any, Generic, TypeVar

_log = logging.getLogger(__name__)

T = TypeVar("T")

_POLL_MESSAGE = "Polling the future!"


class HelloWorld:
    """The plain greeting."""

    def greet(self) -> str:
        return "Hello, World!"


class ExcitedGreeting:
    """Decorates any greeter with extra enthusiasm."""

    def __init__(self, inner: Any) -> None:
        self.inner = inner

    def greet(self) -> str:
        return self.inner.greet() + " I'm so excited to be here!"


class LoggingFuture(Generic[T]):
    """Wraps an awaitable and calls ``log`` every time it is polled."""

    def __init__(self, inner: Awaitable[T], log: Callable[[], None] | None = None) -> None:
        self.inner = inner
        self.log = log if log is not None else functools.partial(print, _POLL_MESSAGE)

    def __await__(self) -> Generator[Any, Any, T]:
        iterator = self.inner.__await__()
        to_send: Any = None
        error: BaseException | None = None
        while True:
            self.log()
            try:
                signal = iterator.throw(error) if error is not None else iterator.send(to_send)
            except StopIteration as done:
                return done.value
            to_send, error = None, None
            try:
                to_send = yield signal
            except GeneratorExit:
                iterator.close()
                raise
            except BaseException as exc:
                error = exc


class CircuitOpenError(Exception):
    """Raised when a task is refused because the circuit is open."""


class CircuitBreaker:
    """Refuses new tasks once ``threshold`` errors have been recorded."""

    def __init__(self, threshold: int = 3) -> None:
        if threshold < 1:
            raise ValueError("threshold must be at least 1")
        self.threshold = threshold
        self.open = False
        self._count = 0

    def spawn_task(self, coroutine: Coroutine[Any, Any, T]) -> asyncio.Task[T]:
        """Schedule the coroutine on the running loop unless the circuit is open."""
        if self.open:
            coroutine.close()
            raise CircuitOpenError("Circuit Open")
        return asyncio.get_running_loop().create_task(coroutine)

    def record_error(self) -> None:
        count = self._count
        self._count += 1
        if count == self.threshold - 1:
            _log.warning("opening circuit")
            self.open = True


async def retry(
    operation: Callable[[], Awaitable[T]],
    attempts: int = 5,
    initial_delay: float = 1.0,
) -> T:
    """Call ``operation`` until it succeeds, doubling the wait after each failure.

    Re-raises the last error once ``attempts`` calls have failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")
    delay = initial_delay
    count = 0
    while True:
        try:
            return await operation()
        except Exception as err:
            _log.warning("Error: %s", err)
            count += 1
            if count == attempts:
                raise
        await asyncio.sleep(delay)
        delay *= 2


class State(enum.Enum):
    ON = "on"
    OFF = "off"


class Event(enum.Enum):
    SWITCH_ON = "switch_on"
    SWITCH_OFF = "switch_off"


async def transition(state: State, event: Event) -> State:
    """Return the state after ``event``; unmatched events leave it unchanged."""
    if state is State.ON and event is Event.SWITCH_OFF:
        _log.info("Transitioning to the Off state")
        return State.OFF
    if state is State.OFF and event is Event.SWITCH_ON:
        _log.info("Transitioning to the On state")
        return State.ON
    _log.info("No transition possible, staying in the current state")
    return state


async def _task1() -> str:
    return "Task 1 completed"


async def _task2(previous: str) -> str:
    return f"{previous} then Task 2 completed"


async def _task3(previous: str) -> str:
    return f"{previous} and finally Task 3 completed"


async def run_waterfall() -> str:
    """Run three tasks in sequence, each taking the previous one's output."""
    return await _task3(await _task2(await _task1()))


async def _first_value() -> int:
    return 5


async def _double(value: int) -> int:
    return value * 2


async def _decrement(value: int) -> int:
    return value - 1


async def run_waterfall_logic() -> int:
    """Run a sequence whose second step depends on the first step's result."""
    first = await _first_value()
    if first > 10:
        return await _double(first)
    return await _decrement(first)
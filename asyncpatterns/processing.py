"""Business logic that depends on an injected process handle, so it can be tested with mocks."""

from __future__ import annotations

import logging
from collections.abc import Awaitable
from typing import Any, Protocol

_log = logging.getLogger(__name__)

LIMIT = 10


class AsyncProcess(Protocol):
    """Starts work for an input and later returns its result by key."""

    def spawn(self, value: Any) -> Any: ...

    def get_result(self, key: Any) -> Any: ...


class _AsyncResultSource(Protocol):
    def get_result(self, key: Any) -> Awaitable[int]: ...


class ResultTooBigError(ValueError):
    """Raised when a result is above the allowed limit."""


def _finish(result: int) -> int:
    if result > LIMIT:
        raise ResultTooBigError("result is too big")
    if result == 8:
        return result * 2
    return result * 3


def do_something(handle: AsyncProcess, value: int) -> int:
    """Start work for ``value``, fetch its result and scale it.

    Raises ResultTooBigError if the result is above 10; errors from the handle propagate.
    """
    key = handle.spawn(value)
    _log.info("something is happening")
    return _finish(handle.get_result(key))


async def do_something_async(handle: _AsyncResultSource, value: int) -> int:
    """Await the result for ``value`` and scale it like ``do_something``."""
    _log.info("something is happening")
    return _finish(await handle.get_result(value))
import asyncio
from unittest import mock

import pytest

from asyncpatterns.patterns import (
    CircuitBreaker,
    CircuitOpenError,
    Event,
    ExcitedGreeting,
    HelloWorld,
    LoggingFuture,
    State,
    retry,
    run_waterfall,
    run_waterfall_logic,
    transition,
)


def test_hello_world_greets():
    assert HelloWorld().greet() == "Hello, World!"


def test_excited_greeting_extends_inner():
    plain = HelloWorld().greet()
    excited = ExcitedGreeting(HelloWorld()).greet()
    assert excited.startswith(plain)
    assert len(excited) > len(plain)


def test_excited_greeting_stacks():
    once = ExcitedGreeting(HelloWorld()).greet()
    twice = ExcitedGreeting(ExcitedGreeting(HelloWorld())).greet()
    suffix = once[len(HelloWorld().greet()):]
    assert twice == once + suffix


@pytest.mark.asyncio
async def test_logging_future_logs_each_poll_and_returns_result():
    calls = []

    async def compute():
        return "Result of async computation"

    result = await LoggingFuture(compute(), lambda: calls.append(1))
    assert result == "Result of async computation"
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_logging_future_logs_every_resume():
    calls = []

    async def compute():
        await asyncio.sleep(0)
        return 7

    assert await LoggingFuture(compute(), lambda: calls.append(1)) == 7
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_logging_future_propagates_errors():
    async def fail():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        await LoggingFuture(fail(), lambda: None)


@pytest.mark.asyncio
async def test_circuit_breaker_opens_after_threshold():
    breaker = CircuitBreaker(threshold=3)

    async def passing():
        return "passed"

    assert await breaker.spawn_task(passing()) == "passed"
    breaker.record_error()
    breaker.record_error()
    assert breaker.open is False
    assert await breaker.spawn_task(passing()) == "passed"
    breaker.record_error()
    assert breaker.open is True
    with pytest.raises(CircuitOpenError, match="Circuit Open"):
        breaker.spawn_task(passing())


def test_circuit_breaker_rejects_bad_threshold():
    with pytest.raises(ValueError):
        CircuitBreaker(threshold=0)


@pytest.mark.asyncio
async def test_retry_returns_after_failures():
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise OSError("Error")
        return "data"

    assert await retry(flaky, attempts=5, initial_delay=0) == "data"
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_retry_gives_up_and_doubles_delay():
    calls = []

    async def always_fail():
        calls.append(1)
        raise OSError("Error")

    with mock.patch("asyncio.sleep", new=mock.AsyncMock()) as sleep:
        with pytest.raises(OSError, match="Error"):
            await retry(always_fail, attempts=5, initial_delay=1.0)
    assert len(calls) == 5
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0, 8.0]


@pytest.mark.asyncio
async def test_state_machine_transitions():
    state = State.ON
    state = await transition(state, Event.SWITCH_OFF)
    assert state is State.OFF
    state = await transition(state, Event.SWITCH_ON)
    assert state is State.ON
    state = await transition(state, Event.SWITCH_ON)
    assert state is State.ON


@pytest.mark.asyncio
async def test_state_machine_ignores_repeat_off():
    assert await transition(State.OFF, Event.SWITCH_OFF) is State.OFF


@pytest.mark.asyncio
async def test_waterfall_chains_outputs():
    result = await run_waterfall()
    assert result == "Task 1 completed then Task 2 completed and finally Task 3 completed"


@pytest.mark.asyncio
async def test_waterfall_logic_takes_small_branch():
    assert await run_waterfall_logic() == 4
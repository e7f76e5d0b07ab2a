import asyncio

import pytest

from asyncpatterns.coroutines import (
    CoroutineExecutor,
    CoroutineManager,
    CoroutineState,
    MutexCoroutine,
    RandCoroutine,
    ReadCoroutine,
    SharedCounter,
    SleepCoroutine,
    WriteCoroutine,
    append_number_to_file,
    read_numbers,
    run_until_low,
)


class ScriptedRng:
    def __init__(self, values):
        self._values = iter(values)

    def randint(self, a, b):
        return next(self._values)


def _write(path, text):
    path.write_text(text, encoding="utf-8")
    return path


def test_mutex_coroutine_basic():
    counter = SharedCounter(0)
    first = MutexCoroutine(counter, 2)
    second = MutexCoroutine(counter, 2)

    with counter:
        for _ in range(3):
            assert first.resume() is CoroutineState.YIELDED
            assert second.resume() is CoroutineState.YIELDED
        assert counter.value == 0

    assert first.resume() is CoroutineState.YIELDED
    assert counter.value == 1
    assert second.resume() is CoroutineState.YIELDED
    assert counter.value == 2
    assert first.resume() is CoroutineState.COMPLETE
    assert counter.value == 3
    assert second.resume() is CoroutineState.COMPLETE
    assert counter.value == 4


@pytest.mark.asyncio
async def test_mutex_coroutine_async():
    counter = SharedCounter(0)
    first = MutexCoroutine(counter, 2)
    second = MutexCoroutine(counter, 2)

    async def drive(coroutine):
        await coroutine

    await asyncio.gather(asyncio.create_task(drive(first)), asyncio.create_task(drive(second)))
    assert counter.value == 4


def test_mutex_coroutine_resume_after_complete_raises():
    coroutine = MutexCoroutine(SharedCounter(), 1)
    assert coroutine.resume() is CoroutineState.COMPLETE
    with pytest.raises(RuntimeError):
        coroutine.resume()


def test_read_coroutine_stops_at_non_number(tmp_path):
    path = _write(tmp_path / "data.txt", "1\n2\nx\n4\n")
    with ReadCoroutine(path) as reader:
        assert list(reader) == [1, 2]


def test_read_coroutine_resume_reports_end(tmp_path):
    path = _write(tmp_path / "data.txt", "7\n")
    with ReadCoroutine(path) as reader:
        assert reader.resume() == 7
        assert reader.resume() is None


@pytest.mark.parametrize(
    "line, expected",
    [("-5", -5), ("+3", 3), (" 7", None), ("1_000", None), ("2147483647", 2147483647), ("2147483648", None)],
)
def test_read_coroutine_parses_strict_i32(tmp_path, line, expected):
    path = _write(tmp_path / "data.txt", line + "\n")
    with ReadCoroutine(path) as reader:
        assert reader.resume() == expected


def test_read_coroutine_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ReadCoroutine(tmp_path / "missing.txt")


def test_read_numbers_generator(tmp_path):
    path = _write(tmp_path / "data.txt", "10\n20\r\n30\n")
    assert list(read_numbers(path)) == [10, 20, 30]


def test_write_coroutine_appends(tmp_path):
    path = _write(tmp_path / "out.txt", "1\n")
    with WriteCoroutine(path) as writer:
        assert writer.resume(2) is CoroutineState.YIELDED
        writer.resume(-3)
    assert path.read_text(encoding="utf-8") == "1\n2\n-3\n"


def test_append_number_to_file_round_trip(tmp_path):
    path = tmp_path / "numbers.txt"
    for number in (4, 5, 6):
        append_number_to_file(number, path)
    assert list(read_numbers(path)) == [4, 5, 6]


def test_coroutine_manager_copies_numbers(tmp_path):
    source = _write(tmp_path / "numbers.txt", "3\n1\n4\nend\n9\n")
    target = tmp_path / "output.txt"
    with CoroutineManager(source, target) as manager:
        manager.run()
    assert target.read_text(encoding="utf-8") == "3\n1\n4\n"


def test_rand_coroutine_range():
    import random

    coroutine = RandCoroutine(random.Random(1))
    values = [coroutine.resume() for _ in range(200)]
    assert all(0 <= value <= 10 for value in values)
    assert coroutine.value == values[-1]
    assert coroutine.live is True


def test_rand_coroutine_generates_on_creation():
    coroutine = RandCoroutine(ScriptedRng([6, 2]))
    assert coroutine.value == 6
    assert coroutine.resume() == 2


def test_run_until_low_sums_until_all_dead():
    first = RandCoroutine(ScriptedRng([5, 9, 10, 3]))
    second = RandCoroutine(ScriptedRng([0, 1]))
    total = run_until_low([first, second])
    assert total == 23
    assert not first.live and not second.live


def test_sleep_coroutine_states():
    assert SleepCoroutine(0.0).resume() is CoroutineState.COMPLETE
    assert SleepCoroutine(60.0).resume() is CoroutineState.YIELDED


def test_executor_drains_completed():
    executor = CoroutineExecutor()
    for _ in range(3):
        executor.add(SleepCoroutine(0.0))
    assert len(executor) == 3
    while len(executor):
        executor.poll()
    assert len(executor) == 0


def test_executor_requeues_pending():
    executor = CoroutineExecutor()
    executor.add(SleepCoroutine(60.0))
    executor.add(SleepCoroutine(0.0))
    executor.poll()
    assert len(executor) == 2
    executor.poll()
    assert len(executor) == 1


def test_executor_poll_empty_raises():
    with pytest.raises(IndexError):
        CoroutineExecutor().poll()


@pytest.mark.asyncio
async def test_sleep_coroutine_awaitable():
    coroutine = SleepCoroutine(0.01)
    await coroutine
    assert coroutine.resume() is CoroutineState.COMPLETE
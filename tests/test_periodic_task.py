import asyncio

import pytest

from services.scheduler.PeriodicTask import PeriodicTask


class Counter:
    def __init__(self, fail_first: int = 0):
        self.calls = 0
        self.fail_first = fail_first

    async def __call__(self) -> None:
        self.calls += 1
        if self.calls <= self.fail_first:
            raise RuntimeError("tick failed")


@pytest.mark.asyncio
async def test_runs_repeatedly_until_stopped(helper_config):
    action = Counter()
    task = PeriodicTask(helper_config=helper_config, name="tick", interval_seconds=0.01, action=action)

    task.start()
    await asyncio.sleep(0.1)
    await task.stop()
    calls = action.calls
    await asyncio.sleep(0.05)

    assert calls >= 2
    assert action.calls == calls
    assert not task.is_running


@pytest.mark.asyncio
async def test_a_failing_run_does_not_stop_the_loop(helper_config):
    action = Counter(fail_first=1)
    task = PeriodicTask(helper_config=helper_config, name="flaky", interval_seconds=0.01, action=action)

    task.start()
    await asyncio.sleep(0.1)
    await task.stop()

    assert task.failures == 1
    assert task.runs == action.calls
    assert action.calls >= 2


@pytest.mark.asyncio
async def test_non_positive_interval_disables_the_task(helper_config):
    action = Counter()
    task = PeriodicTask(helper_config=helper_config, name="off", interval_seconds=0, action=action)

    task.start()
    await asyncio.sleep(0.02)

    assert not task.is_running
    assert action.calls == 0
    await task.stop()


@pytest.mark.asyncio
async def test_start_is_idempotent_and_can_run_immediately(helper_config):
    action = Counter()
    task = PeriodicTask(helper_config=helper_config, name="once", interval_seconds=60, action=action, run_immediately=True)

    task.start()
    first = task._task
    task.start()
    await asyncio.sleep(0.02)

    assert task._task is first
    assert action.calls == 1
    await task.stop()


@pytest.mark.asyncio
async def test_run_once_reports_failure(helper_config):
    task = PeriodicTask(helper_config=helper_config, name="manual", interval_seconds=60, action=Counter(fail_first=1))

    assert await task.run_once() is False
    assert await task.run_once() is True
    assert (task.runs, task.failures) == (2, 1)


@pytest.mark.asyncio
async def test_stop_cancels_a_tick_that_outlives_the_grace_period(helper_config):
    cancelled = asyncio.Event()

    async def stuck() -> None:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise

    task = PeriodicTask(
        helper_config=helper_config,
        name="stuck",
        interval_seconds=60,
        action=stuck,
        run_immediately=True,
        stop_grace_seconds=0.05,
    )
    task.start()
    await asyncio.sleep(0.01)

    await asyncio.wait_for(task.stop(), timeout=1)

    assert cancelled.is_set()
    assert not task.is_running
    assert task.status()["is_running"] is False


@pytest.mark.asyncio
async def test_stop_lets_a_short_tick_finish(helper_config):
    finished = []

    async def short() -> None:
        await asyncio.sleep(0.02)
        finished.append(True)

    task = PeriodicTask(
        helper_config=helper_config,
        name="short",
        interval_seconds=60,
        action=short,
        run_immediately=True,
        stop_grace_seconds=1,
    )
    task.start()
    await asyncio.sleep(0.005)
    await task.stop()

    assert finished == [True]
    assert (task.runs, task.failures) == (1, 0)

import asyncio

import pytest
from meshguard.scheduler import PeriodicTask


@pytest.mark.asyncio
async def test_runs_repeatedly_until_stopped():
    calls = []
    task = PeriodicTask("counter", 0.01, lambda: calls.append(1))

    task.start()
    await asyncio.sleep(0.1)
    await task.stop()

    assert len(calls) >= 2
    assert task.runs == len(calls)
    assert not task.running


@pytest.mark.asyncio
async def test_failures_do_not_stop_loop():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("first run fails")

    task = PeriodicTask("flaky", 0.01, flaky)
    task.start()
    await asyncio.sleep(0.1)
    await task.stop()

    assert task.failures == 1
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_runs_never_overlap_and_stop_waits():
    active = 0
    max_active = 0
    finished = []

    async def slow():
        nonlocal active, max_active
        active += 1
        max_active = max(max_active, active)
        await asyncio.sleep(0.05)
        active -= 1
        finished.append(1)

    task = PeriodicTask("slow", 0.001, slow)
    task.start()
    await asyncio.sleep(0.02)
    await task.stop()

    assert max_active == 1
    assert active == 0
    assert len(finished) == task.runs


@pytest.mark.asyncio
async def test_start_is_idempotent_and_stop_safe_when_idle():
    task = PeriodicTask("idle", 10, lambda: None)

    await task.stop()
    task.start()
    task.start()
    await asyncio.sleep(0.01)
    await task.stop()

    assert task.runs == 1


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        PeriodicTask("bad", 0, lambda: None)

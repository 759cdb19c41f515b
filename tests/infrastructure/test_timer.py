import asyncio

import pytest

from flashsync.infrastructure.timer import PeriodicTimer


@pytest.mark.asyncio
async def test_timer_fires_repeatedly_until_cancelled():
    ticks = []

    async def callback():
        ticks.append(len(ticks))

    timer = PeriodicTimer(0.01, callback)
    timer.start()
    assert timer.running
    await asyncio.sleep(0.1)
    await timer.cancel()

    assert len(ticks) >= 2
    assert not timer.running
    seen = len(ticks)
    await asyncio.sleep(0.05)
    assert len(ticks) == seen


@pytest.mark.asyncio
async def test_failing_callback_does_not_stop_timer():
    calls = 0

    async def callback():
        nonlocal calls
        calls += 1
        raise RuntimeError("tick failed")

    timer = PeriodicTimer(0.01, callback)
    timer.start()
    await asyncio.sleep(0.1)
    await timer.cancel()

    assert calls >= 2


@pytest.mark.asyncio
async def test_cancel_before_start_is_noop():
    async def callback():
        pass

    timer = PeriodicTimer(1, callback)
    await timer.cancel()
    assert not timer.running


def test_interval_must_be_positive():
    async def callback():
        pass

    with pytest.raises(ValueError):
        PeriodicTimer(0, callback)

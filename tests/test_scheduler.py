"""Tests for refresh timers."""

import asyncio

from connected_bridge.scheduler import Debouncer, PeriodicTask, RefreshScheduler


class Counter:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


async def test_burst_fires_once_after_last_trigger():
    counter = Counter()
    debouncer = Debouncer(0.05, counter)
    for _ in range(5):
        debouncer.trigger()
        await asyncio.sleep(0.01)
    assert counter.calls == 0
    assert debouncer.pending

    await asyncio.sleep(0.1)
    assert counter.calls == 1
    assert debouncer.fired == 1
    assert not debouncer.pending


async def test_separate_bursts_fire_separately():
    counter = Counter()
    debouncer = Debouncer(0.01, counter)
    debouncer.trigger()
    await asyncio.sleep(0.05)
    debouncer.trigger()
    await asyncio.sleep(0.05)
    assert counter.calls == 2


async def test_cancel_prevents_firing():
    counter = Counter()
    debouncer = Debouncer(0.02, counter)
    debouncer.trigger()
    debouncer.cancel()
    await asyncio.sleep(0.05)
    assert counter.calls == 0


async def test_trigger_does_not_cancel_running_callback():
    started = asyncio.Event()
    release = asyncio.Event()
    finished = []

    async def slow():
        started.set()
        await release.wait()
        finished.append(True)

    debouncer = Debouncer(0.01, slow)
    debouncer.trigger()
    await asyncio.wait_for(started.wait(), 1)
    debouncer.trigger()
    release.set()
    await asyncio.sleep(0.05)
    assert finished == [True, True]
    await debouncer.shutdown()


async def test_callback_errors_are_contained():
    async def broken():
        raise RuntimeError("boom")

    debouncer = Debouncer(0.01, broken)
    debouncer.trigger()
    await asyncio.sleep(0.05)
    debouncer.trigger()
    await asyncio.sleep(0.05)
    assert debouncer.fired == 2


async def test_periodic_task():
    counter = Counter()
    task = PeriodicTask(0.01, counter)
    task.start()
    task.start()
    await asyncio.sleep(0.055)
    await task.stop()
    calls = counter.calls
    assert calls >= 2
    await asyncio.sleep(0.03)
    assert counter.calls == calls
    assert not task.is_running


async def test_device_changed_debounces():
    counter = Counter()
    scheduler = RefreshScheduler(counter, debounce_delay=0.02)
    scheduler.device_changed()
    scheduler.device_changed()
    await asyncio.sleep(0.06)
    assert counter.calls == 1
    await scheduler.shutdown()


async def test_media_polling_replaces_previous():
    first, second = Counter(), Counter()
    scheduler = RefreshScheduler(Counter(), media_interval=0.01)
    await scheduler.start_media_polling(first)
    await scheduler.start_media_polling(second)
    await asyncio.sleep(0.035)
    await scheduler.stop_media_polling()
    assert first.calls == 0
    assert second.calls >= 1
    assert not scheduler.media_polling


async def test_post_send_refresh_runs_after_delay():
    counter = Counter()
    scheduler = RefreshScheduler(Counter(), post_send_delay=0.01)
    task = scheduler.schedule_after_send(4, counter)
    assert counter.calls == 0
    await task
    assert counter.calls == 1


async def test_post_send_replaces_pending_for_same_thread():
    first, second = Counter(), Counter()
    scheduler = RefreshScheduler(Counter(), post_send_delay=0.02)
    scheduler.schedule_after_send(4, first)
    task = scheduler.schedule_after_send(4, second)
    await task
    await asyncio.sleep(0.03)
    assert (first.calls, second.calls) == (0, 1)


async def test_shutdown_cancels_everything():
    counter = Counter()
    scheduler = RefreshScheduler(counter, debounce_delay=0.01, media_interval=0.01, post_send_delay=0.01)
    scheduler.device_changed()
    await scheduler.start_media_polling(counter)
    scheduler.schedule_after_send(1, counter)
    await scheduler.shutdown()
    await asyncio.sleep(0.03)
    assert counter.calls == 0

"""Timers that drive refreshes: device-change debounce, media polling, post-send refresh."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)

SIGNAL_REFRESH_DEBOUNCE = 3.0
MEDIA_REFRESH_INTERVAL = 2.0
POST_SEND_DELAY = 2.0

Callback = Callable[[], Awaitable[None]]


async def _run_callback(callback: Callback, name: str) -> None:
    # Background timers have no caller to report to; log and keep going.
    try:
        await callback()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"{name} callback failed: {e}", exc_info=True)


class Debouncer:
    """Collapse a burst of triggers into one callback run.

    Each ``trigger()`` re-arms the timer; the callback runs once ``delay``
    seconds after the last trigger. A callback already running is never
    cancelled by a new trigger.
    """

    def __init__(self, delay: float, callback: Callback, name: str = "debounce"):
        self.delay = delay
        self.callback = callback
        self.name = name
        self.fired = 0
        self._timer: asyncio.Task | None = None
        self._running: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def trigger(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.create_task(self._fire(), name=f"{self.name}-timer")

    async def _fire(self) -> None:
        await asyncio.sleep(self.delay)
        task = asyncio.current_task()
        if self._timer is task:
            self._timer = None
        self._running.add(task)
        try:
            self.fired += 1
            logger.debug(f"{self.name}: firing")
            await _run_callback(self.callback, self.name)
        finally:
            self._running.discard(task)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def shutdown(self) -> None:
        self.cancel()
        tasks = list(self._running)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class PeriodicTask:
    """Run a callback every ``interval`` seconds until stopped."""

    def __init__(self, interval: float, callback: Callback, name: str = "periodic"):
        self.interval = interval
        self.callback = callback
        self.name = name
        self._task: asyncio.Task | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._loop(), name=self.name)

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await _run_callback(self.callback, self.name)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)


class RefreshScheduler:
    """Owns every refresh timer of the bridge.

    Only media polling is periodic; device refreshes are driven by change
    signals through the debouncer.
    """

    def __init__(
        self,
        refresh_devices: Callback,
        debounce_delay: float = SIGNAL_REFRESH_DEBOUNCE,
        media_interval: float = MEDIA_REFRESH_INTERVAL,
        post_send_delay: float = POST_SEND_DELAY,
    ):
        self.devices = Debouncer(debounce_delay, refresh_devices, name="device-refresh")
        self.media_interval = media_interval
        self.post_send_delay = post_send_delay
        self._media: PeriodicTask | None = None
        self._post_send: dict[int, asyncio.Task] = {}

    def device_changed(self) -> None:
        self.devices.trigger()

    @property
    def media_polling(self) -> bool:
        return self._media is not None and self._media.is_running

    async def start_media_polling(self, callback: Callback) -> None:
        """Poll ``callback`` every media interval, replacing any previous poller."""
        await self.stop_media_polling()
        self._media = PeriodicTask(self.media_interval, callback, name="media-refresh")
        self._media.start()

    async def stop_media_polling(self) -> None:
        media, self._media = self._media, None
        if media is not None:
            await media.stop()

    def schedule_after_send(self, thread_id: int, callback: Callback) -> asyncio.Task:
        """Refresh a thread once the phone has had time to store the sent message."""
        previous = self._post_send.pop(thread_id, None)
        if previous is not None:
            previous.cancel()
        task = asyncio.create_task(self._after_send(thread_id, callback), name=f"post-send-{thread_id}")
        self._post_send[thread_id] = task
        return task

    async def _after_send(self, thread_id: int, callback: Callback) -> None:
        try:
            await asyncio.sleep(self.post_send_delay)
            await _run_callback(callback, f"post-send refresh of thread {thread_id}")
        finally:
            if self._post_send.get(thread_id) is asyncio.current_task():
                del self._post_send[thread_id]

    async def shutdown(self) -> None:
        await self.devices.shutdown()
        await self.stop_media_polling()
        tasks = list(self._post_send.values())
        self._post_send.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

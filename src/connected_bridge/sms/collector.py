"""Signal-driven collection of SMS conversations and thread messages.

The phone answers requests asynchronously with a burst of
``conversationCreated`` / ``conversationUpdated`` signals and no reliable
end marker. Collection therefore subscribes first, issues the request, and
keeps folding signals until either nothing has arrived for a short while
(activity timeout) or an overall deadline passes. Timeouts are not errors:
whatever was gathered is returned, tagged ``timed_out``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from connected_bridge.bus.proxies import ConversationsProxy, ProxyFactory
from connected_bridge.bus.proxy import Signal, SignalSubscription
from connected_bridge.exceptions import BusError, TransportUnavailableError
from connected_bridge.sms.cache import ThreadCache
from connected_bridge.sms.models import ConversationSummary, SmsMessage
from connected_bridge.sms.parser import parse_conversations, parse_messages, parse_sms_message

logger = logging.getLogger(__name__)

CONVERSATION_TIMEOUT_CACHED_MS = 3_000
CONVERSATION_TIMEOUT_INITIAL_MS = 15_000
MESSAGE_FETCH_TIMEOUT_MS = 10_000
SIGNAL_ACTIVITY_TIMEOUT_MS = 500
TIMEOUT_CHECK_INTERVAL_MS = 50
SIGNAL_DRAIN_TIMEOUT_MS = 5
FALLBACK_POLLING_INTERVAL_MS = 500
FALLBACK_POLLING_DELAYS_MS = (500, 1000, 1500, 2000, 3000)
MESSAGE_FALLBACK_ATTEMPTS = 5
SUBSCRIBE_ATTEMPTS = 2


class CollectionPhase(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    COLLECTING = "collecting"
    DRAINING = "draining"
    DONE = "done"
    TIMEOUT = "timeout"

    @property
    def finished(self) -> bool:
        return self in (CollectionPhase.DONE, CollectionPhase.TIMEOUT)


@dataclass
class SignalCollection:
    """Clock-free state machine for one collection; all times in ms.

    The activity timeout only runs once the first signal has arrived, so a
    slow phone is bounded by the overall deadline alone.
    """

    overall_timeout_ms: int
    activity_timeout_ms: int = SIGNAL_ACTIVITY_TIMEOUT_MS
    drain_timeout_ms: int = SIGNAL_DRAIN_TIMEOUT_MS
    phase: CollectionPhase = CollectionPhase.IDLE
    started_at: int | None = None
    last_activity: int | None = None
    drain_started: int | None = None
    signal_count: int = 0

    def request(self, now: int) -> None:
        if self.phase is CollectionPhase.IDLE:
            self.phase = CollectionPhase.REQUESTING
            self.started_at = now

    def start(self, now: int) -> None:
        if self.phase in (CollectionPhase.IDLE, CollectionPhase.REQUESTING):
            if self.started_at is None:
                self.started_at = now
            self.phase = CollectionPhase.COLLECTING

    def record_activity(self, now: int) -> None:
        self.signal_count += 1
        if self.phase is CollectionPhase.COLLECTING:
            self.last_activity = now

    def complete(self, now: int) -> None:
        """The remote signalled the end of the batch; drain and finish."""
        if self.phase is CollectionPhase.COLLECTING:
            self.phase = CollectionPhase.DRAINING
            self.drain_started = now

    @property
    def overall_deadline(self) -> int | None:
        if self.started_at is None:
            return None
        return self.started_at + self.overall_timeout_ms

    @property
    def activity_deadline(self) -> int | None:
        if self.last_activity is None:
            return None
        return self.last_activity + self.activity_timeout_ms

    @property
    def drain_deadline(self) -> int | None:
        if self.drain_started is None:
            return None
        return self.drain_started + self.drain_timeout_ms

    def next_deadline(self) -> int | None:
        if self.phase is CollectionPhase.COLLECTING:
            deadlines = [d for d in (self.overall_deadline, self.activity_deadline) if d is not None]
            return min(deadlines) if deadlines else None
        if self.phase is CollectionPhase.DRAINING:
            return self.drain_deadline
        return None

    def check(self, now: int) -> CollectionPhase:
        """Advance on elapsed time and return the current phase."""
        if self.phase is CollectionPhase.COLLECTING:
            overall = self.overall_deadline
            activity = self.activity_deadline
            if activity is not None and now >= activity and (overall is None or activity <= overall):
                self.phase = CollectionPhase.DRAINING
                self.drain_started = activity
            elif overall is not None and now >= overall:
                self.phase = CollectionPhase.TIMEOUT
        if self.phase is CollectionPhase.DRAINING and now >= self.drain_deadline:
            self.phase = CollectionPhase.DONE
        return self.phase

    def finish_drain(self, now: int) -> None:
        if self.phase is CollectionPhase.DRAINING:
            self.phase = CollectionPhase.DONE


@dataclass
class ConversationBatch:
    conversations: list[ConversationSummary] = field(default_factory=list)
    timed_out: bool = False
    via_fallback: bool = False


@dataclass
class MessageBatch:
    thread_id: int
    messages: list[SmsMessage] = field(default_factory=list)
    timed_out: bool = False
    has_more: bool = False
    from_cache: bool = False
    via_fallback: bool = False


class _Clock:
    """Integer milliseconds since construction, on the loop's monotonic clock."""

    def __init__(self):
        self._loop = asyncio.get_running_loop()
        self._origin = self._loop.time()

    def now(self) -> int:
        return int((self._loop.time() - self._origin) * 1000)


def _sorted_conversations(conversations: dict[int, ConversationSummary]) -> list[ConversationSummary]:
    return sorted(conversations.values(), key=lambda c: c.timestamp, reverse=True)


class SmsCollector:
    """Loads conversation lists and thread messages from one daemon.

    Timings default to the production values; tests pass smaller ones.
    When a ``cache`` is given, opened threads are served from it until a
    change signal invalidates them.
    """

    def __init__(
        self,
        factory: ProxyFactory,
        cache: ThreadCache | None = None,
        *,
        cached_timeout_ms: int = CONVERSATION_TIMEOUT_CACHED_MS,
        initial_timeout_ms: int = CONVERSATION_TIMEOUT_INITIAL_MS,
        message_timeout_ms: int = MESSAGE_FETCH_TIMEOUT_MS,
        activity_timeout_ms: int = SIGNAL_ACTIVITY_TIMEOUT_MS,
        check_interval_ms: int = TIMEOUT_CHECK_INTERVAL_MS,
        drain_timeout_ms: int = SIGNAL_DRAIN_TIMEOUT_MS,
        fallback_delays_ms: tuple[int, ...] = FALLBACK_POLLING_DELAYS_MS,
        fallback_interval_ms: int = FALLBACK_POLLING_INTERVAL_MS,
        message_fallback_attempts: int = MESSAGE_FALLBACK_ATTEMPTS,
    ):
        self.factory = factory
        self.cache = cache
        self.cached_timeout_ms = cached_timeout_ms
        self.initial_timeout_ms = initial_timeout_ms
        self.message_timeout_ms = message_timeout_ms
        self.activity_timeout_ms = activity_timeout_ms
        self.check_interval_ms = check_interval_ms
        self.drain_timeout_ms = drain_timeout_ms
        self.fallback_delays_ms = tuple(fallback_delays_ms)
        self.fallback_interval_ms = fallback_interval_ms
        self.message_fallback_attempts = message_fallback_attempts

    def _new_collection(self, overall_timeout_ms: int) -> SignalCollection:
        return SignalCollection(
            overall_timeout_ms=overall_timeout_ms,
            activity_timeout_ms=self.activity_timeout_ms,
            drain_timeout_ms=self.drain_timeout_ms,
        )

    async def _collect(
        self,
        subscription: SignalSubscription,
        collection: SignalCollection,
        clock: _Clock,
        fold: Callable[[Signal, int], None],
    ) -> CollectionPhase:
        """Fold signals into the caller's state until the collection finishes."""
        collection.start(clock.now())
        while True:
            now = clock.now()
            phase = collection.check(now)
            if phase.finished:
                break
            if phase is CollectionPhase.DRAINING:
                wait_ms = collection.drain_deadline - now
            else:
                wait_ms = self.check_interval_ms
                deadline = collection.next_deadline()
                if deadline is not None:
                    wait_ms = min(wait_ms, deadline - now)
            signal = await subscription.get(max(wait_ms, 0) / 1000)
            if signal is not None:
                fold(signal, clock.now())
            elif phase is CollectionPhase.DRAINING:
                collection.finish_drain(clock.now())

        # Anything already delivered still counts, even after a timeout.
        while True:
            signal = await subscription.get(0)
            if signal is None:
                break
            fold(signal, clock.now())
        return collection.phase

    # Conversations

    async def load_conversations(
        self,
        device_id: str,
        cached: list[ConversationSummary] | None = None,
    ) -> ConversationBatch:
        """Collect the latest summary of every conversation on ``device_id``.

        ``cached`` is the previous result, if any; it only shortens the
        overall deadline, so threads deleted on the phone drop out.

        Raises:
            PathError: ``device_id`` is not a valid path component.
            TransportUnavailableError: the session bus is gone.
        """
        proxy = self.factory.conversations(device_id)
        conversations: dict[int, ConversationSummary] = {}
        try:
            conversations.update(parse_conversations(await proxy.active_conversations()))
        except TransportUnavailableError:
            raise
        except BusError as e:
            logger.warning(f"Failed to read active conversations for {device_id}: {e}")

        overall = self.cached_timeout_ms if cached else self.initial_timeout_ms
        batch = None
        for attempt in range(1, SUBSCRIBE_ATTEMPTS + 1):
            try:
                batch = await self._conversations_via_signals(proxy, conversations, overall)
                break
            except TransportUnavailableError:
                raise
            except BusError as e:
                logger.warning(f"Signal-based conversation loading failed (attempt {attempt}): {e}")

        if batch is None:
            batch = await self._conversations_via_polling(proxy, conversations)

        logger.info(
            f"Loaded {len(batch.conversations)} conversations for {device_id}"
            f"{' (timed out)' if batch.timed_out else ''}{' (fallback)' if batch.via_fallback else ''}"
        )
        if self.cache is not None and batch.conversations:
            self.cache.retain(c.thread_id for c in batch.conversations)
        return batch

    async def _conversations_via_signals(
        self,
        proxy: ConversationsProxy,
        conversations: dict[int, ConversationSummary],
        overall_timeout_ms: int,
    ) -> ConversationBatch:
        collection = self._new_collection(overall_timeout_ms)
        clock = _Clock()

        def fold(signal: Signal, now: int) -> None:
            collection.record_activity(now)
            if signal.member == ConversationsProxy.LOADED or not signal.body:
                return
            message = parse_sms_message(signal.body[0])
            if message is None:
                logger.warning(f"Unparseable {signal.member} signal")
                return
            conversations[message.thread_id] = ConversationSummary.from_message(message)

        async with proxy.subscribe(
            ConversationsProxy.CREATED, ConversationsProxy.UPDATED, ConversationsProxy.LOADED
        ) as subscription:
            collection.request(clock.now())
            await proxy.request_all_conversation_threads()
            logger.debug(f"Collecting conversations, timeout {overall_timeout_ms}ms")
            phase = await self._collect(subscription, collection, clock, fold)

        return ConversationBatch(
            conversations=_sorted_conversations(conversations),
            timed_out=phase is CollectionPhase.TIMEOUT,
        )

    async def _conversations_via_polling(
        self,
        proxy: ConversationsProxy,
        conversations: dict[int, ConversationSummary],
    ) -> ConversationBatch:
        try:
            await proxy.request_all_conversation_threads()
        except TransportUnavailableError:
            raise
        except BusError as e:
            logger.warning(f"Fallback: failed to request conversation threads: {e}")

        found = False
        for attempt, delay_ms in enumerate(self.fallback_delays_ms, start=1):
            await asyncio.sleep(delay_ms / 1000)
            try:
                polled = parse_conversations(await proxy.active_conversations())
            except TransportUnavailableError:
                raise
            except BusError as e:
                logger.warning(f"Fallback attempt {attempt} failed: {e}")
                continue
            logger.debug(f"Fallback attempt {attempt}: found {len(polled)} conversations")
            if polled:
                conversations.update(polled)
                found = True
                break

        return ConversationBatch(
            conversations=_sorted_conversations(conversations),
            timed_out=not found,
            via_fallback=True,
        )

    # Messages

    async def load_messages(self, device_id: str, thread_id: int, limit: int = 10) -> MessageBatch:
        """Newest ``limit`` messages of a thread, from the cache when still valid."""
        if self.cache is not None:
            cached = self.cache.get(thread_id)
            if cached is not None:
                logger.debug(f"Thread {thread_id} served from cache ({len(cached)} messages)")
                return MessageBatch(
                    thread_id=thread_id,
                    messages=cached,
                    has_more=len(cached) >= limit,
                    from_cache=True,
                )

        batch = await self.fetch_messages(device_id, thread_id, 0, limit)
        if self.cache is not None and (batch.messages or not batch.timed_out):
            self.cache.put(thread_id, batch.messages)
        return batch

    async def load_more(self, device_id: str, thread_id: int, limit: int = 10) -> MessageBatch:
        """Fetch the next-older page and merge it into the cached thread.

        The returned batch carries only the newly fetched messages;
        ``has_more`` is false once a page comes back short.
        """
        start = 0
        if self.cache is not None:
            start = self.cache.loaded_count(thread_id)
        batch = await self.fetch_messages(device_id, thread_id, start, limit)
        if self.cache is not None and batch.messages:
            self.cache.merge(thread_id, batch.messages)
        return batch

    async def fetch_messages(self, device_id: str, thread_id: int, start: int, limit: int) -> MessageBatch:
        """Collect messages ``start`` to ``start + limit`` (newest first on the phone).

        Raises:
            PathError: ``device_id`` is not a valid path component.
            TransportUnavailableError: the session bus is gone.
        """
        proxy = self.factory.conversations(device_id)
        messages: dict[int, SmsMessage] = {}
        try:
            batch = await self._messages_via_signals(proxy, thread_id, start, limit, messages)
        except TransportUnavailableError:
            raise
        except BusError as e:
            logger.warning(f"Signal-based message loading failed for thread {thread_id}: {e}")
            batch = await self._messages_via_polling(proxy, thread_id, start, limit)

        logger.info(
            f"Loaded {len(batch.messages)} messages for thread {thread_id}"
            f"{' (timed out)' if batch.timed_out else ''}"
        )
        return batch

    async def _messages_via_signals(
        self,
        proxy: ConversationsProxy,
        thread_id: int,
        start: int,
        limit: int,
        messages: dict[int, SmsMessage],
    ) -> MessageBatch:
        collection = self._new_collection(self.message_timeout_ms)
        clock = _Clock()

        def fold(signal: Signal, now: int) -> None:
            if not signal.body:
                return
            if signal.member == ConversationsProxy.LOADED:
                if signal.body[0] == thread_id:
                    collection.record_activity(now)
                    collection.complete(now)
                return
            message = parse_sms_message(signal.body[0])
            if message is not None and message.thread_id == thread_id:
                collection.record_activity(now)
                messages[message.uid] = message

        async with proxy.subscribe(ConversationsProxy.UPDATED, ConversationsProxy.LOADED) as subscription:
            collection.request(clock.now())
            await proxy.request_conversation(thread_id, start, start + limit)
            phase = await self._collect(subscription, collection, clock, fold)

        return MessageBatch(
            thread_id=thread_id,
            messages=sorted(messages.values(), key=lambda m: m.sort_key),
            timed_out=phase is CollectionPhase.TIMEOUT,
            has_more=len(messages) >= limit,
        )

    async def _messages_via_polling(
        self,
        proxy: ConversationsProxy,
        thread_id: int,
        start: int,
        limit: int,
    ) -> MessageBatch:
        try:
            await proxy.request_conversation(thread_id, start, start + limit)
        except TransportUnavailableError:
            raise
        except BusError as e:
            logger.warning(f"Fallback: failed to request conversation {thread_id}: {e}")

        messages: list[SmsMessage] = []
        for attempt in range(1, self.message_fallback_attempts + 1):
            await asyncio.sleep(self.fallback_interval_ms / 1000)
            try:
                messages = parse_messages(await proxy.active_conversations(), thread_id)
            except TransportUnavailableError:
                raise
            except BusError as e:
                logger.warning(f"Fallback attempt {attempt} for thread {thread_id} failed: {e}")
                continue
            if len(messages) > 1:
                break

        return MessageBatch(
            thread_id=thread_id,
            messages=messages,
            timed_out=len(messages) <= 1,
            has_more=len(messages) >= limit,
            via_fallback=True,
        )

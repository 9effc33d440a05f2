"""Bounded LRU cache of SMS threads."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable

from connected_bridge.sms.models import SmsMessage

logger = logging.getLogger(__name__)

CACHE_CAPACITY = 10


@dataclass
class _Entry:
    messages: list[SmsMessage]
    access_seq: int
    token: int = 0


def _merged(existing: list[SmsMessage], incoming: list[SmsMessage]) -> list[SmsMessage]:
    by_uid = {m.uid: m for m in existing}
    by_uid.update((m.uid, m) for m in incoming)
    return sorted(by_uid.values(), key=lambda m: m.sort_key)


class ThreadCache:
    """thread_id -> messages, evicting the least recently used thread.

    Every hit, insert and merge bumps the entry's access sequence. Change
    signals call ``mark_changed``; the next ``get`` for that thread misses
    so the caller re-collects it.
    """

    def __init__(self, capacity: int = CACHE_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._entries: dict[int, _Entry] = {}
        self._tokens: dict[int, int] = {}
        self._seq = 0
        self._lock = threading.Lock()

    def _next_seq(self) -> int:
        self._seq += 1
        return self._seq

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.capacity:
            victim = min(self._entries, key=lambda k: self._entries[k].access_seq)
            del self._entries[victim]
            logger.debug(f"Evicted thread {victim} from cache")

    def get(self, thread_id: int) -> list[SmsMessage] | None:
        with self._lock:
            entry = self._entries.get(thread_id)
            if entry is None:
                return None
            if entry.token != self._tokens.get(thread_id, 0):
                del self._entries[thread_id]
                logger.debug(f"Thread {thread_id} changed since cached")
                return None
            entry.access_seq = self._next_seq()
            return list(entry.messages)

    def put(self, thread_id: int, messages: list[SmsMessage]) -> None:
        with self._lock:
            self._entries[thread_id] = _Entry(
                messages=sorted(messages, key=lambda m: m.sort_key),
                access_seq=self._next_seq(),
                token=self._tokens.get(thread_id, 0),
            )
            self._evict_overflow()

    def merge(self, thread_id: int, messages: list[SmsMessage]) -> list[SmsMessage]:
        """Add ``messages`` to a thread, deduplicated by uid; returns the merged list.

        A thread changed since it was cached stays stale after the merge.
        """
        with self._lock:
            entry = self._entries.get(thread_id)
            existing = entry.messages if entry is not None else []
            merged = _merged(existing, messages)
            self._entries[thread_id] = _Entry(
                messages=merged,
                access_seq=self._next_seq(),
                token=entry.token if entry is not None else self._tokens.get(thread_id, 0),
            )
            self._evict_overflow()
            return list(merged)

    def loaded_count(self, thread_id: int) -> int:
        """Messages held for a thread, stale or not; the offset of the next older page."""
        with self._lock:
            entry = self._entries.get(thread_id)
            return len(entry.messages) if entry is not None else 0

    def covers(self, message: SmsMessage) -> bool:
        """Whether ``message`` says nothing new about its cached thread.

        True when the uid is already held, or when the message is older than
        the oldest held one (an older page arriving).
        """
        with self._lock:
            entry = self._entries.get(message.thread_id)
            if entry is None or not entry.messages:
                return False
            if any(m.uid == message.uid for m in entry.messages):
                return True
            return message.sort_key < entry.messages[0].sort_key

    def invalidate(self, thread_id: int) -> None:
        with self._lock:
            self._entries.pop(thread_id, None)

    def mark_changed(self, thread_id: int) -> None:
        with self._lock:
            self._tokens[thread_id] = self._tokens.get(thread_id, 0) + 1

    def retain(self, thread_ids: Iterable[int]) -> None:
        """Drop cached threads missing from a fresh conversation set."""
        keep = set(thread_ids)
        with self._lock:
            for thread_id in [k for k in self._entries if k not in keep]:
                del self._entries[thread_id]
            self._tokens = {k: v for k, v in self._tokens.items() if k in keep}

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._tokens.clear()

    def __contains__(self, thread_id: int) -> bool:
        with self._lock:
            return thread_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

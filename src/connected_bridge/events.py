"""Tagged events flowing from background tasks to the presentation layer."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, ClassVar

logger = logging.getLogger(__name__)


class ActionKind(str, Enum):
    PING = "ping"
    RING = "ring"
    SHARE_FILE = "share_file"
    SHARE_TEXT = "share_text"
    CLIPBOARD = "clipboard"
    DISMISS_NOTIFICATION = "dismiss_notification"
    REQUEST_PAIR = "request_pair"
    UNPAIR = "unpair"
    ACCEPT_PAIRING = "accept_pairing"
    REJECT_PAIRING = "reject_pairing"
    MEDIA_ACTION = "media_action"
    MEDIA_VOLUME = "media_volume"
    MEDIA_POSITION = "media_position"
    MEDIA_SEEK = "media_seek"
    MEDIA_PLAYER = "media_player"
    SEND_SMS = "send_sms"

    @property
    def is_pairing(self) -> bool:
        return self in _PAIRING_KINDS


_PAIRING_KINDS = {
    ActionKind.REQUEST_PAIR,
    ActionKind.UNPAIR,
    ActionKind.ACCEPT_PAIRING,
    ActionKind.REJECT_PAIRING,
}


@dataclass(frozen=True)
class Event:
    kind: ClassVar[str] = "event"


@dataclass(frozen=True)
class DevicesUpdated(Event):
    kind: ClassVar[str] = "devices_updated"

    devices: list = field(default_factory=list)


@dataclass(frozen=True)
class ConversationsLoaded(Event):
    kind: ClassVar[str] = "conversations_loaded"

    device_id: str
    conversations: list = field(default_factory=list)
    timed_out: bool = False


@dataclass(frozen=True)
class MessagesLoaded(Event):
    kind: ClassVar[str] = "messages_loaded"

    device_id: str
    thread_id: int
    messages: list = field(default_factory=list)
    timed_out: bool = False
    from_cache: bool = False


@dataclass(frozen=True)
class OlderMessagesLoaded(Event):
    kind: ClassVar[str] = "older_messages_loaded"

    device_id: str
    thread_id: int
    messages: list = field(default_factory=list)
    has_more: bool = False


@dataclass(frozen=True)
class SmsSent(Event):
    kind: ClassVar[str] = "sms_sent"

    device_id: str
    address: str
    body: str


@dataclass(frozen=True)
class ActionResult(Event):
    """Outcome of a fire-and-forget device action."""

    kind: ClassVar[str] = "action_result"

    action: ActionKind
    ok: bool
    message: str
    device_id: str | None = None

    @property
    def is_pairing(self) -> bool:
        return self.action.is_pairing


@dataclass(frozen=True)
class MediaUpdated(Event):
    kind: ClassVar[str] = "media_updated"

    device_id: str
    media: object | None = None


@dataclass(frozen=True)
class ContactsLoaded(Event):
    kind: ClassVar[str] = "contacts_loaded"

    device_id: str
    count: int


@dataclass(frozen=True)
class SmsReceived(Event):
    kind: ClassVar[str] = "sms_received"

    device_id: str
    message: object


@dataclass(frozen=True)
class CallReceived(Event):
    kind: ClassVar[str] = "call_received"

    device_id: str
    event: str
    phone_number: str
    contact_name: str


@dataclass(frozen=True)
class FileReceived(Event):
    kind: ClassVar[str] = "file_received"

    device_id: str
    file_url: str
    file_name: str


@dataclass(frozen=True)
class DesktopNotificationRequested(Event):
    kind: ClassVar[str] = "desktop_notification"

    notification: object


@dataclass(frozen=True)
class ConnectionStateChanged(Event):
    kind: ClassVar[str] = "connection_state"

    connected: bool
    detail: str = ""


@dataclass(frozen=True)
class ErrorEvent(Event):
    kind: ClassVar[str] = "error"

    message: str
    source: str = ""


class EventBus:
    """FIFO channel with many producers and a single consumer."""

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue[Event] = asyncio.Queue(maxsize)

    def publish(self, event: Event) -> None:
        logger.debug(f"Event: {event.kind}")
        self._queue.put_nowait(event)

    def error(self, message: str, source: str = "") -> None:
        logger.error(f"{source + ': ' if source else ''}{message}")
        self.publish(ErrorEvent(message=message, source=source))

    async def next(self) -> Event:
        return await self._queue.get()

    def drain_nowait(self) -> list[Event]:
        """Everything queued right now, oldest first."""
        events: list[Event] = []
        while not self._queue.empty():
            events.append(self._queue.get_nowait())
        return events

    def __len__(self) -> int:
        return self._queue.qsize()

    async def __aiter__(self) -> AsyncIterator[Event]:
        while True:
            yield await self._queue.get()

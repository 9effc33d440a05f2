"""Route daemon signals to refreshes, cache invalidation and events."""

from __future__ import annotations

import logging
from typing import Callable
from urllib.parse import unquote

from dbus_fast import Message, MessageType

from connected_bridge.bus.connection import BusConnection
from connected_bridge.bus.paths import BASE_PATH, SERVICE_NAME, device_id_from_path
from connected_bridge.bus.proxies import (
    BATTERY_INTERFACE,
    CONVERSATIONS_INTERFACE,
    DAEMON_INTERFACE,
    DEVICE_INTERFACE,
    NOTIFICATIONS_INTERFACE,
    SHARE_INTERFACE,
    TELEPHONY_INTERFACE,
    ConversationsProxy,
    TelephonyProxy,
)
from connected_bridge.bus.proxy import match_rule, unwrap
from connected_bridge.events import CallReceived, Event, FileReceived, SmsReceived
from connected_bridge.sms.cache import ThreadCache
from connected_bridge.sms.parser import parse_sms_message

logger = logging.getLogger(__name__)

DAEMON_SIGNALS = frozenset({
    "deviceAdded",
    "deviceRemoved",
    "deviceVisibilityChanged",
    "announcedNameChanged",
})
DEVICE_SIGNALS = frozenset({
    "reachableChanged",
    "trustedChanged",
    "pairingRequest",
    "hasPairingRequestsChanged",
})
# every signal on these interfaces changes the device snapshot
REFRESH_INTERFACES = frozenset({BATTERY_INTERFACE, NOTIFICATIONS_INTERFACE})

SHARE_RECEIVED = "shareReceived"


def file_name_from_url(file_url: str) -> str:
    path = file_url[len("file://"):] if file_url.startswith("file://") else file_url
    return unquote(path.rsplit("/", 1)[-1]) or "file"


class SignalListener:
    """Listens to everything the daemon emits under its base path.

    Args:
        connection: Shared bus connection.
        dispatch: Receives the events built from signals.
        on_devices_changed: Called for any signal that changes a device
            snapshot; normally the debouncer's ``trigger``.
        cache: Thread cache to mark stale on ``conversationUpdated``.
    """

    def __init__(
        self,
        connection: BusConnection,
        dispatch: Callable[[Event], None],
        on_devices_changed: Callable[[], None],
        cache: ThreadCache | None = None,
    ):
        self.connection = connection
        self.dispatch = dispatch
        self.on_devices_changed = on_devices_changed
        self.cache = cache
        self.rule = match_rule(sender=SERVICE_NAME, path_namespace=BASE_PATH)
        self._installed = False

    @property
    def installed(self) -> bool:
        return self._installed

    async def install(self) -> None:
        """Register the handler and match rule; safe to call after a reconnect."""
        self._installed = False
        await self.connection.add_handler(self.handle)
        await self.connection.add_match(self.rule)
        self._installed = True
        logger.info("Listening for KDE Connect signals")

    async def uninstall(self) -> None:
        if not self._installed:
            return
        self._installed = False
        self.connection.remove_handler(self.handle)
        await self.connection.remove_match(self.rule)

    def handle(self, message: Message) -> None:
        if message.message_type != MessageType.SIGNAL:
            return
        if not message.path or not message.path.startswith(BASE_PATH):
            return
        interface, member = message.interface, message.member
        body = [unwrap(value) for value in message.body or []]

        if interface == DAEMON_INTERFACE and member in DAEMON_SIGNALS:
            self._devices_changed(interface, member)
        elif interface == DEVICE_INTERFACE and member in DEVICE_SIGNALS:
            self._devices_changed(interface, member)
        elif interface in REFRESH_INTERFACES:
            self._devices_changed(interface, member)
        elif interface == CONVERSATIONS_INTERFACE and member == ConversationsProxy.UPDATED:
            self._conversation_updated(message.path, body)
        elif interface == TELEPHONY_INTERFACE and member == TelephonyProxy.CALL_RECEIVED:
            self._call_received(message.path, body)
        elif interface == SHARE_INTERFACE and member == SHARE_RECEIVED:
            self._share_received(message.path, body)

    def _devices_changed(self, interface: str, member: str) -> None:
        logger.debug(f"Signal {interface}.{member}")
        self.on_devices_changed()

    def _conversation_updated(self, path: str, body: list) -> None:
        device_id = device_id_from_path(path)
        message = parse_sms_message(body[0]) if body else None
        if device_id is None or message is None:
            return
        # List refreshes re-announce held messages and paging delivers older ones.
        if self.cache is not None and not self.cache.covers(message):
            self.cache.mark_changed(message.thread_id)
        if message.is_incoming:
            logger.debug(f"SMS received in thread {message.thread_id} on {device_id}")
            self.dispatch(SmsReceived(device_id=device_id, message=message))

    def _call_received(self, path: str, body: list) -> None:
        device_id = device_id_from_path(path)
        if device_id is None or len(body) < 3 or not all(isinstance(v, str) for v in body[:3]):
            logger.warning(f"Malformed callReceived signal on {path}")
            return
        event, phone_number, contact_name = body[:3]
        logger.info(f"Call event {event} on {device_id}")
        self.dispatch(CallReceived(
            device_id=device_id,
            event=event,
            phone_number=phone_number,
            contact_name=contact_name,
        ))

    def _share_received(self, path: str, body: list) -> None:
        device_id = device_id_from_path(path)
        if device_id is None or not body or not isinstance(body[0], str):
            return
        file_url = body[0]
        self.dispatch(FileReceived(
            device_id=device_id,
            file_url=file_url,
            file_name=file_name_from_url(file_url),
        ))

"""Command surface used by the presentation layer.

Every command starts a background task and returns it; outcomes, success
or failure, arrive on ``Bridge.events``. Exceptions never escape a task.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Coroutine

from connected_bridge.bus.connection import BusConnection
from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.config import Config
from connected_bridge.contacts.reader import ContactIndex, load_for_device
from connected_bridge.devices.actions import ActionDispatcher
from connected_bridge.devices.enumerator import DeviceEnumerator
from connected_bridge.devices.models import Device
from connected_bridge.events import (
    ActionKind,
    ActionResult,
    CallReceived,
    ConnectionStateChanged,
    ContactsLoaded,
    ConversationsLoaded,
    DesktopNotificationRequested,
    DevicesUpdated,
    Event,
    EventBus,
    FileReceived,
    MediaUpdated,
    MessagesLoaded,
    OlderMessagesLoaded,
    SmsReceived,
    SmsSent,
)
from connected_bridge.exceptions import BridgeError, BusError, InvalidInputError
from connected_bridge.media.remote import fetch_media_info
from connected_bridge.notifications import DesktopNotification, DesktopNotifier, NotificationPolicy
from connected_bridge.scheduler import RefreshScheduler
from connected_bridge.signals import SignalListener
from connected_bridge.sms import sender
from connected_bridge.sms.cache import ThreadCache
from connected_bridge.sms.collector import SmsCollector
from connected_bridge.sms.models import ConversationSummary

logger = logging.getLogger(__name__)

# post-send key for a message that started a new conversation
NEW_CONVERSATION = -1


class Bridge:
    """Owns the connection and every subsystem built on it.

    Args:
        config: Initial options; defaults to ``Config.from_env()``.
        connection: Shared bus connection; defaults to the session bus.
        events: Event bus consumed by the presentation layer.
        contacts_dir: Base directory for synced vCards, overriding the
            user data directory.
        collector_options: Timing overrides passed to ``SmsCollector``.
        scheduler_options: Timing overrides passed to ``RefreshScheduler``.
    """

    def __init__(
        self,
        config: Config | None = None,
        connection: BusConnection | None = None,
        events: EventBus | None = None,
        *,
        contacts_dir: Path | None = None,
        collector_options: dict | None = None,
        scheduler_options: dict | None = None,
    ):
        self.config = config or Config.from_env()
        self.connection = connection or BusConnection()
        self.events = events or EventBus()
        self.contacts_dir = contacts_dir

        self.factory = ProxyFactory(self.connection)
        self.enumerator = DeviceEnumerator(self.factory)
        self.actions = ActionDispatcher(self.factory)
        self.cache = ThreadCache()
        self.collector = SmsCollector(self.factory, self.cache, **(collector_options or {}))
        self.scheduler = RefreshScheduler(
            lambda: self._guard(self._refresh_devices(), "refresh-devices"),
            **(scheduler_options or {}),
        )
        self.policy = NotificationPolicy(self.config)
        self.notifier = DesktopNotifier(self.connection)
        self.listener = SignalListener(
            self.connection, self.dispatch, self.scheduler.device_changed, self.cache
        )

        self.devices: dict[str, Device] = {}
        self.contacts: dict[str, ContactIndex] = {}
        self.conversations: dict[str, list[ConversationSummary]] = {}
        self.sms_device: str | None = None
        self.media_device: str | None = None
        self._conversation_loads: dict[str, asyncio.Task] = {}
        self._tasks: set[asyncio.Task] = set()
        self._reconnector: asyncio.Task | None = None

    # Task plumbing

    def _spawn(self, coro: Coroutine, name: str) -> asyncio.Task:
        task = asyncio.create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Awaitable, name: str) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except BridgeError as e:
            self.events.error(str(e), source=name)
        except Exception as e:
            logger.error(f"Unexpected error in {name}: {e}", exc_info=True)
            self.events.error(f"Unexpected error: {e}", source=name)

    def dispatch(self, event: Event) -> None:
        """Publish a signal-derived event and raise any desktop notification for it."""
        self.events.publish(event)
        if isinstance(event, SmsReceived):
            self._spawn(self._notify_sms(event), "sms-notification")
        elif isinstance(event, CallReceived):
            notification = self.policy.call(
                event.event, event.phone_number, event.contact_name, self._device_name(event.device_id)
            )
            self._show(notification)
        elif isinstance(event, FileReceived):
            notification = self.policy.file(self._device_name(event.device_id), event.file_url, event.file_name)
            self._show(notification)

    def _show(self, notification: DesktopNotification | None) -> None:
        if notification is None:
            return
        self.events.publish(DesktopNotificationRequested(notification=notification))
        self._spawn(self.notifier.notify(notification), "desktop-notification")

    def _device_name(self, device_id: str) -> str:
        device = self.devices.get(device_id)
        return device.name if device is not None else device_id

    # Lifecycle

    def start(self) -> asyncio.Task:
        """Connect, listen for signals and keep reconnecting until ``stop()``."""
        if self._reconnector is None or self._reconnector.done():
            self._reconnector = asyncio.create_task(
                self.connection.run_reconnector(self._on_connected, self._on_connection_lost),
                name="bus-reconnector",
            )
        return self._reconnector

    async def _on_connected(self) -> None:
        try:
            await self.listener.install()
        except BusError as e:
            self.events.error(f"Failed to subscribe to signals: {e}", source="signals")
        self.events.publish(ConnectionStateChanged(connected=True))
        await self._guard(self._refresh_devices(), "refresh-devices")

    async def _on_connection_lost(self, detail: str) -> None:
        self.cache.clear()
        self.events.publish(ConnectionStateChanged(connected=False, detail=detail))

    async def stop(self) -> None:
        reconnector, self._reconnector = self._reconnector, None
        tasks = list(self._tasks)
        if reconnector is not None:
            tasks.append(reconnector)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.scheduler.shutdown()
        self.connection.close()
        logger.info("Bridge stopped")

    def update_config(self, config: Config) -> None:
        previous, self.config = self.config, config
        self.policy.config = config
        if previous.show_offline_devices != config.show_offline_devices:
            self.refresh_devices()

    # Devices

    def refresh_devices(self) -> asyncio.Task:
        return self._spawn(self._refresh_devices(), "refresh-devices")

    async def _refresh_devices(self) -> None:
        devices = await self.enumerator.load_all(self.config)
        previous = self.devices
        self.devices = {d.id: d for d in devices}

        for device_id in previous.keys() - self.devices.keys():
            self.policy.forget_device(device_id)
        if self.sms_device is not None:
            current = self.devices.get(self.sms_device)
            if current is None or not current.is_connected:
                logger.info(f"SMS device {self.sms_device} went away; clearing thread cache")
                self.cache.clear()
                self.sms_device = None

        self.events.publish(DevicesUpdated(devices=devices))
        for device in devices:
            for notification in self.policy.phone_notifications(device):
                self._show(notification)

    # Contacts

    async def _contacts_for(self, device_id: str) -> ContactIndex:
        index = self.contacts.get(device_id)
        if index is None:
            index = await load_for_device(device_id, self.contacts_dir)
            self.contacts[device_id] = index
            self.events.publish(ContactsLoaded(device_id=device_id, count=len(index)))
        return index

    def reload_contacts(self, device_id: str) -> asyncio.Task:
        self.contacts.pop(device_id, None)
        return self._spawn(self._contacts_for(device_id), "load-contacts")

    def lookup_contact(self, device_id: str, phone_number: str) -> str:
        """Contact name for ``phone_number``, or the number itself."""
        index = self.contacts.get(device_id)
        return index.get_name_or_number(phone_number) if index is not None else phone_number

    # SMS

    def open_sms(self, device_id: str) -> asyncio.Task:
        if device_id != self.sms_device:
            self.cache.clear()
            self.sms_device = device_id
        self._spawn(self._contacts_for(device_id), "load-contacts")
        task = self._spawn(self._load_conversations(device_id), "load-conversations")
        self._conversation_loads[device_id] = task
        task.add_done_callback(lambda t: self._forget_conversation_load(device_id, t))
        return task

    def _forget_conversation_load(self, device_id: str, task: asyncio.Task) -> None:
        if self._conversation_loads.get(device_id) is task:
            del self._conversation_loads[device_id]

    async def _load_conversations(self, device_id: str) -> None:
        batch = await self.collector.load_conversations(device_id, self.conversations.get(device_id))
        self.conversations[device_id] = batch.conversations
        self.events.publish(ConversationsLoaded(
            device_id=device_id,
            conversations=batch.conversations,
            timed_out=batch.timed_out,
        ))

    async def _after_conversations(self, device_id: str) -> None:
        pending = self._conversation_loads.get(device_id)
        if pending is not None and not pending.done():
            await asyncio.wait([pending])

    def open_thread(self, device_id: str, thread_id: int) -> asyncio.Task:
        return self._spawn(self._load_thread(device_id, thread_id), "load-messages")

    def refresh_thread(self, device_id: str, thread_id: int) -> asyncio.Task:
        self.cache.invalidate(thread_id)
        return self.open_thread(device_id, thread_id)

    async def _load_thread(self, device_id: str, thread_id: int) -> None:
        await self._after_conversations(device_id)
        batch = await self.collector.load_messages(device_id, thread_id, self.config.messages_per_page)
        self.events.publish(MessagesLoaded(
            device_id=device_id,
            thread_id=thread_id,
            messages=batch.messages,
            timed_out=batch.timed_out,
            from_cache=batch.from_cache,
        ))

    def load_more(self, device_id: str, thread_id: int) -> asyncio.Task:
        return self._spawn(self._load_more(device_id, thread_id), "load-older-messages")

    async def _load_more(self, device_id: str, thread_id: int) -> None:
        batch = await self.collector.load_more(device_id, thread_id, self.config.messages_per_page)
        self.events.publish(OlderMessagesLoaded(
            device_id=device_id,
            thread_id=thread_id,
            messages=batch.messages,
            has_more=batch.has_more,
        ))

    def send_sms(
        self,
        device_id: str,
        addresses: list[str],
        body: str,
        thread_id: int | None = None,
    ) -> asyncio.Task:
        """Send an SMS and refresh the thread (or the conversation list) shortly after."""
        return self._spawn(self._send_sms(device_id, addresses, body, thread_id), "send-sms")

    async def _send_sms(self, device_id: str, addresses: list[str], body: str, thread_id: int | None) -> None:
        try:
            address = await sender.send_sms(self.factory, device_id, addresses, body)
        except (InvalidInputError, BusError) as e:
            logger.warning(f"SMS not sent: {e}")
            self.events.publish(ActionResult(
                action=ActionKind.SEND_SMS, ok=False, message=str(e), device_id=device_id,
            ))
            return
        self.events.publish(SmsSent(device_id=device_id, address=address, body=body))

        if thread_id is None:
            self.scheduler.schedule_after_send(
                NEW_CONVERSATION,
                lambda: self._guard(self._load_conversations(device_id), "load-conversations"),
            )
        else:
            self.cache.mark_changed(thread_id)
            self.scheduler.schedule_after_send(
                thread_id,
                lambda: self._guard(self._load_thread(device_id, thread_id), "load-messages"),
            )

    async def _notify_sms(self, event: SmsReceived) -> None:
        message = event.message
        try:
            contacts = await self._contacts_for(event.device_id)
            sender_name = contacts.get_name(message.primary_address)
        except BridgeError as e:
            logger.warning(f"Contact lookup failed for {event.device_id}: {e}")
            sender_name = None
        self._show(self.policy.sms(message, sender_name))

    # Media

    def open_media(self, device_id: str) -> asyncio.Task:
        return self._spawn(self._open_media(device_id), "open-media")

    async def _open_media(self, device_id: str) -> None:
        self.media_device = device_id
        await self._refresh_media(device_id, request_players=True)
        if self.media_device != device_id:
            logger.debug(f"Media view for {device_id} closed while opening")
            return
        await self.scheduler.start_media_polling(
            lambda: self._guard(self._refresh_media(device_id), "refresh-media")
        )

    def close_media(self) -> asyncio.Task:
        self.media_device = None
        return self._spawn(self.scheduler.stop_media_polling(), "close-media")

    def refresh_media(self, device_id: str) -> asyncio.Task:
        return self._spawn(self._refresh_media(device_id), "refresh-media")

    async def _refresh_media(self, device_id: str, request_players: bool = False) -> None:
        media = await fetch_media_info(self.factory, device_id, request_players=request_players)
        self.events.publish(MediaUpdated(device_id=device_id, media=media))

    # Device actions

    def _action(self, result: Awaitable[ActionResult], name: str) -> asyncio.Task:
        return self._spawn(self._run_action(result), name)

    async def _run_action(self, pending: Awaitable[ActionResult]) -> None:
        result = await pending
        self.events.publish(result)
        if not result.ok:
            return
        if result.is_pairing or result.action is ActionKind.DISMISS_NOTIFICATION:
            await self._refresh_devices()
        elif result.action.value.startswith("media_") and result.device_id == self.media_device:
            await self._refresh_media(result.device_id)

    def ping(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.ping(device_id), "ping")

    def ring(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.ring(device_id), "ring")

    def share_file(self, device_id: str, path: str | Path) -> asyncio.Task:
        return self._action(self.actions.share_file(device_id, path), "share-file")

    def share_text(self, device_id: str, text: str) -> asyncio.Task:
        return self._action(self.actions.share_text(device_id, text), "share-text")

    def send_clipboard(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.send_clipboard(device_id), "send-clipboard")

    def dismiss_notification(self, device_id: str, notification_id: str) -> asyncio.Task:
        return self._action(self.actions.dismiss_notification(device_id, notification_id), "dismiss-notification")

    def request_pair(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.request_pair(device_id), "request-pair")

    def unpair(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.unpair(device_id), "unpair")

    def accept_pairing(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.accept_pairing(device_id), "accept-pairing")

    def reject_pairing(self, device_id: str) -> asyncio.Task:
        return self._action(self.actions.reject_pairing(device_id), "reject-pairing")

    def media_action(self, device_id: str, action: str) -> asyncio.Task:
        return self._action(self.actions.media_action(device_id, action), "media-action")

    def set_volume(self, device_id: str, volume: int) -> asyncio.Task:
        return self._action(self.actions.set_volume(device_id, volume), "media-volume")

    def set_position(self, device_id: str, position_ms: int) -> asyncio.Task:
        return self._action(self.actions.set_position(device_id, position_ms), "media-position")

    def seek(self, device_id: str, offset_ms: int) -> asyncio.Task:
        return self._action(self.actions.seek(device_id, offset_ms), "media-seek")

    def select_player(self, device_id: str, player: str) -> asyncio.Task:
        return self._action(self.actions.select_player(device_id, player), "media-player")

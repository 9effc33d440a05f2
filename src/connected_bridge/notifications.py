"""Desktop notifications for SMS, calls, received files and forwarded phone notifications."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import IntEnum

from dbus_fast import Message, Variant

from connected_bridge.bus.connection import BusConnection
from connected_bridge.config import Config
from connected_bridge.devices.models import Device
from connected_bridge.sms.models import SmsMessage

logger = logging.getLogger(__name__)

APP_NAME = "Connected"

SMS_FRESHNESS_MS = 30_000
FILE_TIMEOUT_MS = 5000
DEFAULT_TIMEOUT_MS = -1  # server default

SMS_ICON = "phone-symbolic"
CALL_ICON = "call-start-symbolic"
MISSED_CALL_ICON = "call-missed-symbolic"
FILE_ICON = "folder-download-symbolic"

CALL_RECEIVED = "callReceived"
MISSED_CALL = "missedCall"

NOTIFICATIONS_SERVICE = "org.freedesktop.Notifications"
NOTIFICATIONS_PATH = "/org/freedesktop/Notifications"


class Urgency(IntEnum):
    LOW = 0
    NORMAL = 1
    CRITICAL = 2


@dataclass(frozen=True)
class DesktopNotification:
    summary: str
    body: str = ""
    icon: str = SMS_ICON
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    urgency: Urgency = Urgency.NORMAL


class NotificationPolicy:
    """Decides whether and how to notify, honoring the privacy options.

    Keeps the small amount of state needed for deduplication: the newest
    notified message date per SMS thread, the last received file URL, and
    the phone notification ids already forwarded per device.
    """

    def __init__(self, config: Config | None = None):
        self.config = config or Config()
        self._last_seen_sms: dict[int, int] = {}
        self._last_file_url: str | None = None
        self._seen_notifications: dict[str, set[str]] = {}

    def sms(self, message: SmsMessage, sender_name: str | None = None, now_ms: int | None = None) -> DesktopNotification | None:
        """Notification for a newly received SMS, or None.

        Messages older than the freshness window are history being synced,
        not new arrivals.
        """
        if not self.config.sms_notifications or not message.is_incoming:
            return None
        now_ms = int(time.time() * 1000) if now_ms is None else now_ms
        if now_ms - message.date > SMS_FRESHNESS_MS:
            return None
        last_seen = self._last_seen_sms.get(message.thread_id)
        if last_seen is not None and last_seen >= message.date:
            return None
        self._last_seen_sms[message.thread_id] = message.date

        if self.config.sms_notification_show_sender:
            summary = f"Message from {sender_name or message.primary_address}"
        else:
            summary = "New message"
        body = message.body if self.config.sms_notification_show_content else "Message content hidden"
        return DesktopNotification(summary=summary, body=body, icon=SMS_ICON)

    def call(self, event: str, phone_number: str, contact_name: str, device_name: str) -> DesktopNotification | None:
        if not self.config.call_notifications:
            return None
        if event == CALL_RECEIVED:
            prefix, icon, urgency = "Incoming call", CALL_ICON, Urgency.CRITICAL
        elif event == MISSED_CALL:
            prefix, icon, urgency = "Missed call", MISSED_CALL_ICON, Urgency.NORMAL
        else:
            logger.debug(f"Unknown call event type: {event}")
            return None

        if self.config.call_notification_show_name and contact_name and contact_name != phone_number:
            summary = f"{prefix} from {contact_name}"
        elif self.config.call_notification_show_number and phone_number:
            summary = f"{prefix} from {phone_number}"
        else:
            summary = prefix
        return DesktopNotification(summary=summary, body=device_name, icon=icon, urgency=urgency)

    def file(self, device_name: str, file_url: str, file_name: str) -> DesktopNotification | None:
        # The daemon repeats shareReceived for a single transfer.
        if file_url == self._last_file_url:
            return None
        self._last_file_url = file_url
        if not self.config.file_notifications:
            return None
        return DesktopNotification(
            summary=f"File received from {device_name}",
            body=file_name,
            icon=FILE_ICON,
            timeout_ms=FILE_TIMEOUT_MS,
        )

    def phone_notifications(self, device: Device) -> list[DesktopNotification]:
        """Notifications posted on the phone since the previous snapshot.

        The first snapshot of a device only records what is already there.
        """
        current = {n.id for n in device.notifications}
        seen = self._seen_notifications.get(device.id)
        self._seen_notifications[device.id] = current
        if seen is None or not self.config.forward_notifications:
            return []
        return [
            DesktopNotification(
                summary=n.title or n.app_name,
                body=n.text,
                icon=device.icon_name,
            )
            for n in device.notifications
            if n.id not in seen
        ]

    def forget_device(self, device_id: str) -> None:
        self._seen_notifications.pop(device_id, None)


class DesktopNotifier:
    """Shows notifications through the freedesktop notification service."""

    def __init__(self, connection: BusConnection, app_name: str = APP_NAME):
        self.connection = connection
        self.app_name = app_name

    async def notify(self, notification: DesktopNotification) -> int:
        """Show ``notification``; returns the server-assigned id."""
        reply = await self.connection.call(Message(
            destination=NOTIFICATIONS_SERVICE,
            path=NOTIFICATIONS_PATH,
            interface=NOTIFICATIONS_SERVICE,
            member="Notify",
            signature="susssasa{sv}i",
            body=[
                self.app_name,
                0,
                notification.icon,
                notification.summary,
                notification.body,
                [],
                {"urgency": Variant("y", int(notification.urgency))},
                notification.timeout_ms,
            ],
        ))
        notification_id = int(reply.body[0]) if reply is not None and reply.body else 0
        logger.debug(f"Desktop notification {notification_id}: {notification.summary}")
        return notification_id

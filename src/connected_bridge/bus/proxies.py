"""Typed proxies for the KDE Connect daemon, devices and plugins."""

from __future__ import annotations

from dbus_fast import Variant

from connected_bridge.bus import paths
from connected_bridge.bus.connection import BusConnection
from connected_bridge.bus.proxy import RemoteObject

DAEMON_INTERFACE = "org.kde.kdeconnect.daemon"
DEVICE_INTERFACE = "org.kde.kdeconnect.device"
BATTERY_INTERFACE = "org.kde.kdeconnect.device.battery"
NOTIFICATIONS_INTERFACE = "org.kde.kdeconnect.device.notifications"
NOTIFICATION_INTERFACE = "org.kde.kdeconnect.device.notifications.notification"
PING_INTERFACE = "org.kde.kdeconnect.device.ping"
FINDMYPHONE_INTERFACE = "org.kde.kdeconnect.device.findmyphone"
SHARE_INTERFACE = "org.kde.kdeconnect.device.share"
CLIPBOARD_INTERFACE = "org.kde.kdeconnect.device.clipboard"
SMS_INTERFACE = "org.kde.kdeconnect.device.sms"
CONVERSATIONS_INTERFACE = "org.kde.kdeconnect.device.conversations"
TELEPHONY_INTERFACE = "org.kde.kdeconnect.device.telephony"
MPRIS_REMOTE_INTERFACE = "org.kde.kdeconnect.device.mprisremote"


class DaemonProxy(RemoteObject):
    interface = DAEMON_INTERFACE

    async def devices(self, only_reachable: bool = False, only_paired: bool = False) -> list[str]:
        return list(await self.call("devices", "bb", only_reachable, only_paired) or [])


class DeviceProxy(RemoteObject):
    interface = DEVICE_INTERFACE

    async def name(self) -> str:
        return await self.get_property("name")

    async def device_type(self) -> str:
        return await self.get_property("type")

    async def is_reachable(self) -> bool:
        return bool(await self.get_property("isReachable"))

    async def is_trusted(self) -> bool:
        return bool(await self.get_property("isTrusted"))

    async def is_pair_requested(self) -> bool:
        return bool(await self.get_property("isPairRequested"))

    async def is_pair_requested_by_peer(self) -> bool:
        return bool(await self.get_property("isPairRequestedByPeer"))

    async def request_pair(self) -> None:
        await self.call("requestPair")

    async def unpair(self) -> None:
        await self.call("unpair")

    async def accept_pairing(self) -> None:
        await self.call("acceptPairing")

    async def reject_pairing(self) -> None:
        await self.call("rejectPairing")


class BatteryProxy(RemoteObject):
    interface = BATTERY_INTERFACE

    async def charge(self) -> int:
        return int(await self.get_property("charge"))

    async def is_charging(self) -> bool:
        return bool(await self.get_property("isCharging"))


class NotificationsProxy(RemoteObject):
    interface = NOTIFICATIONS_INTERFACE

    async def active_notifications(self) -> list[str]:
        return list(await self.call("activeNotifications") or [])


class NotificationProxy(RemoteObject):
    """A single phone notification."""

    interface = NOTIFICATION_INTERFACE

    async def app_name(self) -> str:
        return await self.get_property("appName")

    async def title(self) -> str:
        return await self.get_property("title")

    async def text(self) -> str:
        return await self.get_property("text")

    async def dismissable(self) -> bool:
        return bool(await self.get_property("dismissable"))

    async def reply_id(self) -> str:
        return await self.get_property("replyId")

    async def dismiss(self) -> None:
        await self.call("dismiss")


class PingProxy(RemoteObject):
    interface = PING_INTERFACE

    async def send_ping(self) -> None:
        await self.call("sendPing")


class FindMyPhoneProxy(RemoteObject):
    interface = FINDMYPHONE_INTERFACE

    async def ring(self) -> None:
        await self.call("ring")


class ShareProxy(RemoteObject):
    interface = SHARE_INTERFACE

    async def share_url(self, url: str) -> None:
        await self.call("shareUrl", "s", url)

    async def share_text(self, text: str) -> None:
        await self.call("shareText", "s", text)


class ClipboardProxy(RemoteObject):
    interface = CLIPBOARD_INTERFACE

    async def send_clipboard(self) -> None:
        await self.call("sendClipboard")


def _address_list(addresses: list[str]) -> list[Variant]:
    # The daemon expects each address as a one-field struct inside a variant.
    return [Variant("(s)", [address]) for address in addresses]


class SmsProxy(RemoteObject):
    interface = SMS_INTERFACE

    async def send_sms(self, addresses: list[str], body: str, sub_id: int = -1) -> None:
        await self.call("sendSms", "avsavx", _address_list(addresses), body, [], sub_id)


class ConversationsProxy(RemoteObject):
    """Daemon-side conversation store; lives on the device path itself."""

    interface = CONVERSATIONS_INTERFACE

    CREATED = "conversationCreated"
    UPDATED = "conversationUpdated"
    LOADED = "conversationLoaded"

    async def active_conversations(self) -> list:
        return list(await self.call("activeConversations") or [])

    async def request_all_conversation_threads(self) -> None:
        await self.call("requestAllConversationThreads")

    async def request_conversation(self, thread_id: int, start: int, end: int) -> None:
        await self.call("requestConversation", "xii", thread_id, start, end)


class TelephonyProxy(RemoteObject):
    interface = TELEPHONY_INTERFACE

    CALL_RECEIVED = "callReceived"


class MprisRemoteProxy(RemoteObject):
    interface = MPRIS_REMOTE_INTERFACE

    async def player_list(self) -> list[str]:
        return list(await self.get_property("playerList") or [])

    async def player(self) -> str:
        return await self.get_property("player")

    async def is_playing(self) -> bool:
        return bool(await self.get_property("isPlaying"))

    async def volume(self) -> int:
        return int(await self.get_property("volume"))

    async def length(self) -> int:
        return int(await self.get_property("length"))

    async def position(self) -> int:
        return int(await self.get_property("position"))

    async def can_seek(self) -> bool:
        return bool(await self.get_property("canSeek"))

    async def title(self) -> str:
        return await self.get_property("title")

    async def artist(self) -> str:
        return await self.get_property("artist")

    async def album(self) -> str:
        return await self.get_property("album")

    async def seek(self, offset_ms: int) -> None:
        await self.call("seek", "i", offset_ms)

    async def set_position(self, position_ms: int) -> None:
        await self.set_property("position", "i", position_ms)

    async def set_volume(self, volume: int) -> None:
        await self.set_property("volume", "i", volume)

    async def set_player(self, player: str) -> None:
        await self.set_property("player", "s", player)

    async def request_player_list(self) -> None:
        await self.call("requestPlayerList")

    async def send_action(self, action: str) -> None:
        await self.call("sendAction", "s", action)


class ProxyFactory:
    """Builds path-scoped proxies over one shared connection.

    Invalid ids raise PathError before any proxy exists; building a proxy
    never touches the bus.
    """

    def __init__(self, connection: BusConnection):
        self.connection = connection

    def daemon(self) -> DaemonProxy:
        return DaemonProxy(self.connection, paths.daemon_path())

    def device(self, device_id: str) -> DeviceProxy:
        return DeviceProxy(self.connection, paths.device_path(device_id))

    def battery(self, device_id: str) -> BatteryProxy:
        return BatteryProxy(self.connection, paths.plugin_path(device_id, "battery"))

    def notifications(self, device_id: str) -> NotificationsProxy:
        return NotificationsProxy(self.connection, paths.plugin_path(device_id, "notifications"))

    def notification(self, device_id: str, notification_id: str) -> NotificationProxy:
        return NotificationProxy(self.connection, paths.notification_path(device_id, notification_id))

    def ping(self, device_id: str) -> PingProxy:
        return PingProxy(self.connection, paths.plugin_path(device_id, "ping"))

    def findmyphone(self, device_id: str) -> FindMyPhoneProxy:
        return FindMyPhoneProxy(self.connection, paths.plugin_path(device_id, "findmyphone"))

    def share(self, device_id: str) -> ShareProxy:
        return ShareProxy(self.connection, paths.plugin_path(device_id, "share"))

    def clipboard(self, device_id: str) -> ClipboardProxy:
        return ClipboardProxy(self.connection, paths.plugin_path(device_id, "clipboard"))

    def sms(self, device_id: str) -> SmsProxy:
        return SmsProxy(self.connection, paths.plugin_path(device_id, "sms"))

    def conversations(self, device_id: str) -> ConversationsProxy:
        return ConversationsProxy(self.connection, paths.device_path(device_id))

    def mprisremote(self, device_id: str) -> MprisRemoteProxy:
        return MprisRemoteProxy(self.connection, paths.plugin_path(device_id, "mprisremote"))

"""Device discovery and per-device state collection."""

from __future__ import annotations

import logging

from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.config import Config
from connected_bridge.devices.models import Device, Notification
from connected_bridge.exceptions import BusError, PathError

logger = logging.getLogger(__name__)


class DeviceEnumerator:
    """Lists devices and aggregates their live state into ``Device`` records."""

    def __init__(self, factory: ProxyFactory):
        self.factory = factory

    async def list_devices(self) -> list[str]:
        return await self.factory.daemon().devices()

    async def load_device(self, device_id: str) -> Device:
        """Read one device; battery and notifications only when connected.

        Raises:
            PathError: ``device_id`` is not a valid path component.
            BusError: the device's name could not be read.
        """
        device = self.factory.device(device_id)
        name = await device.name()
        device_type = await device.get_property_or("type", "unknown")
        reachable = bool(await device.get_property_or("isReachable", False))
        paired = bool(await device.get_property_or("isTrusted", False))
        pair_requested = bool(await device.get_property_or("isPairRequested", False))
        pair_requested_by_peer = bool(await device.get_property_or("isPairRequestedByPeer", False))

        info = Device(
            id=device_id,
            name=name,
            device_type=device_type,
            reachable=reachable,
            paired=paired,
            pair_requested=pair_requested,
            pair_requested_by_peer=pair_requested_by_peer,
        )
        if info.is_connected:
            info.battery_level, info.battery_charging = await self.load_battery(device_id)
            info.notifications = await self.load_notifications(device_id)
        return info

    async def load_all(self, config: Config | None = None) -> list[Device]:
        """Load every known device, skipping the ones that fail."""
        config = config or Config()
        device_ids = await self.list_devices()
        logger.debug(f"Found {len(device_ids)} device(s)")

        devices: list[Device] = []
        for device_id in device_ids:
            try:
                info = await self.load_device(device_id)
            except (BusError, PathError) as e:
                logger.warning(f"Failed to get info for device {device_id}: {e}")
                continue
            if not info.reachable and not config.show_offline_devices:
                continue
            devices.append(info)
        return devices

    async def load_battery(self, device_id: str) -> tuple[int | None, bool | None]:
        battery = self.factory.battery(device_id)
        charge = await battery.get_property_or("charge", None)
        is_charging = await battery.get_property_or("isCharging", None)
        return (
            int(charge) if charge is not None else None,
            bool(is_charging) if is_charging is not None else None,
        )

    async def load_notifications(self, device_id: str) -> list[Notification]:
        try:
            notification_ids = await self.factory.notifications(device_id).active_notifications()
        except BusError as e:
            logger.warning(f"Failed to get active notifications for {device_id}: {e}")
            return []

        logger.debug(f"Found {len(notification_ids)} notifications for device {device_id}")
        notifications: list[Notification] = []
        for notification_id in notification_ids:
            try:
                notification = await self._load_notification(device_id, notification_id)
            except (BusError, PathError) as e:
                logger.warning(f"Skipping notification {notification_id}: {e}")
                continue
            notifications.append(notification)
        return notifications

    async def _load_notification(self, device_id: str, notification_id: str) -> Notification:
        proxy = self.factory.notification(device_id, notification_id)
        # appName is read strictly so a vanished notification is skipped whole
        app_name = await proxy.app_name()
        return Notification(
            id=notification_id,
            app_name=app_name,
            title=await proxy.get_property_or("title", ""),
            text=await proxy.get_property_or("text", ""),
            dismissable=bool(await proxy.get_property_or("dismissable", False)),
            repliable=bool(await proxy.get_property_or("replyId", "")),
        )

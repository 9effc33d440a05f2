"""Device enumeration and device actions."""

from connected_bridge.devices.models import Device, Notification, device_icon
from connected_bridge.devices.enumerator import DeviceEnumerator
from connected_bridge.devices.actions import ActionDispatcher, MEDIA_ACTIONS

__all__ = [
    "Device",
    "Notification",
    "device_icon",
    "DeviceEnumerator",
    "ActionDispatcher",
    "MEDIA_ACTIONS",
]

"""Data models for the devices module."""

from __future__ import annotations

from dataclasses import dataclass, field

# device_type -> icon; anything else falls into the default bucket
_DEVICE_ICONS = {
    "phone": "phone-symbolic",
    "smartphone": "phone-symbolic",
    "tablet": "tablet-symbolic",
    "desktop": "computer-symbolic",
    "laptop": "laptop-symbolic",
    "tv": "tv-symbolic",
}
DEFAULT_DEVICE_ICON = "phone-symbolic"


@dataclass
class Notification:
    """An active notification mirrored from the phone."""

    id: str
    app_name: str
    title: str
    text: str
    dismissable: bool
    repliable: bool


@dataclass
class Device:
    """Snapshot of one device as seen by the daemon at enumeration time."""

    id: str
    name: str
    device_type: str
    reachable: bool
    paired: bool
    pair_requested: bool = False
    pair_requested_by_peer: bool = False
    battery_level: int | None = None
    battery_charging: bool | None = None
    notifications: list[Notification] = field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return self.reachable and self.paired

    @property
    def icon_name(self) -> str:
        return device_icon(self.device_type)


def device_icon(device_type: str) -> str:
    return _DEVICE_ICONS.get((device_type or "").lower(), DEFAULT_DEVICE_ICON)

"""Object-path composition for the KDE Connect daemon object tree."""

from __future__ import annotations

import re

from connected_bridge.exceptions import PathError

SERVICE_NAME = "org.kde.kdeconnect.daemon"
BASE_PATH = "/modules/kdeconnect"
DEVICES_PATH = f"{BASE_PATH}/devices"

PLUGINS = frozenset({
    "battery",
    "notifications",
    "ping",
    "findmyphone",
    "share",
    "clipboard",
    "sms",
    "telephony",
    "mprisremote",
})

_SEGMENT_RE = re.compile(r"[A-Za-z0-9_]+")


def validate_segment(value: str, what: str = "path component") -> str:
    """Return ``value`` if it is a legal object-path segment, else raise PathError."""
    if not isinstance(value, str) or not _SEGMENT_RE.fullmatch(value):
        raise PathError(f"Invalid {what}: {value!r} (expected ASCII letters, digits or '_')")
    return value


def daemon_path() -> str:
    return BASE_PATH


def device_path(device_id: str) -> str:
    return f"{DEVICES_PATH}/{validate_segment(device_id, 'device id')}"


def plugin_path(device_id: str, plugin: str) -> str:
    if plugin not in PLUGINS:
        raise PathError(f"Unknown plugin: {plugin!r}")
    return f"{device_path(device_id)}/{plugin}"


def notification_path(device_id: str, notification_id: str) -> str:
    segment = validate_segment(notification_id, "notification id")
    return f"{plugin_path(device_id, 'notifications')}/{segment}"


def device_id_from_path(path: str | None) -> str | None:
    """Extract the device id from any path under ``<base>/devices/``."""
    if not path or not path.startswith(DEVICES_PATH + "/"):
        return None
    device_id = path[len(DEVICES_PATH) + 1:].split("/", 1)[0]
    return device_id or None

"""Message-bus access: shared connection, object paths and typed proxies."""

from connected_bridge.bus.connection import BusConnection, RETRY_DELAY, raise_for_reply
from connected_bridge.bus.paths import (
    BASE_PATH,
    SERVICE_NAME,
    daemon_path,
    device_path,
    plugin_path,
    notification_path,
    device_id_from_path,
    validate_segment,
)
from connected_bridge.bus.proxy import RemoteObject, Signal, SignalSubscription, match_rule, unwrap
from connected_bridge.bus.proxies import ProxyFactory

__all__ = [
    "BusConnection",
    "RETRY_DELAY",
    "raise_for_reply",
    "BASE_PATH",
    "SERVICE_NAME",
    "daemon_path",
    "device_path",
    "plugin_path",
    "notification_path",
    "device_id_from_path",
    "validate_segment",
    "RemoteObject",
    "Signal",
    "SignalSubscription",
    "match_rule",
    "unwrap",
    "ProxyFactory",
]

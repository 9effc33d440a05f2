"""Unified exception hierarchy for connected-bridge."""


class BridgeError(Exception):
    """Base exception for all connected-bridge errors."""


# Bus
class BusError(BridgeError):
    """Base exception for message-bus operations."""


class TransportUnavailableError(BusError):
    """The session bus could not be reached or the connection dropped."""


class ObjectNotFoundError(BusError):
    """A device, plugin or notification object does not exist on the bus."""


class PropertyFailedError(BusError):
    """Reading or writing a remote property failed."""


class RemotePluginError(BusError):
    """The remote plugin refused the request.

    Args:
        error_name: D-Bus error name returned by the daemon.
        message: Human readable text returned with the error.
    """

    def __init__(self, message: str, error_name: str | None = None):
        super().__init__(message)
        self.error_name = error_name


# Input
class InvalidInputError(BridgeError):
    """User input was rejected before any bus traffic."""


class PathError(InvalidInputError):
    """A value cannot be used as an object-path component."""

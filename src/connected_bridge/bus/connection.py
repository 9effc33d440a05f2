"""Shared session-bus connection with serialized calls and reconnection."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from dbus_fast import BusType, Message, MessageType
from dbus_fast.aio import MessageBus
from dbus_fast.errors import AuthError, InvalidAddressError

from connected_bridge.exceptions import (
    ObjectNotFoundError,
    PropertyFailedError,
    RemotePluginError,
    TransportUnavailableError,
)

logger = logging.getLogger(__name__)

RETRY_DELAY = 5.0

DBUS_SERVICE = "org.freedesktop.DBus"
DBUS_PATH = "/org/freedesktop/DBus"
PROPERTIES_INTERFACE = "org.freedesktop.DBus.Properties"

_NOT_FOUND_ERRORS = {
    "org.freedesktop.DBus.Error.UnknownObject",
    "org.freedesktop.DBus.Error.UnknownMethod",
    "org.freedesktop.DBus.Error.UnknownInterface",
    "org.freedesktop.DBus.Error.ServiceUnknown",
    "org.freedesktop.DBus.Error.NameHasNoOwner",
}

_PROPERTY_ERRORS = {
    "org.freedesktop.DBus.Error.UnknownProperty",
    "org.freedesktop.DBus.Error.PropertyReadOnly",
    "org.freedesktop.DBus.Error.InvalidArgs",
}

_TRANSPORT_ERRORS = (OSError, EOFError, AuthError, InvalidAddressError)


async def open_session_bus():
    """Default factory: connect to the user's session bus."""
    return await MessageBus(bus_type=BusType.SESSION).connect()


def raise_for_reply(reply, request: Message) -> None:
    """Translate an error reply into the exception taxonomy."""
    if reply is None or reply.message_type != MessageType.ERROR:
        return
    name = reply.error_name or "org.freedesktop.DBus.Error.Failed"
    text = reply.body[0] if reply.body and isinstance(reply.body[0], str) else name
    target = f"{request.path} {request.interface}.{request.member}"
    if name in _NOT_FOUND_ERRORS:
        raise ObjectNotFoundError(f"{target}: {text}")
    if request.interface == PROPERTIES_INTERFACE or name in _PROPERTY_ERRORS:
        raise PropertyFailedError(f"{target}: {text}")
    raise RemotePluginError(text, error_name=name)


class BusConnection:
    """One shared message-bus handle for every proxy.

    The handle is opened lazily and never cloned. A single lock serializes
    opening the connection and each method call, so request ordering on the
    wire matches the order in which tasks issued them.

    Args:
        bus_factory: Coroutine function returning a connected bus. Defaults to
            the session bus.
        retry_delay: Seconds between reconnection attempts.
    """

    def __init__(
        self,
        bus_factory: Callable[[], Awaitable[Any]] | None = None,
        retry_delay: float = RETRY_DELAY,
    ):
        self._bus_factory = bus_factory or open_session_bus
        self.retry_delay = retry_delay
        self._bus = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._bus is not None and bool(getattr(self._bus, "connected", True))

    async def get(self):
        """Return the shared bus handle, connecting if needed."""
        async with self._lock:
            return await self._ensure_bus()

    async def _ensure_bus(self):
        if self.is_connected:
            return self._bus
        self._bus = None
        try:
            self._bus = await self._bus_factory()
        except _TRANSPORT_ERRORS as e:
            raise TransportUnavailableError(f"Failed to connect to the session bus: {e}") from e
        logger.info("Connected to the session bus")
        return self._bus

    def reset(self) -> None:
        """Drop the handle; the next ``get()`` reopens the connection."""
        bus, self._bus = self._bus, None
        if bus is not None:
            try:
                bus.disconnect()
            except _TRANSPORT_ERRORS as e:
                logger.debug(f"Ignoring error while disconnecting: {e}")
            logger.info("Session bus connection reset")

    async def call(self, message: Message):
        """Send one method call and return its reply.

        Raises:
            TransportUnavailableError: the bus is unreachable (handle is reset).
            ObjectNotFoundError, PropertyFailedError, RemotePluginError: the
                daemon answered with an error.
        """
        async with self._lock:
            bus = await self._ensure_bus()
            try:
                reply = await bus.call(message)
            except _TRANSPORT_ERRORS as e:
                self.reset()
                raise TransportUnavailableError(
                    f"Call {message.interface}.{message.member} failed: {e}"
                ) from e
        raise_for_reply(reply, message)
        return reply

    async def add_match(self, rule: str) -> None:
        await self.call(Message(
            destination=DBUS_SERVICE,
            path=DBUS_PATH,
            interface=DBUS_SERVICE,
            member="AddMatch",
            signature="s",
            body=[rule],
        ))
        logger.debug(f"Added match rule: {rule}")

    async def remove_match(self, rule: str) -> None:
        await self.call(Message(
            destination=DBUS_SERVICE,
            path=DBUS_PATH,
            interface=DBUS_SERVICE,
            member="RemoveMatch",
            signature="s",
            body=[rule],
        ))

    async def add_handler(self, handler: Callable[[Message], Any]) -> None:
        bus = await self.get()
        bus.add_message_handler(handler)

    def remove_handler(self, handler: Callable[[Message], Any]) -> None:
        if self._bus is not None:
            self._bus.remove_message_handler(handler)

    async def run_reconnector(
        self,
        on_connected: Callable[[], Awaitable[None]] | None = None,
        on_failure: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        """Keep the connection alive until cancelled.

        After each successful connect ``on_connected`` runs (to re-install
        subscriptions); after each failure or disconnect ``on_failure`` runs
        and the loop sleeps ``retry_delay`` seconds before trying again.
        """
        while True:
            try:
                bus = await self.get()
            except TransportUnavailableError as e:
                logger.error(f"{e}; retrying in {self.retry_delay}s")
                if on_failure is not None:
                    await on_failure(str(e))
                await asyncio.sleep(self.retry_delay)
                continue

            if on_connected is not None:
                await on_connected()
            try:
                await bus.wait_for_disconnect()
            except Exception as e:
                # wait_for_disconnect re-raises whatever closed the socket
                logger.warning(f"Session bus connection lost: {e}")
            logger.warning(f"Session bus disconnected; reconnecting in {self.retry_delay}s")
            self.reset()
            if on_failure is not None:
                await on_failure("Session bus disconnected")
            await asyncio.sleep(self.retry_delay)

    def close(self) -> None:
        self.reset()

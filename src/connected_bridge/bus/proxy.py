"""Generic remote-object proxy and signal subscriptions."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

from dbus_fast import Message, MessageType, Variant

from connected_bridge.bus.connection import PROPERTIES_INTERFACE, BusConnection
from connected_bridge.bus.paths import SERVICE_NAME
from connected_bridge.exceptions import BusError, ObjectNotFoundError, PropertyFailedError

logger = logging.getLogger(__name__)


def unwrap(value: Any) -> Any:
    """Strip any number of Variant layers."""
    while isinstance(value, Variant):
        value = value.value
    return value


def match_rule(
    *,
    sender: str | None = None,
    interface: str | None = None,
    member: str | None = None,
    path: str | None = None,
    path_namespace: str | None = None,
) -> str:
    """Build a D-Bus match rule string for signals."""
    parts = ["type='signal'"]
    for key, value in (
        ("sender", sender),
        ("interface", interface),
        ("member", member),
        ("path", path),
        ("path_namespace", path_namespace),
    ):
        if value is not None:
            parts.append(f"{key}='{value}'")
    return ",".join(parts)


@dataclass(frozen=True)
class Signal:
    """A received signal, reduced to what consumers need."""

    member: str
    body: list
    path: str


class SignalSubscription:
    """Queue of signals for one object/interface, in arrival order."""

    def __init__(self, path: str, interface: str, members: tuple[str, ...]):
        self.path = path
        self.interface = interface
        self.members = frozenset(members)
        self.queue: asyncio.Queue[Signal] = asyncio.Queue()

    def handle(self, message: Message) -> None:
        if (
            message.message_type == MessageType.SIGNAL
            and message.path == self.path
            and message.interface == self.interface
            and message.member in self.members
        ):
            self.queue.put_nowait(Signal(message.member, list(message.body), message.path))

    async def get(self, timeout: float) -> Signal | None:
        """Next queued signal, or None if nothing arrives within ``timeout``."""
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            if timeout <= 0:
                return None
        try:
            return await asyncio.wait_for(self.queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


class RemoteObject:
    """Thin accessor for one interface on one object path.

    Construction performs no I/O; each call goes through the shared
    connection and is never retried here.
    """

    interface = ""

    def __init__(self, connection: BusConnection, path: str, interface: str | None = None):
        self.connection = connection
        self.path = path
        if interface is not None:
            self.interface = interface

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.path!r})"

    async def call(self, member: str, signature: str = "", *args) -> Any:
        """Invoke ``member``; returns the single return value, a list, or None."""
        reply = await self.connection.call(Message(
            destination=SERVICE_NAME,
            path=self.path,
            interface=self.interface,
            member=member,
            signature=signature,
            body=list(args),
        ))
        body = list(reply.body) if reply is not None and reply.body else []
        if not body:
            return None
        return body[0] if len(body) == 1 else body

    async def get_property(self, name: str) -> Any:
        reply = await self.connection.call(Message(
            destination=SERVICE_NAME,
            path=self.path,
            interface=PROPERTIES_INTERFACE,
            member="Get",
            signature="ss",
            body=[self.interface, name],
        ))
        if reply is None or not reply.body:
            raise PropertyFailedError(f"{self.path} {self.interface}.{name}: empty reply")
        return unwrap(reply.body[0])

    async def get_property_or(self, name: str, default: Any) -> Any:
        """Read a property, returning ``default`` when it cannot be read."""
        try:
            return await self.get_property(name)
        except (PropertyFailedError, ObjectNotFoundError) as e:
            logger.warning(f"Failed to read {self.interface}.{name}: {e}")
            return default

    async def set_property(self, name: str, signature: str, value: Any) -> None:
        await self.connection.call(Message(
            destination=SERVICE_NAME,
            path=self.path,
            interface=PROPERTIES_INTERFACE,
            member="Set",
            signature="ssv",
            body=[self.interface, name, Variant(signature, value)],
        ))

    @asynccontextmanager
    async def subscribe(self, *members: str) -> AsyncIterator[SignalSubscription]:
        """Install match rules for ``members`` and yield their signal queue.

        The handler is registered before the rules so nothing emitted after
        AddMatch returns can be missed. Rules are removed on exit.
        """
        subscription = SignalSubscription(self.path, self.interface, members)
        rules = [
            match_rule(sender=SERVICE_NAME, interface=self.interface, member=m, path=self.path)
            for m in members
        ]
        await self.connection.add_handler(subscription.handle)
        added: list[str] = []
        try:
            for rule in rules:
                await self.connection.add_match(rule)
                added.append(rule)
            yield subscription
        finally:
            self.connection.remove_handler(subscription.handle)
            for rule in added:
                try:
                    await self.connection.remove_match(rule)
                except BusError as e:
                    logger.debug(f"Failed to remove match rule {rule}: {e}")

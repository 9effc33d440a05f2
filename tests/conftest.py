"""Shared fixtures: an in-memory message bus standing in for the session bus."""

import asyncio
from dataclasses import dataclass, field

import pytest
from dbus_fast import MessageType

from connected_bridge.bus.connection import BusConnection, PROPERTIES_INTERFACE
from connected_bridge.bus.paths import device_path, plugin_path
from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.bus.proxy import unwrap

DBUS_SERVICE = "org.freedesktop.DBus"


@dataclass
class FakeReply:
    body: list = field(default_factory=list)
    message_type: MessageType = MessageType.METHOD_RETURN
    error_name: str | None = None


def error_reply(name: str, text: str = "failed") -> FakeReply:
    return FakeReply(body=[text], message_type=MessageType.ERROR, error_name=name)


@dataclass
class FakeSignal:
    path: str
    interface: str
    member: str
    body: list
    message_type: MessageType = MessageType.SIGNAL


class FakeBus:
    """Answers method calls from scripted tables and records every call.

    Method results may be a plain value (the single return value), a
    ``FakeReply``, an exception instance to raise, or a callable taking the
    request message and returning any of those.
    """

    def __init__(self):
        self.connected = True
        self.calls = []
        self.handlers = []
        self.methods = {}
        self.properties = {}
        self.set_calls = []
        self.match_rules = []
        self.fail_matches = False
        self.disconnects = 0
        self._closed = asyncio.Event()

    # scripting

    def on_call(self, path, interface, member, result):
        self.methods[(path, interface, member)] = result

    def set_property_value(self, path, interface, name, value):
        self.properties[(path, interface, name)] = value

    def emit(self, path, interface, member, *body):
        signal = FakeSignal(path=path, interface=interface, member=member, body=list(body))
        for handler in list(self.handlers):
            handler(signal)

    # inspection

    def method_calls(self, member=None):
        calls = [
            m for m in self.calls
            if m.destination != DBUS_SERVICE and m.interface != PROPERTIES_INTERFACE
        ]
        if member is not None:
            calls = [m for m in calls if m.member == member]
        return calls

    # MessageBus surface

    async def call(self, message):
        self.calls.append(message)
        if message.destination == DBUS_SERVICE:
            if self.fail_matches and message.member == "AddMatch":
                return error_reply("org.freedesktop.DBus.Error.AccessDenied", "match rules disabled")
            if message.member == "AddMatch":
                self.match_rules.append(message.body[0])
            elif message.member == "RemoveMatch" and message.body[0] in self.match_rules:
                self.match_rules.remove(message.body[0])
            return FakeReply()

        if message.interface == PROPERTIES_INTERFACE:
            interface, name = message.body[0], message.body[1]
            if message.member == "Set":
                self.set_calls.append((message.path, interface, name, unwrap(message.body[2])))
                return FakeReply()
            key = (message.path, interface, name)
            if key not in self.properties:
                return error_reply("org.freedesktop.DBus.Error.UnknownProperty", f"no property {name}")
            return self._resolve(self.properties[key], message)

        key = (message.path, message.interface, message.member)
        if key not in self.methods:
            return error_reply("org.freedesktop.DBus.Error.UnknownMethod", f"no method {message.member}")
        return self._resolve(self.methods[key], message)

    @staticmethod
    def _resolve(result, message):
        if callable(result):
            result = result(message)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, FakeReply):
            return result
        return FakeReply(body=[] if result is None else [result])

    def add_message_handler(self, handler):
        self.handlers.append(handler)

    def remove_message_handler(self, handler):
        if handler in self.handlers:
            self.handlers.remove(handler)

    async def wait_for_disconnect(self):
        await self._closed.wait()

    def disconnect(self):
        self.connected = False
        self.disconnects += 1

    def drop(self):
        """Simulate the daemon side closing the connection."""
        self.connected = False
        closed, self._closed = self._closed, asyncio.Event()
        closed.set()


def make_sms(thread_id, uid, body="hello", date=1_700_000_000_000, address="+15551234567", message_type=1, read=1):
    """Wire struct for one message, fields in daemon order."""
    return [0, body, [[address]], date, message_type, read, thread_id, uid, -1, []]


@pytest.fixture
def fake_bus():
    return FakeBus()


@pytest.fixture
def connection(fake_bus):
    async def factory():
        fake_bus.connected = True
        return fake_bus

    return BusConnection(bus_factory=factory, retry_delay=0.01)


@pytest.fixture
def factory(connection):
    return ProxyFactory(connection)


@pytest.fixture
def sms_struct():
    return make_sms


@pytest.fixture
def paths():
    """Path helpers for scripting the fake bus."""

    class _Paths:
        device = staticmethod(device_path)
        plugin = staticmethod(plugin_path)

    return _Paths

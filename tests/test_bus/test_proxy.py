"""Tests for remote-object proxies and signal subscriptions."""

import pytest
from dbus_fast import Variant

from connected_bridge.bus.proxies import (
    BATTERY_INTERFACE,
    CONVERSATIONS_INTERFACE,
    DAEMON_INTERFACE,
    MPRIS_REMOTE_INTERFACE,
    SMS_INTERFACE,
    ConversationsProxy,
)
from connected_bridge.bus.proxy import RemoteObject, match_rule, unwrap
from connected_bridge.exceptions import BusError, ObjectNotFoundError, PropertyFailedError

DEVICE = "/modules/kdeconnect/devices/aaa"


def test_unwrap_nested_variants():
    assert unwrap(Variant("v", Variant("s", "x"))) == "x"
    assert unwrap(5) == 5


def test_match_rule():
    rule = match_rule(sender="org.kde.kdeconnect.daemon", interface="a.b", member="c", path="/x")
    assert rule == "type='signal',sender='org.kde.kdeconnect.daemon',interface='a.b',member='c',path='/x'"
    assert match_rule(path_namespace="/modules/kdeconnect") == "type='signal',path_namespace='/modules/kdeconnect'"


def test_factory_builds_without_io(factory, fake_bus):
    proxy = factory.battery("aaa")
    assert proxy.path == f"{DEVICE}/battery"
    assert proxy.interface == BATTERY_INTERFACE
    assert factory.conversations("aaa").path == DEVICE
    assert fake_bus.calls == []


async def test_daemon_devices(factory, fake_bus):
    fake_bus.on_call("/modules/kdeconnect", DAEMON_INTERFACE, "devices", ["aaa", "bbb"])
    assert await factory.daemon().devices() == ["aaa", "bbb"]
    call = fake_bus.method_calls("devices")[0]
    assert call.signature == "bb"
    assert call.body == [False, False]


async def test_get_property(factory, fake_bus):
    fake_bus.set_property_value(f"{DEVICE}/battery", BATTERY_INTERFACE, "charge", Variant("i", 42))
    assert await factory.battery("aaa").charge() == 42


async def test_get_property_failure(factory):
    with pytest.raises(PropertyFailedError):
        await factory.battery("aaa").charge()


async def test_get_property_or_default(factory):
    assert await factory.battery("aaa").get_property_or("charge", None) is None


async def test_set_property(factory, fake_bus):
    await factory.mprisremote("aaa").set_volume(70)
    assert fake_bus.set_calls == [(f"{DEVICE}/mprisremote", MPRIS_REMOTE_INTERFACE, "volume", 70)]


async def test_unknown_method_is_object_not_found(factory):
    with pytest.raises(ObjectNotFoundError):
        await factory.ping("aaa").send_ping()


async def test_call_returns_single_value_or_list(connection, fake_bus):
    fake_bus.on_call(DEVICE, "x.y", "one", "value")
    fake_bus.on_call(DEVICE, "x.y", "none", None)
    proxy = RemoteObject(connection, DEVICE, "x.y")
    assert await proxy.call("one") == "value"
    assert await proxy.call("none") is None


async def test_send_sms_encoding(factory, fake_bus):
    fake_bus.on_call(f"{DEVICE}/sms", SMS_INTERFACE, "sendSms", None)
    await factory.sms("aaa").send_sms(["+15551234567"], "hi")
    call = fake_bus.method_calls("sendSms")[0]
    assert call.signature == "avsavx"
    addresses, body, attachments, sub_id = call.body
    assert [a.signature for a in addresses] == ["(s)"]
    assert addresses[0].value == ["+15551234567"]
    assert (body, attachments, sub_id) == ("hi", [], -1)


async def test_request_conversation_range(factory, fake_bus):
    fake_bus.on_call(DEVICE, CONVERSATIONS_INTERFACE, "requestConversation", None)
    await factory.conversations("aaa").request_conversation(7, 10, 20)
    call = fake_bus.method_calls("requestConversation")[0]
    assert call.signature == "xii"
    assert call.body == [7, 10, 20]


class TestSubscribe:
    async def test_filters_and_orders_signals(self, factory, fake_bus):
        proxy = factory.conversations("aaa")
        async with proxy.subscribe(ConversationsProxy.UPDATED, ConversationsProxy.LOADED) as sub:
            fake_bus.emit(DEVICE, CONVERSATIONS_INTERFACE, "conversationUpdated", "first")
            fake_bus.emit(DEVICE, CONVERSATIONS_INTERFACE, "conversationCreated", "not subscribed")
            fake_bus.emit(f"{DEVICE}/sms", CONVERSATIONS_INTERFACE, "conversationUpdated", "other path")
            fake_bus.emit(DEVICE, CONVERSATIONS_INTERFACE, "conversationLoaded", 7, 2)

            first = await sub.get(0.1)
            second = await sub.get(0.1)
            assert (first.member, first.body) == ("conversationUpdated", ["first"])
            assert (second.member, second.body) == ("conversationLoaded", [7, 2])
            assert await sub.get(0) is None

    async def test_rules_installed_and_removed(self, factory, fake_bus):
        proxy = factory.conversations("aaa")
        async with proxy.subscribe(ConversationsProxy.UPDATED, ConversationsProxy.LOADED):
            assert len(fake_bus.match_rules) == 2
            assert all(f"path='{DEVICE}'" in rule for rule in fake_bus.match_rules)
            assert len(fake_bus.handlers) == 1
        assert fake_bus.match_rules == []
        assert fake_bus.handlers == []

    async def test_failed_match_removes_handler(self, factory, fake_bus):
        fake_bus.fail_matches = True
        with pytest.raises(BusError):
            async with factory.conversations("aaa").subscribe(ConversationsProxy.UPDATED):
                pass
        assert fake_bus.handlers == []

    async def test_get_times_out(self, factory):
        async with factory.conversations("aaa").subscribe(ConversationsProxy.UPDATED) as sub:
            assert await sub.get(0.01) is None

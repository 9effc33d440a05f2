"""Tests for device actions."""

import pytest

from connected_bridge.bus.proxies import (
    DEVICE_INTERFACE,
    MPRIS_REMOTE_INTERFACE,
    NOTIFICATION_INTERFACE,
    PING_INTERFACE,
    SHARE_INTERFACE,
)
from connected_bridge.devices.actions import ActionDispatcher
from connected_bridge.events import ActionKind
from connected_bridge.exceptions import RemotePluginError

DEVICE = "/modules/kdeconnect/devices/aaa"


@pytest.fixture
def dispatcher(factory):
    return ActionDispatcher(factory)


async def test_ping(dispatcher, fake_bus):
    fake_bus.on_call(f"{DEVICE}/ping", PING_INTERFACE, "sendPing", None)
    result = await dispatcher.ping("aaa")
    assert result.ok
    assert result.action is ActionKind.PING
    assert result.device_id == "aaa"


async def test_ping_missing_plugin(dispatcher):
    result = await dispatcher.ping("aaa")
    assert not result.ok
    assert result.message.startswith("Failed to send ping")


async def test_remote_refusal_carries_message(dispatcher, fake_bus):
    fake_bus.on_call(DEVICE, DEVICE_INTERFACE, "requestPair", RemotePluginError("already paired"))
    result = await dispatcher.request_pair("aaa")
    assert not result.ok
    assert result.is_pairing
    assert "already paired" in result.message


async def test_invalid_device_id_is_failed_result(dispatcher, fake_bus):
    result = await dispatcher.ring("no/good")
    assert not result.ok
    assert fake_bus.calls == []


async def test_share_file_sends_absolute_url(dispatcher, fake_bus, tmp_path):
    target = tmp_path / "photo.jpg"
    target.write_bytes(b"\xff")
    fake_bus.on_call(f"{DEVICE}/share", SHARE_INTERFACE, "shareUrl", None)

    result = await dispatcher.share_file("aaa", target)
    assert result.ok
    call = fake_bus.method_calls("shareUrl")[0]
    assert call.body == [f"file://{target.resolve()}"]


async def test_share_missing_file(dispatcher, fake_bus, tmp_path):
    result = await dispatcher.share_file("aaa", tmp_path / "nope.txt")
    assert not result.ok
    assert "File not found" in result.message
    assert fake_bus.calls == []


async def test_share_blank_text(dispatcher, fake_bus):
    result = await dispatcher.share_text("aaa", "   ")
    assert not result.ok
    assert fake_bus.calls == []


async def test_dismiss_notification(dispatcher, fake_bus):
    fake_bus.on_call(f"{DEVICE}/notifications/n1", NOTIFICATION_INTERFACE, "dismiss", None)
    result = await dispatcher.dismiss_notification("aaa", "n1")
    assert result.ok
    assert result.action is ActionKind.DISMISS_NOTIFICATION


@pytest.mark.parametrize("method,member", [
    ("unpair", "unpair"),
    ("accept_pairing", "acceptPairing"),
    ("reject_pairing", "rejectPairing"),
])
async def test_pairing_actions(dispatcher, fake_bus, method, member):
    fake_bus.on_call(DEVICE, DEVICE_INTERFACE, member, None)
    result = await getattr(dispatcher, method)("aaa")
    assert result.ok
    assert result.is_pairing
    assert len(fake_bus.method_calls(member)) == 1


async def test_media_action(dispatcher, fake_bus):
    fake_bus.on_call(f"{DEVICE}/mprisremote", MPRIS_REMOTE_INTERFACE, "sendAction", None)
    result = await dispatcher.media_action("aaa", "PlayPause")
    assert result.ok
    assert fake_bus.method_calls("sendAction")[0].body == ["PlayPause"]


async def test_unknown_media_action(dispatcher, fake_bus):
    result = await dispatcher.media_action("aaa", "Explode")
    assert not result.ok
    assert fake_bus.calls == []


async def test_volume_is_clamped(dispatcher, fake_bus):
    result = await dispatcher.set_volume("aaa", 150)
    assert result.ok
    assert fake_bus.set_calls == [(f"{DEVICE}/mprisremote", MPRIS_REMOTE_INTERFACE, "volume", 100)]


async def test_negative_position_rejected(dispatcher, fake_bus):
    result = await dispatcher.set_position("aaa", -5)
    assert not result.ok
    assert fake_bus.calls == []


async def test_select_player(dispatcher, fake_bus):
    result = await dispatcher.select_player("aaa", "Spotify")
    assert result.ok
    assert fake_bus.set_calls[0][2:] == ("player", "Spotify")

"""Tests for decoding message structs."""

from dbus_fast import Variant

from connected_bridge.sms.models import MessageType
from connected_bridge.sms.parser import parse_conversations, parse_messages, parse_sms_message


def test_parse_full_struct(sms_struct):
    message = parse_sms_message(sms_struct(4, 17, "hello", date=123, message_type=2, read=0))
    assert message.thread_id == 4
    assert message.uid == 17
    assert message.body == "hello"
    assert message.addresses == ["+15551234567"]
    assert message.date == 123
    assert message.message_type is MessageType.SENT
    assert message.read is False
    assert message.sub_id == -1


def test_parse_variant_wrapped_fields():
    struct = Variant("(isa(s)xiixxia(sss))", [
        0, "hi", [["+1555"], ["+1666"]], 5, 1, 1, 3, 9, 2, [],
    ])
    message = parse_sms_message(struct)
    assert message.addresses == ["+1555", "+1666"]
    assert message.is_incoming
    assert message.sub_id == 2


def test_non_struct_rejected():
    assert parse_sms_message("nope") is None
    assert parse_sms_message(None) is None


def test_short_struct_uses_defaults():
    message = parse_sms_message([0, "only body"])
    assert message.body == "only body"
    assert message.addresses == ["Unknown"]
    assert message.message_type is MessageType.INBOX
    assert message.read is True
    assert (message.uid, message.thread_id, message.date) == (0, 0, 0)


def test_mistyped_fields_use_defaults():
    message = parse_sms_message([0, 42, "not a list", "soon", True, "yes", "t", None])
    assert message.body == ""
    assert message.addresses == ["Unknown"]
    assert message.date == 0
    assert message.message_type is MessageType.INBOX
    assert message.read is True


def test_unknown_type_is_outgoing(sms_struct):
    message = parse_sms_message(sms_struct(1, 1, message_type=99))
    assert message.message_type is MessageType.SENT
    assert not message.is_incoming


def test_bare_string_addresses():
    message = parse_sms_message([0, "hi", ["+1555", ""], 1])
    assert message.addresses == ["+1555"]


def test_parse_messages_filters_sorts_and_dedups(sms_struct):
    values = [
        sms_struct(1, 3, "c", date=300),
        sms_struct(2, 9, "other", date=50),
        sms_struct(1, 1, "a", date=100),
        "garbage",
        sms_struct(1, 3, "c2", date=300),
    ]
    messages = parse_messages(values, thread_id=1)
    assert [(m.uid, m.body) for m in messages] == [(1, "a"), (3, "c2")]
    assert len(parse_messages(values)) == 3


def test_parse_conversations_keeps_last_per_thread(sms_struct):
    conversations = parse_conversations([
        sms_struct(1, 1, "first", date=200),
        sms_struct(2, 2, "other"),
        sms_struct(1, 3, "second", date=100),
    ])
    assert set(conversations) == {1, 2}
    assert conversations[1].last_message == "second"
    assert conversations[1].timestamp == 100

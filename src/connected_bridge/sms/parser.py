"""Decode the daemon's message structs into SMS models.

A message arrives as a variant wrapping a struct whose fields are read by
position::

    0 event flags    1 body      2 addresses a(s)   3 date (ms)
    4 type           5 read      6 thread id        7 uid
    8 sub id         9 attachments

Missing or mistyped fields fall back to defaults; only a value that is not
a struct at all is rejected.
"""

from __future__ import annotations

import logging
from typing import Any

from connected_bridge.bus.proxy import unwrap
from connected_bridge.sms.models import ConversationSummary, MessageType, SmsMessage

logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "Unknown"


def _field(fields: list, index: int) -> Any:
    return unwrap(fields[index]) if index < len(fields) else None


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _parse_addresses(value: Any) -> list[str]:
    addresses: list[str] = []
    if isinstance(value, (list, tuple)):
        for item in value:
            item = unwrap(item)
            # each entry is a (s) struct; tolerate a bare string too
            if isinstance(item, (list, tuple)) and item:
                item = unwrap(item[0])
            if isinstance(item, str) and item:
                addresses.append(item)
    return addresses or [UNKNOWN_ADDRESS]


def parse_sms_message(value: Any) -> SmsMessage | None:
    """Build an ``SmsMessage`` from one wire struct, or None if it is not a struct."""
    fields = unwrap(value)
    if not isinstance(fields, (list, tuple)):
        logger.debug(f"Ignoring non-struct message value: {type(fields).__name__}")
        return None
    fields = list(fields)

    body = _field(fields, 1)
    read = _field(fields, 5)
    message_type = _field(fields, 4)
    return SmsMessage(
        uid=_as_int(_field(fields, 7), 0),
        thread_id=_as_int(_field(fields, 6), 0),
        body=body if isinstance(body, str) else "",
        addresses=_parse_addresses(_field(fields, 2)),
        date=_as_int(_field(fields, 3), 0),
        message_type=(
            MessageType.from_wire(message_type)
            if isinstance(message_type, int) and not isinstance(message_type, bool)
            else MessageType.INBOX
        ),
        read=bool(read) if isinstance(read, (int, bool)) else True,
        sub_id=_as_int(_field(fields, 8), -1),
    )


def parse_messages(values: list, thread_id: int | None = None) -> list[SmsMessage]:
    """Decode a batch, optionally keeping one thread, sorted by (date, uid)."""
    messages: dict[int, SmsMessage] = {}
    for value in values:
        message = parse_sms_message(value)
        if message is None:
            continue
        if thread_id is not None and message.thread_id != thread_id:
            continue
        messages[message.uid] = message
    return sorted(messages.values(), key=lambda m: m.sort_key)


def parse_conversations(values: list) -> dict[int, ConversationSummary]:
    """Fold a batch into one summary per thread; later values overwrite earlier ones."""
    conversations: dict[int, ConversationSummary] = {}
    for value in values:
        message = parse_sms_message(value)
        if message is None:
            continue
        conversations[message.thread_id] = ConversationSummary.from_message(message)
    return conversations

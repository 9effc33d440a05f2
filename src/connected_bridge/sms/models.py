"""Data models for the SMS module."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum


class MessageType(IntEnum):
    """Android ``Telephony.TextBasedSmsColumns`` message box values."""

    INBOX = 1
    SENT = 2
    DRAFT = 3
    OUTBOX = 4
    FAILED = 5
    QUEUED = 6

    @classmethod
    def from_wire(cls, value) -> MessageType:
        """Map a raw integer; anything unknown is treated as outgoing."""
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            return cls.SENT

    @property
    def is_incoming(self) -> bool:
        return self is MessageType.INBOX


@dataclass
class SmsMessage:
    """A single SMS as reported by the phone."""

    uid: int
    thread_id: int
    body: str
    addresses: list[str] = field(default_factory=list)
    date: int = 0  # ms since epoch
    message_type: MessageType = MessageType.INBOX
    read: bool = True
    sub_id: int = -1

    @property
    def primary_address(self) -> str:
        return self.addresses[0] if self.addresses else ""

    @property
    def is_incoming(self) -> bool:
        return self.message_type.is_incoming

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.date, self.uid)


@dataclass
class ConversationSummary:
    """Latest state of one SMS thread."""

    thread_id: int
    addresses: list[str]
    last_message: str
    timestamp: int  # ms since epoch
    read: bool = True

    def __post_init__(self):
        if not self.addresses:
            raise ValueError(f"Conversation {self.thread_id} has no addresses")

    @property
    def primary_address(self) -> str:
        return self.addresses[0]

    @property
    def is_group(self) -> bool:
        return len(self.addresses) > 1

    @classmethod
    def from_message(cls, message: SmsMessage) -> ConversationSummary:
        return cls(
            thread_id=message.thread_id,
            addresses=list(message.addresses) or ["Unknown"],
            last_message=message.body,
            timestamp=message.date,
            read=message.read,
        )

"""SMS conversations, messages and sending through KDE Connect."""

from connected_bridge.sms.models import MessageType, SmsMessage, ConversationSummary
from connected_bridge.sms.parser import parse_sms_message, parse_messages, parse_conversations
from connected_bridge.sms.cache import ThreadCache, CACHE_CAPACITY
from connected_bridge.sms.collector import (
    CollectionPhase,
    SignalCollection,
    SmsCollector,
    ConversationBatch,
    MessageBatch,
)
from connected_bridge.sms.sender import send_sms, is_address_valid

__all__ = [
    "MessageType",
    "SmsMessage",
    "ConversationSummary",
    "parse_sms_message",
    "parse_messages",
    "parse_conversations",
    "ThreadCache",
    "CACHE_CAPACITY",
    "CollectionPhase",
    "SignalCollection",
    "SmsCollector",
    "ConversationBatch",
    "MessageBatch",
    "send_sms",
    "is_address_valid",
]

"""Send SMS through the phone's SMS plugin."""

from __future__ import annotations

import logging

from connected_bridge.bus.proxies import ProxyFactory
from connected_bridge.exceptions import InvalidInputError

logger = logging.getLogger(__name__)

MIN_ADDRESS_DIGITS = 7
# Multi-SIM selection is not supported; -1 lets the phone pick
DEFAULT_SUB_ID = -1

_ADDRESS_PUNCTUATION = str.maketrans("", "", "+()- .")


def is_address_valid(text: str) -> bool:
    """True for a phone number of at least seven digits, ignoring ``+()- .``."""
    digits = text.strip().translate(_ADDRESS_PUNCTUATION)
    return (
        len(digits) >= MIN_ADDRESS_DIGITS
        and digits.isascii()
        and digits.isdigit()
    )


def validate_send(addresses: list[str], body: str) -> str:
    """Return the single recipient, or raise InvalidInputError."""
    if len(addresses) != 1:
        raise InvalidInputError(
            f"Sending to {len(addresses)} recipients is not supported; exactly one is required"
        )
    if not body or not body.strip():
        raise InvalidInputError("Message body is empty")
    address = addresses[0].strip()
    if not address:
        raise InvalidInputError("Recipient address is empty")
    return address


async def send_sms(factory: ProxyFactory, device_id: str, addresses: list[str], body: str) -> str:
    """Send ``body`` to a single recipient; returns the address used.

    Input is validated before any bus traffic.

    Raises:
        InvalidInputError: not exactly one address, or an empty body.
        BusError: the daemon could not be reached or refused the message.
    """
    address = validate_send(addresses, body)
    await factory.sms(device_id).send_sms([address], body, DEFAULT_SUB_ID)
    logger.info(f"Sent SMS to {address} via {device_id}")
    return address

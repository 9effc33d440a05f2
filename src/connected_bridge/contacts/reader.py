"""Contacts synced by KDE Connect as vCard files.

KDE Connect writes one vCard per contact to
``<user-data-local>/kpeoplevcard/kdeconnect-<device_id>/``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from connected_bridge.bus.paths import validate_segment

logger = logging.getLogger(__name__)

# Shorter digit strings are too ambiguous to attribute to a contact
MIN_PHONE_DIGITS = 7
# Trailing digits compared when the full number differs (country codes)
SUFFIX_MATCH_DIGITS = 10


@dataclass
class Contact:
    """A contact record parsed from a vCard."""

    name: str
    phone_numbers: list[str] = field(default_factory=list)


def normalize_phone(raw: str) -> str:
    """Keep only the ASCII digits of a phone number."""
    return "".join(c for c in raw if "0" <= c <= "9")


def phone_suffix(digits: str) -> str:
    """Last SUFFIX_MATCH_DIGITS digits, or all of them if shorter."""
    return digits[-SUFFIX_MATCH_DIGITS:] if len(digits) > SUFFIX_MATCH_DIGITS else digits


def phone_keys(raw: str) -> tuple[str, str]:
    """(full digits, suffix) lookup keys for a phone number."""
    digits = normalize_phone(raw)
    return digits, phone_suffix(digits)


def parse_vcard(text: str) -> Contact | None:
    """Extract the display name and phone numbers from one vCard.

    Never raises: unrecognized or malformed lines are ignored. Numbers in
    encoded form (anything containing ``=``) are skipped.
    """
    name = ""
    phone_numbers: list[str] = []
    for line in text.splitlines():
        line = line.rstrip("\r")
        if line.startswith("FN:"):
            name = line[3:].strip()
        elif line.startswith("TEL"):
            # TEL:..., TEL;CELL:..., TEL;TYPE=CELL:...
            _, sep, number = line.partition(":")
            number = number.strip()
            if sep and number and "=" not in number:
                phone_numbers.append(number)

    if not name or not phone_numbers:
        return None
    return Contact(name=name, phone_numbers=phone_numbers)


class ContactIndex:
    """Read-only phone-number to name lookup for one device.

    Numbers are indexed twice: by their full digit string for exact matches
    and by their last ten digits so the same number with or without a
    country code resolves to the same contact. When two contacts share a
    key the one loaded later wins.
    """

    def __init__(self):
        self._exact: dict[str, str] = {}
        self._suffix: dict[str, str] = {}
        self._contacts: list[Contact] = []

    @classmethod
    def from_contacts(cls, contacts: list[Contact]) -> ContactIndex:
        index = cls()
        for contact in contacts:
            for number in contact.phone_numbers:
                digits, suffix = phone_keys(number)
                if len(digits) < MIN_PHONE_DIGITS:
                    continue
                index._exact[digits] = contact.name
                index._suffix[suffix] = contact.name
            index._contacts.append(contact)
        # sorted() is stable, so equal names keep their load order
        index._contacts = sorted(index._contacts, key=lambda c: c.name.lower())
        return index

    def get_name(self, phone_number: str) -> str | None:
        """Exact digits first, then the ten-digit suffix."""
        digits, suffix = phone_keys(phone_number)
        if len(digits) < MIN_PHONE_DIGITS:
            return None
        name = self._exact.get(digits)
        if name is not None:
            return name
        return self._suffix.get(suffix)

    def get_name_or_number(self, phone_number: str) -> str:
        name = self.get_name(phone_number)
        return name if name and name.strip() else phone_number

    def search_by_name(self, query: str, limit: int = 10) -> list[Contact]:
        """Case-insensitive substring search over the name-sorted list."""
        if not query:
            return []
        needle = query.lower()
        matches: list[Contact] = []
        for contact in self._contacts:
            if len(matches) >= limit:
                break
            if needle in contact.name.lower():
                matches.append(contact)
        return matches

    def all_contacts(self) -> list[Contact]:
        return list(self._contacts)

    @property
    def phone_mappings(self) -> int:
        return len(self._exact)

    def __len__(self) -> int:
        return len(self._contacts)

    def __bool__(self) -> bool:
        return bool(self._contacts)


def data_local_dir() -> Path:
    """``$XDG_DATA_HOME`` or ``~/.local/share``."""
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".local" / "share"


def vcard_dir(device_id: str, base_dir: Path | None = None) -> Path:
    validate_segment(device_id, "device id")
    return (base_dir or data_local_dir()) / "kpeoplevcard" / f"kdeconnect-{device_id}"


def _read_contacts(directory: Path) -> list[Contact]:
    if not directory.is_dir():
        logger.debug(f"vCard directory does not exist: {directory}")
        return []

    contacts: list[Contact] = []
    for path in sorted(directory.iterdir()):
        if path.suffix != ".vcf" or not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Failed to read vCard {path.name}: {e}")
            continue
        contact = parse_vcard(text)
        if contact is not None:
            contacts.append(contact)
    return contacts


def load_index_sync(device_id: str, base_dir: Path | None = None) -> ContactIndex:
    directory = vcard_dir(device_id, base_dir)
    try:
        contacts = _read_contacts(directory)
    except OSError as e:
        logger.warning(f"Failed to read vCard directory {directory}: {e}")
        contacts = []
    index = ContactIndex.from_contacts(contacts)
    logger.info(
        f"Loaded {len(index)} contacts with {index.phone_mappings} phone mappings for {device_id}"
    )
    return index


async def load_for_device(device_id: str, base_dir: Path | None = None) -> ContactIndex:
    """Load a device's contacts without blocking the event loop."""
    return await asyncio.to_thread(load_index_sync, device_id, base_dir)

"""Phone contacts synced by KDE Connect (vCard files)."""

from connected_bridge.contacts.reader import (
    Contact,
    ContactIndex,
    MIN_PHONE_DIGITS,
    SUFFIX_MATCH_DIGITS,
    normalize_phone,
    phone_suffix,
    phone_keys,
    parse_vcard,
    vcard_dir,
    load_for_device,
)

__all__ = [
    "Contact",
    "ContactIndex",
    "MIN_PHONE_DIGITS",
    "SUFFIX_MATCH_DIGITS",
    "normalize_phone",
    "phone_suffix",
    "phone_keys",
    "parse_vcard",
    "vcard_dir",
    "load_for_device",
]

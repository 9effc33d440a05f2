"""Tests for the vCard contact index."""

import pytest

from connected_bridge.contacts.reader import (
    Contact,
    ContactIndex,
    load_for_device,
    normalize_phone,
    parse_vcard,
    phone_suffix,
    vcard_dir,
)
from connected_bridge.exceptions import PathError

ALICE = "BEGIN:VCARD\r\nVERSION:3.0\r\nFN:Alice\r\nTEL;TYPE=CELL:+1 (555) 123-4567\r\nEND:VCARD\r\n"


def test_normalize_phone():
    assert normalize_phone("+1 (555) 123-4567") == "15551234567"
    assert normalize_phone("١٢٣") == ""


def test_phone_suffix():
    assert phone_suffix("15551234567") == "5551234567"
    assert phone_suffix("1234567") == "1234567"


def test_parse_vcard():
    contact = parse_vcard(ALICE)
    assert contact == Contact(name="Alice", phone_numbers=["+1 (555) 123-4567"])


def test_parse_vcard_tel_variants():
    text = "FN:Bob\nTEL:555-0100\nTEL;CELL:555-0101\nTEL;ENCODING=QUOTED-PRINTABLE:=35=35\n"
    assert parse_vcard(text).phone_numbers == ["555-0100", "555-0101"]


def test_parse_vcard_requires_name_and_number():
    assert parse_vcard("FN:Nobody\n") is None
    assert parse_vcard("TEL:5551234567\n") is None
    assert parse_vcard("garbage") is None


def test_lookup_with_and_without_country_code():
    index = ContactIndex.from_contacts([Contact("Alice", ["+1 (555) 123-4567"])])
    assert index.get_name("5551234567") == "Alice"
    assert index.get_name("+15551234567") == "Alice"
    assert index.get_name("+44 555 123 4567") == "Alice"


def test_short_numbers_never_match():
    index = ContactIndex.from_contacts([Contact("Voicemail", ["123456"]), Contact("Bob", ["5550100777"])])
    assert index.get_name("123456") is None
    assert index.get_name("100777") is None
    assert index.phone_mappings == 1


def test_later_contact_wins_collision():
    index = ContactIndex.from_contacts([
        Contact("First", ["5551234567"]),
        Contact("Second", ["555-123-4567"]),
    ])
    assert index.get_name("5551234567") == "Second"


def test_get_name_or_number():
    index = ContactIndex.from_contacts([Contact("Alice", ["5551234567"])])
    assert index.get_name_or_number("5551234567") == "Alice"
    assert index.get_name_or_number("5559999999") == "5559999999"


def test_search_by_name():
    index = ContactIndex.from_contacts([
        Contact("bob smith", ["5550000001"]),
        Contact("Alice Smith", ["5550000002"]),
        Contact("Carol", ["5550000003"]),
    ])
    assert [c.name for c in index.search_by_name("SMITH")] == ["Alice Smith", "bob smith"]
    assert [c.name for c in index.search_by_name("smith", limit=1)] == ["Alice Smith"]
    assert index.search_by_name("") == []
    assert len(index) == 3


def test_empty_index():
    index = ContactIndex()
    assert not index
    assert index.get_name("5551234567") is None
    assert index.all_contacts() == []


def test_vcard_dir(tmp_path):
    assert vcard_dir("abc", tmp_path) == tmp_path / "kpeoplevcard" / "kdeconnect-abc"
    with pytest.raises(PathError):
        vcard_dir("../etc", tmp_path)


def test_vcard_dir_uses_xdg_data_home(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path))
    assert vcard_dir("abc") == tmp_path / "kpeoplevcard" / "kdeconnect-abc"


async def test_load_for_device(tmp_path):
    directory = vcard_dir("abc", tmp_path)
    directory.mkdir(parents=True)
    (directory / "alice.vcf").write_text(ALICE)
    (directory / "empty.vcf").write_text("FN:No Number\n")
    (directory / "notes.txt").write_text("FN:Ignored\nTEL:5557654321\n")
    (directory / "bad.vcf").write_bytes(b"FN:Bj\xf6rn\nTEL:5550001111\n")

    index = await load_for_device("abc", tmp_path)
    assert len(index) == 2
    assert index.get_name("5551234567") == "Alice"
    assert index.get_name("5557654321") is None
    assert index.get_name("5550001111").startswith("Bj")


async def test_missing_directory_is_empty(tmp_path):
    index = await load_for_device("abc", tmp_path)
    assert len(index) == 0

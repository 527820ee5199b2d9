"""Shared test fixtures for esptext tests."""

from __future__ import annotations

import struct
import zlib
from pathlib import Path

import pytest

from esptext.core.constants import Game, RecordFlag
from esptext.core.records import GroupRecord, PluginFile, Record, Subrecord
from esptext.core.string_table import StringTableSet


def make_subrecord(type_tag: str, data: bytes | str) -> Subrecord:
    """Create a Subrecord from a string type and data (str gets UTF-8 + NUL)."""
    if isinstance(data, str):
        data = data.encode("utf-8") + b"\x00"
    return Subrecord(type=type_tag.encode("ascii"), data=bytearray(data))


def make_string_id_subrecord(type_tag: str, string_id: int) -> Subrecord:
    """Create a subrecord holding a 4-byte string table ID."""
    return Subrecord(type=type_tag.encode("ascii"), data=bytearray(struct.pack("<I", string_id)))


def make_tes4_header(version: float = 0.94, flags: int = 0) -> Record:
    """Create a minimal TES4 header record."""
    hedr_data = struct.pack("<fII", version, 0, 0x800)
    return Record(
        type=b"TES4",
        flags=flags,
        form_id=0,
        subrecords=[
            Subrecord(type=b"HEDR", data=bytearray(hedr_data)),
        ],
    )


def make_record(
    type_tag: str,
    form_id: int,
    subrecords: list[Subrecord] | None = None,
    flags: int = 0,
) -> Record:
    """Create a Record with the given type, form_id, and subrecords."""
    return Record(
        type=type_tag.encode("ascii"),
        flags=flags,
        form_id=form_id,
        subrecords=subrecords or [],
    )


def make_group(label: str, children: list[Record | GroupRecord] | None = None) -> GroupRecord:
    """Create a top-level GroupRecord with the given label."""
    return GroupRecord(
        label=label.encode("ascii").ljust(4, b"\x00")[:4],
        group_type=0,
        children=children or [],
    )


def make_plugin(
    records: list[tuple[str, int, list[Subrecord]]] | None = None,
    version: float = 0.94,
) -> PluginFile:
    """Build a minimal valid PluginFile.

    Args:
        records: List of (record_type, form_id, subrecords) tuples.
                 They will all be placed in a single GRUP.
        version: HEDR version float.
    """
    plugin = PluginFile(blocks=[make_tes4_header(version)])

    if records:
        children: list[Record | GroupRecord] = []
        for rec_type, form_id, subs in records:
            children.append(make_record(rec_type, form_id, subs))
        plugin.blocks.append(make_group(records[0][0][:4], children))

    plugin.game = plugin.detect_game()
    return plugin


def make_skyrim_plugin(
    records: list[tuple[str, int, list[Subrecord]]] | None = None,
    localized: bool = False,
    string_tables: StringTableSet | None = None,
) -> PluginFile:
    """Build a Skyrim plugin, optionally flagged localized with attached tables."""
    plugin = make_plugin(records, version=1.70)
    if localized:
        assert plugin.header is not None
        plugin.header.flags |= int(RecordFlag.LOCALIZED)
    plugin.string_tables = string_tables
    assert plugin.game == Game.SKYRIM
    return plugin


# Raw byte builders, for exercising the parser on hand-made buffers


def sub_bytes(type_tag: bytes, data: bytes, size: int | None = None) -> bytes:
    """Encode one subrecord; *size* overrides the uint16 length field."""
    return type_tag + struct.pack("<H", len(data) if size is None else size) + data


def record_bytes(
    type_tag: bytes,
    payload: bytes,
    form_id: int = 0,
    flags: int = 0,
    size: int | None = None,
    tail: tuple[int, int, int, int] = (0, 0, 0, 0),
) -> bytes:
    """Encode a record header + payload; *size* overrides the declared length."""
    declared = len(payload) if size is None else size
    return struct.pack("<4sIII4H", type_tag, declared, flags, form_id, *tail) + payload


def compressed_record_bytes(type_tag: bytes, logical: bytes, form_id: int = 0) -> bytes:
    """Encode a record whose payload is zlib-compressed with a size prefix."""
    payload = struct.pack("<I", len(logical)) + zlib.compress(logical)
    return record_bytes(type_tag, payload, form_id, flags=int(RecordFlag.COMPRESSED))


def group_bytes(
    label: bytes,
    children: bytes,
    group_type: int = 0,
    size: int | None = None,
) -> bytes:
    """Encode a GRUP header + children; *size* overrides the declared length."""
    declared = 24 + len(children) if size is None else size
    return struct.pack("<4sI4sIII", b"GRUP", declared, label, group_type, 0, 0) + children


def tes4_bytes(version: float = 0.94, flags: int = 0) -> bytes:
    return record_bytes(b"TES4", sub_bytes(b"HEDR", struct.pack("<fII", version, 0, 0x800)), flags=flags)


def build_strings_binary(entries: list[tuple[int, str]]) -> bytes:
    """Build a raw STRINGS binary (null-terminated, no length prefix)."""
    data_parts: list[bytes] = []
    directory: list[tuple[int, int]] = []
    offset = 0
    for sid, text in entries:
        encoded = text.encode("utf-8") + b"\x00"
        directory.append((sid, offset))
        data_parts.append(encoded)
        offset += len(encoded)

    data_block = b"".join(data_parts)
    header = struct.pack("<II", len(entries), len(data_block))
    dir_bytes = b"".join(struct.pack("<II", sid, off) for sid, off in directory)
    return header + dir_bytes + data_block


def build_dlstrings_binary(entries: list[tuple[int, str]]) -> bytes:
    """Build a raw DLSTRINGS/ILSTRINGS binary (length-prefixed)."""
    data_parts: list[bytes] = []
    directory: list[tuple[int, int]] = []
    offset = 0
    for sid, text in entries:
        encoded = text.encode("utf-8") + b"\x00"
        part = struct.pack("<I", len(encoded)) + encoded
        directory.append((sid, offset))
        data_parts.append(part)
        offset += len(part)

    data_block = b"".join(data_parts)
    header = struct.pack("<II", len(entries), len(data_block))
    dir_bytes = b"".join(struct.pack("<II", sid, off) for sid, off in directory)
    return header + dir_bytes + data_block


@pytest.fixture
def simple_plugin() -> PluginFile:
    """A minimal plugin with a WEAP record containing EDID and FULL."""
    return make_plugin([
        ("WEAP", 0x00001000, [
            make_subrecord("EDID", "TestWeapon"),
            make_subrecord("FULL", "Iron Sword"),
        ]),
    ])


@pytest.fixture
def multi_record_plugin() -> PluginFile:
    """A plugin with multiple record types."""
    return make_plugin([
        ("WEAP", 0x00001000, [
            make_subrecord("EDID", "TestWeapon"),
            make_subrecord("FULL", "Iron Sword"),
        ]),
        ("ARMO", 0x00001001, [
            make_subrecord("EDID", "TestArmor"),
            make_subrecord("FULL", "Leather Armor"),
            make_subrecord("DESC", "A sturdy set of leather armor."),
        ]),
        ("BOOK", 0x00001002, [
            make_subrecord("EDID", "TestBook"),
            make_subrecord("FULL", "Wasteland Survival Guide"),
            make_subrecord("DESC", "A guide to surviving the wasteland."),
        ]),
    ])


@pytest.fixture
def game_dir(tmp_path: Path) -> Path:
    """A workspace root with an empty Data/Strings directory."""
    (tmp_path / "Data" / "Strings").mkdir(parents=True)
    return tmp_path

"""Binary reader: bytes -> Record tree for TES4 plugin files.

Parsing is all-or-nothing: any structural problem raises a
PluginFormatError subclass and no partial tree is returned.
"""

from __future__ import annotations

import logging
import struct
from typing import BinaryIO, Union

from esptext.core.compression import record_payload
from esptext.core.constants import GRUP_HEADER_SIZE, GRUP_TYPE, RECORD_HEADER_SIZE
from esptext.core.errors import (
    GroupLengthMismatch,
    PayloadOverrun,
    SubrecordOverrun,
    TruncatedHeader,
    UnsupportedCompression,
)
from esptext.core.records import Block, GroupRecord, PluginFile, Record
from esptext.core.subrecords import parse_subrecords

logger = logging.getLogger(__name__)

# Struct formats (little-endian)
_RECORD_HEADER = struct.Struct("<4sIII4H")  # type + size + flags + formid + stamp/vcs/version/unknown
_GRUP_HEADER = struct.Struct("<4sI4sIII")   # 'GRUP' + size + label + grouptype + stamp + unknown

PluginSource = Union[bytes, bytearray, memoryview, BinaryIO]


def parse_plugin(source: PluginSource) -> PluginFile:
    """Parse a full ESP/ESM/ESL file from bytes or a binary stream.

    Returns a PluginFile holding every top-level record and group.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        data = bytes(source)
    else:
        data = source.read()

    blocks: list[Block] = []
    offset = 0
    while offset < len(data):
        block, offset = _parse_block(data, offset)
        blocks.append(block)

    plugin = PluginFile(blocks=blocks)
    plugin.game = plugin.detect_game()
    logger.debug(
        "Parsed %d bytes: %d top-level blocks, game %s",
        len(data), len(blocks), plugin.game.name,
    )
    return plugin


def _parse_block(data: bytes, offset: int) -> tuple[Block, int]:
    """Parse the record or group starting at *offset*; return it and the next offset."""
    if offset + RECORD_HEADER_SIZE > len(data):
        raise TruncatedHeader(
            f"Header needs {RECORD_HEADER_SIZE} bytes, {len(data) - offset} left", offset
        )
    if data[offset:offset + 4] == GRUP_TYPE:
        return _parse_group(data, offset)
    return _parse_record(data, offset)


def _parse_record(data: bytes, offset: int) -> tuple[Record, int]:
    """Parse a single record (not a GRUP)."""
    rec_type, data_size, flags, form_id, stamp, vcs, version, unknown = (
        _RECORD_HEADER.unpack_from(data, offset)
    )
    start = offset + RECORD_HEADER_SIZE
    end = start + data_size
    if end > len(data):
        raise PayloadOverrun(
            f"Record {rec_type!r} FormID 0x{form_id:08X} declares {data_size} bytes, "
            f"{len(data) - start} left",
            offset,
        )

    record = Record(
        type=rec_type,
        flags=flags,
        form_id=form_id,
        stamp=stamp,
        vcs=vcs,
        version=version,
        unknown=unknown,
    )

    raw = data[start:end]
    try:
        logical = record_payload(flags, raw)
        record.subrecords = parse_subrecords(logical)
    except UnsupportedCompression as e:
        raise UnsupportedCompression(
            f"Record {rec_type!r} FormID 0x{form_id:08X}: {e}", offset
        ) from e
    except SubrecordOverrun as e:
        raise SubrecordOverrun(
            f"Record {rec_type!r} FormID 0x{form_id:08X}: {e}", offset
        ) from e

    record.remember_source(raw)
    return record, end


def _parse_group(data: bytes, offset: int) -> tuple[GroupRecord, int]:
    """Parse a GRUP and all its children recursively."""
    _, group_size, label, group_type, stamp, unknown = _GRUP_HEADER.unpack_from(data, offset)
    if group_size < GRUP_HEADER_SIZE:
        raise GroupLengthMismatch(
            f"GRUP {label!r} declares {group_size} bytes, smaller than its header", offset
        )
    end = offset + group_size
    if end > len(data):
        raise PayloadOverrun(
            f"GRUP {label!r} declares {group_size} bytes, {len(data) - offset} left", offset
        )

    group = GroupRecord(label=label, group_type=group_type, stamp=stamp, unknown=unknown)

    # Children are read against the whole buffer so that one overshooting
    # the group end is reported as a length mismatch at group close.
    cursor = offset + GRUP_HEADER_SIZE
    while cursor < end:
        child, cursor = _parse_block(data, cursor)
        group.children.append(child)

    if cursor != end:
        raise GroupLengthMismatch(
            f"GRUP {label!r} declares {group_size} bytes but children consumed "
            f"{cursor - offset}",
            offset,
        )
    return group, end

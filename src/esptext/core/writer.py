"""Binary writer: Record tree -> bytes for TES4 plugin files.

Serialization is a bottom-up fold: every block is turned into bytes and
its length field comes from those bytes.  The tree itself is never
mutated while writing.
"""

from __future__ import annotations

import io
import logging
import struct
from typing import BinaryIO

from esptext.core.compression import compress_record_data
from esptext.core.constants import GRUP_HEADER_SIZE, GRUP_TYPE
from esptext.core.records import Block, GroupRecord, PluginFile, Record
from esptext.core.subrecords import serialize_subrecords

logger = logging.getLogger(__name__)

_RECORD_HEADER = struct.Struct("<4sIII4H")
_GRUP_HEADER = struct.Struct("<4sI4sIII")


def write_plugin(plugin: PluginFile, stream: BinaryIO) -> None:
    """Serialize a PluginFile to a binary stream."""
    stream.write(serialize_plugin(plugin))


def serialize_plugin(plugin: PluginFile) -> bytes:
    """Serialize a PluginFile to a complete in-memory buffer."""
    buf = io.BytesIO()
    for block in plugin.blocks:
        buf.write(serialize_block(block))
    data = buf.getvalue()
    logger.debug("Serialized %d top-level blocks into %d bytes", len(plugin.blocks), len(data))
    return data


def serialize_block(block: Block) -> bytes:
    if isinstance(block, GroupRecord):
        return serialize_group(block)
    return serialize_record(block)


def record_payload_bytes(record: Record) -> bytes:
    """Return the stored payload for *record*, compressed if flagged.

    Untouched records reuse the bytes they were loaded from.  Recompressing
    with Python's zlib can produce different output than the original tool,
    which would change every enclosing group size.
    """
    original = record.source_payload()
    if original is not None:
        return original
    logical = serialize_subrecords(record.subrecords)
    if record.is_compressed:
        return compress_record_data(logical)
    return logical


def serialize_record(record: Record) -> bytes:
    """Serialize a single record, recalculating its data size."""
    payload = record_payload_bytes(record)
    header = _RECORD_HEADER.pack(
        record.type,
        len(payload),
        record.flags,
        record.form_id,
        record.stamp,
        record.vcs,
        record.version,
        record.unknown,
    )
    return header + payload


def serialize_group(group: GroupRecord) -> bytes:
    """Serialize a GRUP and all children, recalculating group_size."""
    children_data = b"".join(serialize_block(child) for child in group.children)
    header = _GRUP_HEADER.pack(
        GRUP_TYPE,
        GRUP_HEADER_SIZE + len(children_data),
        group.label,
        group.group_type,
        group.stamp,
        group.unknown,
    )
    return header + children_data

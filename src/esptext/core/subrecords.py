"""Subrecord codec: record payload bytes <-> list of Subrecord.

Handles the XXXX extended-size mechanism: when a subrecord's data exceeds
65535 bytes, the file places a preceding XXXX subrecord (size=4) whose
uint32 payload carries the real size.  The actual subrecord follows with
a placeholder uint16 size field.
"""

from __future__ import annotations

import struct

from esptext.core.constants import MAX_SUBRECORD_SIZE, SUBRECORD_HEADER_SIZE, XXXX_TYPE
from esptext.core.errors import SubrecordOverrun
from esptext.core.records import Subrecord

_SUB_HEADER = struct.Struct("<4sH")
_UINT32 = struct.Struct("<I")


def decode_subrecord(
    data: bytes,
    offset: int,
    size_override: int | None = None,
) -> tuple[Subrecord, int]:
    """Decode one raw subrecord at *offset*.

    Returns the subrecord and the offset just past it.  *size_override*
    replaces the uint16 size field (used after an XXXX marker).
    """
    if offset + SUBRECORD_HEADER_SIZE > len(data):
        raise SubrecordOverrun(
            f"Subrecord header needs {SUBRECORD_HEADER_SIZE} bytes, "
            f"{len(data) - offset} left",
            offset,
        )
    sub_type, sub_size = _SUB_HEADER.unpack_from(data, offset)
    if size_override is not None:
        sub_size = size_override
    start = offset + SUBRECORD_HEADER_SIZE
    end = start + sub_size
    if end > len(data):
        raise SubrecordOverrun(
            f"Subrecord {sub_type!r} declares {sub_size} bytes, {len(data) - start} left",
            offset,
        )
    return Subrecord(type=sub_type, data=bytearray(data[start:end])), end


def parse_subrecords(data: bytes) -> list[Subrecord]:
    """Parse all subrecords from a (decompressed) record payload.

    XXXX markers are consumed and fused with the subrecord that follows;
    they never appear in the returned list.
    """
    subrecords: list[Subrecord] = []
    offset = 0

    while offset < len(data):
        sub, next_offset = decode_subrecord(data, offset)
        if sub.type != XXXX_TYPE:
            subrecords.append(sub)
            offset = next_offset
            continue

        if sub.size != 4:
            raise SubrecordOverrun(f"XXXX marker carries {sub.size} bytes, expected 4", offset)
        if next_offset >= len(data):
            raise SubrecordOverrun("XXXX marker is not followed by a subrecord", offset)
        real_size = _UINT32.unpack_from(sub.data)[0]
        sub, offset = decode_subrecord(data, next_offset, size_override=real_size)
        subrecords.append(sub)

    return subrecords


def serialize_subrecords(subrecords: list[Subrecord]) -> bytes:
    """Serialize subrecords back to a record payload.

    Payloads above 65535 bytes get an XXXX marker with the real uint32 size,
    and their own uint16 size field is written as 0.
    """
    parts: list[bytes] = []
    for sub in subrecords:
        if sub.size > MAX_SUBRECORD_SIZE:
            parts.append(_SUB_HEADER.pack(XXXX_TYPE, 4))
            parts.append(_UINT32.pack(sub.size))
            parts.append(_SUB_HEADER.pack(sub.type, 0))
        else:
            parts.append(_SUB_HEADER.pack(sub.type, sub.size))
        parts.append(bytes(sub.data))
    return b"".join(parts)

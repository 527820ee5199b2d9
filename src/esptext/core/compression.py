"""zlib compression/decompression for TES4 compressed records."""

from __future__ import annotations

import struct
import zlib

from esptext.core.constants import RecordFlag
from esptext.core.errors import UnsupportedCompression


def decompress_record_data(raw: bytes) -> tuple[bytes, int]:
    """Decompress a compressed record's data payload.

    Args:
        raw: The full data payload (starts with 4-byte decompressed size,
             followed by zlib-compressed data).

    Returns:
        Tuple of (decompressed_bytes, original_decompressed_size).
    """
    if len(raw) < 4:
        raise UnsupportedCompression("Compressed data too short: missing decompressed size field")
    decompressed_size = struct.unpack_from("<I", raw, 0)[0]
    try:
        decompressed = zlib.decompress(raw[4:])
    except zlib.error as e:
        raise UnsupportedCompression(f"Inflate failed: {e}") from e
    if len(decompressed) != decompressed_size:
        raise UnsupportedCompression(
            f"Decompressed size mismatch: expected {decompressed_size}, got {len(decompressed)}"
        )
    return decompressed, decompressed_size


def compress_record_data(data: bytes) -> bytes:
    """Compress data for a compressed record.

    Returns:
        4-byte decompressed size (little-endian) + zlib compressed data.
    """
    compressed = zlib.compress(data)
    return struct.pack("<I", len(data)) + compressed


def record_payload(flags: int, raw: bytes) -> bytes:
    """Return the logical payload of a record given its header flags."""
    if not flags & RecordFlag.COMPRESSED:
        return raw
    decompressed, _ = decompress_record_data(raw)
    return decompressed

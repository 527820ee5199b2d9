"""Data classes representing the TES4 plugin record tree."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

from esptext.core.constants import TES4_TYPE, Game, RecordFlag
from esptext.core.errors import NonUtf8InlinePayload

if TYPE_CHECKING:
    from esptext.core.string_table import StringTableSet


@dataclass
class Subrecord:
    """A single subrecord: Type(4) + Size(2) + Data(N).

    data is a mutable bytearray so the patcher can modify it in-place.
    size is always computed from len(data); payloads above 65535 bytes are
    written with a preceding XXXX marker.
    """

    type: bytes  # 4-byte ASCII tag, e.g. b"FULL"
    data: bytearray

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def has_terminator(self) -> bool:
        return self.data[-1:] == b"\x00"

    def decode_text(self) -> str:
        """Decode the payload as UTF-8, dropping a single trailing NUL.

        The terminator is storage metadata, not part of the text.
        """
        raw = bytes(self.data)
        if raw.endswith(b"\x00"):
            raw = raw[:-1]
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise NonUtf8InlinePayload(
                f"{self.type.decode('ascii', 'replace')} payload is not valid UTF-8: {e}"
            ) from e

    def encode_text(self, text: str) -> None:
        """Replace the payload with UTF-8 text, keeping the NUL terminator if it had one."""
        encoded = text.encode("utf-8")
        if self.has_terminator:
            encoded += b"\x00"
        self.data = bytearray(encoded)


@dataclass
class Record:
    """A TES4 record with header fields and a list of subrecords.

    The data size used for serialization is computed from the subrecords.
    Stamp, version-control, version and unknown are opaque pass-through.
    """

    type: bytes  # 4-byte ASCII tag, e.g. b"WEAP"
    flags: int
    form_id: int
    stamp: int = 0
    vcs: int = 0
    version: int = 0
    unknown: int = 0
    subrecords: list[Subrecord] = field(default_factory=list)

    # Payload exactly as loaded (compressed bytes included) and the decoded
    # (type, data) pairs it produced.
    _source_payload: bytes | None = field(default=None, repr=False)
    _source_subrecords: tuple[tuple[bytes, bytes], ...] | None = field(default=None, repr=False)
    _source_compressed: bool = field(default=False, repr=False)

    @property
    def is_compressed(self) -> bool:
        return bool(self.flags & RecordFlag.COMPRESSED)

    def set_compressed(self, compressed: bool) -> None:
        """Explicitly switch the compression flag; the payload is re-encoded on write."""
        if compressed:
            self.flags = self.flags | int(RecordFlag.COMPRESSED)
        else:
            self.flags = self.flags & ~int(RecordFlag.COMPRESSED)

    def _snapshot(self) -> tuple[tuple[bytes, bytes], ...]:
        return tuple((sub.type, bytes(sub.data)) for sub in self.subrecords)

    def remember_source(self, payload: bytes) -> None:
        """Record *payload* as the stored form of the current subrecords."""
        self._source_payload = payload
        self._source_subrecords = self._snapshot()
        self._source_compressed = self.is_compressed

    def source_payload(self) -> bytes | None:
        """Return the stored payload if the subrecords are unchanged since loading."""
        if self._source_payload is None or self._source_compressed != self.is_compressed:
            return None
        if self._snapshot() != self._source_subrecords:
            return None
        return self._source_payload

    @property
    def editor_id(self) -> str:
        for sub in self.subrecords:
            if sub.type == b"EDID":
                return bytes(sub.data).rstrip(b"\x00").decode("utf-8", "replace")
        return ""


@dataclass
class GroupRecord:
    """A GRUP container holding records and nested groups.

    The on-disk group size (header included) is not stored; the writer
    derives it from the serialized children.
    """

    label: bytes  # 4 raw bytes (meaning depends on group_type)
    group_type: int
    stamp: int = 0
    unknown: int = 0
    children: list[Block] = field(default_factory=list)


Block = Union[Record, GroupRecord]


def iter_blocks_records(blocks: list[Block]) -> Iterator[Record]:
    """Depth-first walk yielding every record in file order."""
    for block in blocks:
        if isinstance(block, GroupRecord):
            yield from iter_blocks_records(block.children)
        else:
            yield block


@dataclass
class PluginFile:
    """Top-level representation of an ESP/ESM/ESL file.

    blocks holds the top-level sequence, normally the TES4 header record
    followed by GRUPs.
    """

    blocks: list[Block] = field(default_factory=list)
    game: Game = Game.UNKNOWN
    string_tables: StringTableSet | None = field(default=None, repr=False)

    @property
    def header(self) -> Record | None:
        if self.blocks and isinstance(self.blocks[0], Record) and self.blocks[0].type == TES4_TYPE:
            return self.blocks[0]
        return None

    @property
    def groups(self) -> list[GroupRecord]:
        return [b for b in self.blocks if isinstance(b, GroupRecord)]

    @property
    def is_localized(self) -> bool:
        """Check if this plugin declares external string tables (LOCALIZED flag)."""
        header = self.header
        return header is not None and bool(header.flags & RecordFlag.LOCALIZED)

    def iter_records(self) -> Iterator[Record]:
        return iter_blocks_records(self.blocks)

    def count_records(self) -> int:
        return sum(1 for _ in self.iter_records())

    def count_groups(self) -> int:
        def _count(blocks: list[Block]) -> int:
            total = 0
            for b in blocks:
                if isinstance(b, GroupRecord):
                    total += 1 + _count(b.children)
            return total
        return _count(self.blocks)

    def detect_game(self) -> Game:
        """Detect game from the HEDR subrecord version float."""
        header = self.header
        if header is None:
            return Game.UNKNOWN
        for sub in header.subrecords:
            if sub.type == b"HEDR" and len(sub.data) >= 4:
                version = struct.unpack("<f", bytes(sub.data[:4]))[0]
                if abs(version - 1.70) < 0.02:
                    return Game.SKYRIM
                if abs(version - 0.94) < 0.005:
                    return Game.FALLOUT3
                if abs(version - 0.95) < 0.005 or abs(version - 1.0) < 0.005:
                    return Game.FALLOUT4
        return Game.UNKNOWN

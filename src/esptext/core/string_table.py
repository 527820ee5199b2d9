"""Parse, look up, update and serialize Bethesda string tables (.strings, .dlstrings, .ilstrings).

String table format (all little-endian):
  Header:    [count: u32] [data_size: u32]
  Directory: [string_id: u32] [offset: u32] x count   (offsets relative to data block start)
  Data:
    STRINGS:      null-terminated strings
    DL/ILSTRINGS: [length: u32 (includes null)] [string: null-terminated]

Tables live at {workspace_root}/Data/Strings/{Plugin}_{language}.{ext}.
"""

from __future__ import annotations

import logging
import struct
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from esptext.core.constants import DEFAULT_LANGUAGE
from esptext.core.errors import StringIdNotFound, StringTableFormatError, StringTableNotFound

logger = logging.getLogger(__name__)


class StringTableType(Enum):
    """The three string table file types."""
    STRINGS = "strings"
    DLSTRINGS = "dlstrings"
    ILSTRINGS = "ilstrings"

    @property
    def extension(self) -> str:
        return self.value


# Lookup order when a 4-byte ID is resolved against a set
TABLE_ORDER = (StringTableType.STRINGS, StringTableType.DLSTRINGS, StringTableType.ILSTRINGS)


@dataclass
class StringTable:
    """A single string table (one of the three types)."""
    table_type: StringTableType
    entries: dict[int, str] = field(default_factory=dict)

    def __contains__(self, string_id: int) -> bool:
        return string_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, string_id: int) -> str:
        try:
            return self.entries[string_id]
        except KeyError:
            raise StringIdNotFound(string_id, f"{self.table_type.name} table") from None

    def update(self, string_id: int, text: str) -> None:
        """Replace the text of an existing ID.  New IDs are never inserted."""
        if string_id not in self.entries:
            raise StringIdNotFound(string_id, f"{self.table_type.name} table")
        self.entries[string_id] = text


@dataclass
class StringTableSet:
    """The three string tables for one plugin and language.

    ``present`` records which table files existed when the set was loaded.
    A table that is neither present nor populated cannot be updated and is
    not written back.
    """
    strings: StringTable = field(default_factory=lambda: StringTable(StringTableType.STRINGS))
    dlstrings: StringTable = field(default_factory=lambda: StringTable(StringTableType.DLSTRINGS))
    ilstrings: StringTable = field(default_factory=lambda: StringTable(StringTableType.ILSTRINGS))
    present: set[StringTableType] = field(default_factory=set)
    base_name: str = ""
    language: str = DEFAULT_LANGUAGE

    def table(self, table_type: StringTableType) -> StringTable:
        return {
            StringTableType.STRINGS: self.strings,
            StringTableType.DLSTRINGS: self.dlstrings,
            StringTableType.ILSTRINGS: self.ilstrings,
        }[table_type]

    def set_table(self, table: StringTable) -> None:
        setattr(self, table.table_type.name.lower(), table)
        self.present.add(table.table_type)

    def is_present(self, table_type: StringTableType) -> bool:
        """True if the table was loaded from disk or has been given entries."""
        return table_type in self.present or len(self.table(table_type)) > 0

    def find(self, string_id: int) -> StringTableType | None:
        """Return the first table type holding *string_id*, or None."""
        for tt in TABLE_ORDER:
            if string_id in self.table(tt):
                return tt
        return None

    def lookup(self, string_id: int) -> tuple[StringTableType, str]:
        tt = self.find(string_id)
        if tt is None:
            raise StringIdNotFound(string_id)
        return tt, self.table(tt).entries[string_id]

    def update(self, table_type: StringTableType, string_id: int, text: str) -> None:
        if not self.is_present(table_type):
            raise StringTableNotFound(
                f"No {table_type.extension} table loaded for "
                f"{self.base_name or 'plugin'} ({self.language})"
            )
        self.table(table_type).update(string_id, text)

    def __len__(self) -> int:
        return sum(len(self.table(tt)) for tt in TABLE_ORDER)


def _decode_string(raw: bytes) -> str:
    """Decode a string from a string table. UTF-8 primary, cp1252 fallback."""
    if not raw:
        return ""
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        try:
            return raw.decode("cp1252")
        except UnicodeDecodeError:
            return raw.decode("latin-1")


def parse_string_table(data: bytes, table_type: StringTableType) -> StringTable:
    """Parse a binary string table into a StringTable.

    Args:
        data: Raw bytes of the .strings/.dlstrings/.ilstrings file.
        table_type: Which type of table this is.

    Returns:
        Parsed StringTable with string_id -> text entries.
    """
    if len(data) < 8:
        raise StringTableFormatError(f"{table_type.name} table shorter than its 8-byte header")

    count, data_size = struct.unpack_from("<II", data, 0)

    # Directory starts at offset 8, each entry is 8 bytes (id + offset)
    data_block_start = 8 + count * 8
    data_block_end = data_block_start + data_size
    if data_block_end > len(data):
        raise StringTableFormatError(
            f"{table_type.name} table declares {count} entries and {data_size} data bytes, "
            f"file has {len(data)} bytes"
        )

    entries: dict[int, str] = {}

    for i in range(count):
        string_id, str_offset = struct.unpack_from("<II", data, 8 + i * 8)
        if str_offset >= data_size:
            raise StringTableFormatError(
                f"{table_type.name} entry 0x{string_id:08X} points outside the data block"
            )
        abs_offset = data_block_start + str_offset

        if table_type == StringTableType.STRINGS:
            end = data.find(b"\x00", abs_offset, data_block_end)
            if end == -1:
                raise StringTableFormatError(
                    f"STRINGS entry 0x{string_id:08X} is missing its terminator"
                )
            raw = data[abs_offset:end]
        else:
            if abs_offset + 4 > data_block_end:
                raise StringTableFormatError(
                    f"{table_type.name} entry 0x{string_id:08X} has a truncated length prefix"
                )
            length = struct.unpack_from("<I", data, abs_offset)[0]
            raw_start = abs_offset + 4
            raw_end = raw_start + length
            if length == 0 or raw_end > data_block_end:
                raise StringTableFormatError(
                    f"{table_type.name} entry 0x{string_id:08X} has invalid length {length}"
                )
            raw = data[raw_start:raw_end].rstrip(b"\x00")

        entries[string_id] = _decode_string(raw)

    return StringTable(table_type=table_type, entries=entries)


def serialize_string_table(table: StringTable) -> bytes:
    """Serialize a StringTable back to binary format.

    Entries are written in ascending string_id order for determinism.
    """
    data_parts: list[bytes] = []
    directory: list[bytes] = []
    current_offset = 0

    for sid in sorted(table.entries):
        encoded = table.entries[sid].encode("utf-8") + b"\x00"
        directory.append(struct.pack("<II", sid, current_offset))

        if table.table_type == StringTableType.STRINGS:
            part = encoded
        else:
            # DLSTRINGS / ILSTRINGS: length prefix (includes null)
            part = struct.pack("<I", len(encoded)) + encoded
        data_parts.append(part)
        current_offset += len(part)

    data_block = b"".join(data_parts)
    header = struct.pack("<II", len(directory), len(data_block))
    return header + b"".join(directory) + data_block


def resolve_workspace_root(plugin_path: str | Path) -> Path:
    """Return the game/workspace root for a plugin.

    A plugin inside a ``Data`` directory belongs to that directory's parent;
    anything else uses the plugin's own directory.
    """
    parent = Path(plugin_path).parent
    if parent.name.lower() == "data":
        return parent.parent
    return parent


def strings_dir(workspace_root: str | Path) -> Path:
    return Path(workspace_root) / "Data" / "Strings"


def string_table_paths(
    plugin_path: str | Path,
    workspace_root: str | Path | None = None,
    language: str = DEFAULT_LANGUAGE,
) -> dict[StringTableType, Path]:
    """Return the expected path of each table file for *plugin_path*.

    An existing file with an upper-case extension is preferred when the
    lower-case one is absent (case-sensitive file systems).
    """
    plugin_path = Path(plugin_path)
    root = Path(workspace_root) if workspace_root is not None else resolve_workspace_root(plugin_path)
    directory = strings_dir(root)
    paths: dict[StringTableType, Path] = {}
    for tt in TABLE_ORDER:
        path = directory / f"{plugin_path.stem}_{language}.{tt.extension}"
        upper = path.with_suffix("." + tt.extension.upper())
        if not path.exists() and upper.exists():
            path = upper
        paths[tt] = path
    return paths


def load_string_tables(
    plugin_path: str | Path,
    workspace_root: str | Path | None = None,
    language: str = DEFAULT_LANGUAGE,
) -> StringTableSet:
    """Load the three string table files for a plugin.

    A missing file is not an error; that table simply stays empty and is
    not marked present.

    Args:
        plugin_path: Path to the ESP/ESM/ESL file.
        workspace_root: Game/workspace root; resolved from the plugin path if None.
        language: Language suffix (default "english").

    Returns:
        StringTableSet with all found tables loaded.
    """
    table_set = StringTableSet(base_name=Path(plugin_path).stem, language=language)

    for tt, filepath in string_table_paths(plugin_path, workspace_root, language).items():
        if not filepath.exists():
            logger.info("String table file not found: %s", filepath)
            continue
        table_set.set_table(parse_string_table(filepath.read_bytes(), tt))
        logger.debug("Loaded %d entries from %s", len(table_set.table(tt)), filepath)

    return table_set


def save_string_tables(
    tables: StringTableSet,
    plugin_path: str | Path,
    workspace_root: str | Path | None = None,
    language: str | None = None,
) -> list[Path]:
    """Write every table that was present at load time.

    Args:
        tables: The StringTableSet to write.
        plugin_path: Path of the plugin the tables belong to (its stem names the files).
        workspace_root: Game/workspace root; resolved from the plugin path if None.
        language: Language suffix for output filenames (defaults to the set's language).

    Returns:
        List of paths written.
    """
    language = language or tables.language
    paths = string_table_paths(plugin_path, workspace_root, language)
    written: list[Path] = []

    for tt in TABLE_ORDER:
        if not tables.is_present(tt):
            continue
        filepath = paths[tt]
        filepath.parent.mkdir(parents=True, exist_ok=True)
        filepath.write_bytes(serialize_string_table(tables.table(tt)))
        written.append(filepath)

    return written


class StringTableCache:
    """Share loaded string-table sets between plugins processed in parallel.

    Reads are served from memory.  An updated set must be flushed with
    write_through() before its write-back is considered complete, otherwise
    a plugin's 4-byte IDs could point at text that only exists in memory.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sets: dict[tuple[Path, str, str], StringTableSet] = {}

    @staticmethod
    def _key(plugin_path: Path, workspace_root: Path | None, language: str) -> tuple[Path, str, str]:
        root = workspace_root if workspace_root is not None else resolve_workspace_root(plugin_path)
        return Path(root).resolve(), plugin_path.stem.lower(), language.lower()

    def get(
        self,
        plugin_path: str | Path,
        workspace_root: str | Path | None = None,
        language: str = DEFAULT_LANGUAGE,
    ) -> StringTableSet:
        plugin_path = Path(plugin_path)
        root = Path(workspace_root) if workspace_root is not None else None
        key = self._key(plugin_path, root, language)
        with self._lock:
            tables = self._sets.get(key)
            if tables is None:
                tables = load_string_tables(plugin_path, root, language)
                self._sets[key] = tables
            return tables

    def write_through(
        self,
        tables: StringTableSet,
        plugin_path: str | Path,
        workspace_root: str | Path | None = None,
    ) -> list[Path]:
        with self._lock:
            return save_string_tables(tables, plugin_path, workspace_root)

    def invalidate(self) -> None:
        with self._lock:
            self._sets.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sets)

"""Extract and classify translatable strings from a parsed plugin file."""

from __future__ import annotations

import logging
import struct
from collections.abc import Iterator
from dataclasses import dataclass, field

from esptext.core.errors import NonUtf8InlinePayload
from esptext.core.records import PluginFile, Record, Subrecord
from esptext.core.string_table import StringTableSet, StringTableType
from esptext.translation.registry import TagConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True, order=True)
class OccurrenceKey:
    """Stable identity of one translatable subrecord.

    index counts the same-tag allow-listed subrecords that precede this one
    inside the record, so records like MESG (several ITXT buttons) or INFO
    (several NAM1 pages) still get one key per subrecord.
    """

    record_type: bytes
    form_id: int
    subrecord_type: bytes
    index: int = 0

    def __str__(self) -> str:
        return (
            f"{self.record_type.decode('ascii')}:{self.form_id:08X}:"
            f"{self.subrecord_type.decode('ascii')}:{self.index}"
        )

    @classmethod
    def parse(cls, text: str) -> OccurrenceKey:
        """Parse the ``INFO:0001ABCD:FULL:0`` form produced by str()."""
        parts = text.strip().split(":")
        if len(parts) != 4 or len(parts[0]) != 4 or len(parts[2]) != 4:
            raise ValueError(f"Malformed occurrence key: {text!r}")
        try:
            form_id = int(parts[1], 16)
            index = int(parts[3])
        except ValueError:
            raise ValueError(f"Malformed occurrence key: {text!r}") from None
        return cls(parts[0].encode("ascii"), form_id, parts[2].encode("ascii"), index)

    @classmethod
    def coerce(cls, value: OccurrenceKey | str) -> OccurrenceKey:
        return value if isinstance(value, OccurrenceKey) else cls.parse(value)


@dataclass(frozen=True)
class StringStorage:
    """Where an occurrence's text lives: inline, or in a string table under an ID."""

    table_type: StringTableType | None = None
    string_id: int | None = None

    @property
    def is_localized(self) -> bool:
        return self.string_id is not None

    def __str__(self) -> str:
        if self.table_type is None:
            return "inline"
        return f"{self.table_type.extension}:{self.string_id}"


INLINE = StringStorage()


def localized(table_type: StringTableType, string_id: int) -> StringStorage:
    return StringStorage(table_type=table_type, string_id=string_id)


@dataclass
class Occurrence:
    """A translatable string with a direct reference to its source subrecord."""

    key: OccurrenceKey
    text: str
    storage: StringStorage
    subrecord: Subrecord = field(repr=False, compare=False)
    editor_id: str = ""  # EDID of parent record, for context

    @property
    def record_type(self) -> bytes:
        return self.key.record_type

    @property
    def form_id(self) -> int:
        return self.key.form_id

    @property
    def subrecord_type(self) -> bytes:
        return self.key.subrecord_type


def iter_candidates(record: Record, config: TagConfig) -> Iterator[tuple[OccurrenceKey, Subrecord]]:
    """Yield (key, subrecord) for every allow-listed subrecord of *record*.

    Indices depend only on tag order, never on payload content, so the
    extractor and the patcher derive the same keys from the same tree.
    """
    counters: dict[bytes, int] = {}
    for sub in record.subrecords:
        if not config.is_translatable(record.type, sub.type):
            continue
        idx = counters.get(sub.type, 0)
        counters[sub.type] = idx + 1
        yield OccurrenceKey(record.type, record.form_id, sub.type, idx), sub


def classify_subrecord(
    sub: Subrecord,
    tables: StringTableSet | None = None,
) -> tuple[str, StringStorage]:
    """Return (text, storage) for a candidate subrecord.

    A 4-byte payload whose uint32 is a live ID in any loaded table is
    localized.  This is a heuristic: a 4-byte inline string that happens to
    match a live ID is indistinguishable from a real reference.

    Raises NonUtf8InlinePayload for inline payloads that are not UTF-8.
    """
    if tables is not None and sub.size == 4:
        string_id = struct.unpack_from("<I", sub.data, 0)[0]
        table_type = tables.find(string_id)
        if table_type is not None:
            return tables.table(table_type).entries[string_id], localized(table_type, string_id)
    return sub.decode_text(), INLINE


class StringExtractor:
    """Walks a plugin tree and produces the ordered list of occurrences."""

    def __init__(self, config: TagConfig | None = None, *, strict: bool = False) -> None:
        self._config = config
        self.strict = strict

    def config_for(self, plugin: PluginFile) -> TagConfig:
        return self._config if self._config is not None else TagConfig.for_game(plugin.game)

    def extract(
        self,
        plugin: PluginFile,
        tables: StringTableSet | None = None,
    ) -> list[Occurrence]:
        if tables is None:
            tables = plugin.string_tables
        config = self.config_for(plugin)
        results: list[Occurrence] = []
        for record in plugin.iter_records():
            self._extract_from_record(record, config, tables, results)
        logger.debug("Extracted %d occurrences", len(results))
        return results

    def _extract_from_record(
        self,
        record: Record,
        config: TagConfig,
        tables: StringTableSet | None,
        results: list[Occurrence],
    ) -> None:
        editor_id: str | None = None
        for key, sub in iter_candidates(record, config):
            # Skip empty subrecords
            if sub.size == 0 or sub.data == b"\x00":
                continue
            try:
                text, storage = classify_subrecord(sub, tables)
            except NonUtf8InlinePayload:
                if self.strict:
                    raise
                logger.warning("Skipping %s: inline payload is not UTF-8", key)
                continue
            if editor_id is None:
                editor_id = record.editor_id
            results.append(Occurrence(key, text, storage, sub, editor_id))


def extract_occurrences(
    plugin: PluginFile,
    tables: StringTableSet | None = None,
    config: TagConfig | None = None,
) -> list[Occurrence]:
    """Walk the plugin tree and extract all translatable strings."""
    return StringExtractor(config).extract(plugin, tables)

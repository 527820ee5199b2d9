"""Apply edited text back to the plugin's subrecord data or its string tables."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Union

from esptext.core.errors import (
    EditBatchRejected,
    EspTextError,
    NonUtf8InlinePayload,
    OccurrenceKeyNotFound,
    StringTableNotFound,
)
from esptext.core.records import PluginFile, Subrecord
from esptext.core.string_table import StringTableSet
from esptext.reporting.report import EditReport
from esptext.translation.extractor import (
    OccurrenceKey,
    StringStorage,
    classify_subrecord,
    iter_candidates,
)
from esptext.translation.registry import TagConfig

logger = logging.getLogger(__name__)

KeyLike = Union[OccurrenceKey, str]
Edits = Union[Mapping[KeyLike, str], Iterable[tuple[KeyLike, str]]]


@dataclass
class _PlannedEdit:
    key: OccurrenceKey
    text: str
    subrecord: Subrecord
    storage: StringStorage


def _iter_edits(edits: Edits) -> Iterator[tuple[KeyLike, str]]:
    if isinstance(edits, Mapping):
        yield from edits.items()
    else:
        yield from edits


def index_occurrences(plugin: PluginFile, config: TagConfig) -> dict[OccurrenceKey, Subrecord]:
    """Map every candidate key in the current tree to its subrecord."""
    index: dict[OccurrenceKey, Subrecord] = {}
    for record in plugin.iter_records():
        for key, sub in iter_candidates(record, config):
            index[key] = sub
    return index


def _plan_edit(
    raw_key: KeyLike,
    text: str,
    index: dict[OccurrenceKey, Subrecord],
    tables: StringTableSet | None,
) -> _PlannedEdit:
    """Resolve one edit without mutating anything."""
    try:
        key = OccurrenceKey.coerce(raw_key)
    except ValueError:
        raise OccurrenceKeyNotFound(raw_key) from None
    sub = index.get(key)
    if sub is None:
        raise OccurrenceKeyNotFound(key)

    _, storage = classify_subrecord(sub, tables)
    try:
        text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise NonUtf8InlinePayload(f"New text for {key} cannot be encoded as UTF-8: {e}") from e

    if storage.is_localized:
        assert storage.table_type is not None
        if tables is None or not tables.is_present(storage.table_type):
            raise StringTableNotFound(f"No {storage.table_type.extension} table for {key}")
    return _PlannedEdit(key, text, sub, storage)


def apply_edits(
    plugin: PluginFile,
    edits: Edits,
    tables: StringTableSet | None = None,
    *,
    config: TagConfig | None = None,
    atomic: bool = False,
    report: EditReport | None = None,
) -> EditReport:
    """Mutate subrecord data or string table entries with edited text.

    Args:
        plugin: Parsed plugin to modify in place.
        edits: Mapping or ordered pairs of occurrence key -> new text.
        tables: String tables for localized occurrences (defaults to
            plugin.string_tables).
        config: Translatable tag config (defaults to the plugin's game).
        atomic: If True, apply nothing unless every edit resolves.
        report: Report to fill in; a new one is created if None.

    Returns:
        EditReport listing applied and rejected keys.  Rejected edits leave
        the tree untouched; the others are still applied unless *atomic*.
    """
    if tables is None:
        tables = plugin.string_tables
    if config is None:
        config = TagConfig.for_game(plugin.game)
    if report is None:
        report = EditReport()
    report.atomic = atomic

    index = index_occurrences(plugin, config)

    planned: list[_PlannedEdit] = []
    for raw_key, text in _iter_edits(edits):
        try:
            planned.append(_plan_edit(raw_key, text, index, tables))
        except EspTextError as e:
            report.rejected[str(raw_key)] = e
            logger.warning("Rejected edit %s: %s", raw_key, e)

    if atomic and report.rejected:
        report.finish()
        raise EditBatchRejected(report, len(report.rejected))

    for plan in planned:
        if plan.storage.is_localized:
            assert tables is not None and plan.storage.table_type is not None
            assert plan.storage.string_id is not None
            # Localized: update the string table entry, the 4-byte ID stays as is
            tables.update(plan.storage.table_type, plan.storage.string_id, plan.text)
            report.tables_touched.add(plan.storage.table_type)
            report.localized_patched += 1
        else:
            # Inline: mutate the subrecord's bytearray
            plan.subrecord.encode_text(plan.text)
            report.inline_patched += 1
        report.applied.append(plan.key)

    logger.debug("Applied %d edits, rejected %d", len(report.applied), len(report.rejected))
    report.finish()
    return report

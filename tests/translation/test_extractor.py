"""Tests for string extraction and classification."""

import pytest

from esptext.core.errors import NonUtf8InlinePayload
from esptext.core.string_table import StringTable, StringTableSet, StringTableType
from esptext.translation.extractor import (
    INLINE,
    OccurrenceKey,
    StringExtractor,
    classify_subrecord,
    extract_occurrences,
    localized,
)
from esptext.translation.registry import TagConfig
from tests.conftest import (
    make_plugin,
    make_skyrim_plugin,
    make_string_id_subrecord,
    make_subrecord,
)


class TestOccurrenceKey:
    def test_str(self):
        key = OccurrenceKey(b"INFO", 0x1ABCD, b"FULL", 0)
        assert str(key) == "INFO:0001ABCD:FULL:0"

    def test_parse(self):
        key = OccurrenceKey.parse("MESG:00000010:ITXT:2")
        assert key == OccurrenceKey(b"MESG", 0x10, b"ITXT", 2)

    def test_parse_lowercase_hex(self):
        assert OccurrenceKey.parse("WEAP:0000abcd:FULL:0").form_id == 0xABCD

    @pytest.mark.parametrize("text", ["", "WEAP:1:FULL", "WEAP:zz:FULL:0", "WEA:1:FULL:0"])
    def test_parse_malformed(self, text):
        with pytest.raises(ValueError):
            OccurrenceKey.parse(text)

    def test_coerce(self):
        key = OccurrenceKey(b"WEAP", 1, b"FULL")
        assert OccurrenceKey.coerce(key) is key
        assert OccurrenceKey.coerce(str(key)) == key


class TestExtractor:
    def test_inline_without_terminator(self):
        plugin = make_plugin([("INFO", 0x1ABCD, [make_subrecord("FULL", b"Hello")])])
        occs = extract_occurrences(plugin)
        assert len(occs) == 1
        assert occs[0].key == OccurrenceKey(b"INFO", 0x1ABCD, b"FULL", 0)
        assert occs[0].text == "Hello"
        assert occs[0].storage == INLINE

    def test_editor_id_context(self, simple_plugin):
        occs = extract_occurrences(simple_plugin)
        assert [o.text for o in occs] == ["Iron Sword"]
        assert occs[0].editor_id == "TestWeapon"

    def test_file_order(self, multi_record_plugin):
        occs = extract_occurrences(multi_record_plugin)
        assert [o.text for o in occs] == [
            "Iron Sword",
            "Leather Armor",
            "A sturdy set of leather armor.",
            "Wasteland Survival Guide",
            "A guide to surviving the wasteland.",
        ]

    def test_keys_unique(self):
        plugin = make_plugin([
            ("MESG", 0x10, [
                make_subrecord("FULL", "Title"),
                make_subrecord("ITXT", "Yes"),
                make_subrecord("ITXT", "No"),
                make_subrecord("ITXT", "Cancel"),
            ]),
        ])
        occs = extract_occurrences(plugin)
        keys = [o.key for o in occs]
        assert len(set(keys)) == len(keys)
        assert [k.index for k in keys if k.subrecord_type == b"ITXT"] == [0, 1, 2]

    def test_empty_subrecords_skipped_but_counted(self):
        plugin = make_plugin([
            ("MESG", 0x10, [
                make_subrecord("ITXT", b""),
                make_subrecord("ITXT", b"\x00"),
                make_subrecord("ITXT", "Ok"),
            ]),
        ])
        occs = extract_occurrences(plugin)
        assert len(occs) == 1
        assert occs[0].key.index == 2

    def test_record_restriction(self):
        plugin = make_plugin([
            ("INFO", 0x1, [make_subrecord("NAM1", "Hello there.")]),
            ("WEAP", 0x2, [make_subrecord("NAM1", "not text")]),
        ])
        occs = extract_occurrences(plugin)
        assert [o.record_type for o in occs] == [b"INFO"]

    def test_explicit_config(self, simple_plugin):
        config = TagConfig.from_mapping({"EDID": []})
        occs = StringExtractor(config).extract(simple_plugin)
        assert [o.text for o in occs] == ["TestWeapon"]

    def test_non_utf8_skipped(self):
        plugin = make_plugin([("WEAP", 1, [make_subrecord("FULL", b"caf\xe9\x00")])])
        assert extract_occurrences(plugin) == []

    def test_non_utf8_strict(self):
        plugin = make_plugin([("WEAP", 1, [make_subrecord("FULL", b"caf\xe9\x00")])])
        with pytest.raises(NonUtf8InlinePayload):
            StringExtractor(strict=True).extract(plugin)

    def test_header_record_included(self):
        plugin = make_plugin()
        plugin.header.subrecords.append(make_subrecord("FULL", "Header text"))
        occs = extract_occurrences(plugin)
        assert occs[0].record_type == b"TES4"


class TestLocalized:
    def _tables(self) -> StringTableSet:
        sts = StringTableSet()
        sts.set_table(StringTable(StringTableType.STRINGS, {42: "Iron Sword"}))
        sts.set_table(StringTable(StringTableType.DLSTRINGS, {7: "Old text"}))
        return sts

    def test_localized_lookup(self):
        plugin = make_skyrim_plugin(
            records=[("BOOK", 0x100, [
                make_subrecord("EDID", "Lore"),
                make_string_id_subrecord("FULL", 42),
                make_string_id_subrecord("DESC", 7),
            ])],
            localized=True,
            string_tables=self._tables(),
        )
        occs = extract_occurrences(plugin)
        assert [(o.text, o.storage) for o in occs] == [
            ("Iron Sword", localized(StringTableType.STRINGS, 42)),
            ("Old text", localized(StringTableType.DLSTRINGS, 7)),
        ]
        assert str(occs[1].storage) == "dlstrings:7"

    def test_unknown_id_is_inline(self):
        sub = make_string_id_subrecord("FULL", 0x41414141)
        text, storage = classify_subrecord(sub, self._tables())
        assert storage == INLINE
        assert text == "AAAA"

    def test_no_tables_means_inline(self):
        text, storage = classify_subrecord(make_subrecord("FULL", b"Abc\x00"))
        assert (text, storage) == ("Abc", INLINE)

    def test_explicit_tables_argument(self):
        plugin = make_skyrim_plugin(records=[("WEAP", 1, [make_string_id_subrecord("FULL", 42)])])
        occs = StringExtractor().extract(plugin, self._tables())
        assert occs[0].text == "Iron Sword"
        assert occs[0].storage.is_localized

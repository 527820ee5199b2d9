"""Tests for the binary writer."""

import io
import struct

from esptext.core.parser import parse_plugin
from esptext.core.records import PluginFile
from esptext.core.writer import serialize_plugin, serialize_record, write_plugin
from tests.conftest import make_group, make_plugin, make_record, make_subrecord


def _roundtrip(plugin: PluginFile) -> PluginFile:
    buf = io.BytesIO()
    write_plugin(plugin, buf)
    return parse_plugin(buf.getvalue())


class TestWriter:
    def test_write_and_read_back(self, simple_plugin):
        reparsed = _roundtrip(simple_plugin)
        rec = reparsed.groups[0].children[0]
        assert rec.type == b"WEAP"
        assert rec.form_id == 0x1000
        assert bytes(rec.subrecords[1].data) == b"Iron Sword\x00"

    def test_record_size_recomputed(self):
        rec = make_record("WEAP", 1, [make_subrecord("FULL", "Hello")])
        data = serialize_record(rec)
        assert struct.unpack_from("<I", data, 4)[0] == 6 + 6
        assert len(data) == 24 + 12

    def test_group_size_tracks_edit(self, simple_plugin):
        before = serialize_plugin(simple_plugin)
        rec = simple_plugin.groups[0].children[0]
        rec.subrecords[1].encode_text("A much longer weapon name")
        after = serialize_plugin(simple_plugin)

        grown = len("A much longer weapon name") - len("Iron Sword")
        assert len(after) == len(before) + grown
        tes4_len = 24 + struct.unpack_from("<I", after, 4)[0]
        assert struct.unpack_from("<I", after, tes4_len + 4)[0] == len(after) - tes4_len

    def test_nested_group_sizes(self):
        inner = make_group("CELL", [make_record("REFR", 2, [make_subrecord("FULL", "x")])])
        outer = make_group("CELL", [make_record("CELL", 1), inner])
        data = serialize_plugin(PluginFile(blocks=[outer]))
        assert struct.unpack_from("<I", data, 4)[0] == len(data)
        reparsed = parse_plugin(data)
        assert reparsed.count_groups() == 2

    def test_serialize_does_not_mutate(self, multi_record_plugin):
        first = serialize_plugin(multi_record_plugin)
        second = serialize_plugin(multi_record_plugin)
        assert first == second

    def test_compressed_flag_compresses(self):
        plugin = make_plugin([("WEAP", 1, [make_subrecord("FULL", "Zipped " * 20)])])
        rec = plugin.groups[0].children[0]
        plain_len = len(serialize_record(rec))
        rec.set_compressed(True)
        packed = serialize_record(rec)
        assert len(packed) < plain_len

        reparsed = parse_plugin(serialize_plugin(plugin))
        again = reparsed.groups[0].children[0]
        assert again.is_compressed
        assert again.subrecords[0].decode_text() == "Zipped " * 20

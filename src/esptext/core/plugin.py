"""Facade for loading and saving plugin files together with their string tables."""

from __future__ import annotations

from pathlib import Path

from esptext.core.constants import DEFAULT_LANGUAGE
from esptext.core.parser import parse_plugin
from esptext.core.records import PluginFile
from esptext.core.string_table import load_string_tables, save_string_tables
from esptext.core.writer import serialize_plugin


def load_plugin(
    path: str | Path,
    workspace_root: str | Path | None = None,
    language: str = DEFAULT_LANGUAGE,
    *,
    with_strings: bool = True,
) -> PluginFile:
    """Load and parse an ESP/ESM/ESL file from disk.

    The whole file is read into memory first.  Unless *with_strings* is
    False, the plugin's string tables for *language* are attached as
    ``plugin.string_tables`` (absent files simply contribute no entries).
    """
    path = Path(path)
    plugin = parse_plugin(path.read_bytes())

    if with_strings:
        plugin.string_tables = load_string_tables(path, workspace_root, language)

    return plugin


def save_plugin(
    plugin: PluginFile,
    path: str | Path,
    workspace_root: str | Path | None = None,
    language: str | None = None,
) -> list[Path]:
    """Serialize and write a PluginFile, then flush its string tables.

    The output is built in memory before anything is written.  Tables are
    written under the workspace root of *path* using the output file's
    stem.

    Returns:
        Every path written, plugin first.
    """
    path = Path(path)
    data = serialize_plugin(plugin)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    written = [path]

    if plugin.string_tables is not None:
        written.extend(
            save_string_tables(plugin.string_tables, path, workspace_root, language)
        )

    return written


def plugin_to_bytes(plugin: PluginFile) -> bytes:
    """Serialize a PluginFile to bytes in memory."""
    return serialize_plugin(plugin)


def plugin_from_bytes(data: bytes) -> PluginFile:
    """Parse a PluginFile from raw bytes."""
    return parse_plugin(data)

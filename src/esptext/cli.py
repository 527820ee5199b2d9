"""CLI interface for esptext using Typer."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from esptext import __version__
from esptext.core.constants import DEFAULT_LANGUAGE, Game
from esptext.core.errors import EditBatchRejected, EspTextError


class GameChoice(str, Enum):
    """User-facing game selection (separate from binary detection Game enum)."""
    auto = "auto"
    fo3 = "fo3"
    fnv = "fnv"
    skyrim = "skyrim"
    fo4 = "fo4"


_GAME_MAP = {
    GameChoice.fo3: Game.FALLOUT3,
    GameChoice.fnv: Game.FALLOUT3,
    GameChoice.skyrim: Game.SKYRIM,
    GameChoice.fo4: Game.FALLOUT4,
}

app = typer.Typer(
    name="esptext",
    help="Extract, edit and write back text in Bethesda ESP/ESM/ESL files.",
    add_completion=False,
)
console = Console()

_quiet = False


def _print(msg: str) -> None:
    """Print respecting --quiet. Errors bypass it."""
    if not _quiet:
        console.print(msg)


def _fail(msg: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {msg}")
    raise typer.Exit(1)


def _tag_config(game: GameChoice, detected: Game, tags: Path | None):
    """Resolve the translatable tag table from --game/--tags and the detected game."""
    from esptext.translation.registry import TagConfig

    effective = detected if game == GameChoice.auto else _GAME_MAP[game]
    config = TagConfig.for_game(effective)
    if tags is not None:
        if not tags.exists():
            _fail(f"Tag config not found: {tags}")
        config = config.merge(TagConfig.from_toml(tags))
    return config


def version_callback(value: bool) -> None:
    if value:
        console.print(f"esptext {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Show debug logging.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Only show errors.",
    ),
) -> None:
    """esptext: edit the translatable text of Bethesda plugin files."""
    global _quiet
    _quiet = quiet
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def scan(
    file: Path = typer.Argument(..., help="Path to the ESP/ESM/ESL file to scan."),
    root: Path | None = typer.Option(
        None, "--root", help="Workspace root holding Data/Strings (default: derived from FILE).",
    ),
    lang: str = typer.Option(
        DEFAULT_LANGUAGE, "--lang", "-l", help="String table language suffix.",
    ),
    game: GameChoice = typer.Option(
        GameChoice.auto, "--game", help="Game: fo3, fnv, skyrim, fo4, auto.",
    ),
    tags: Path | None = typer.Option(
        None, "--tags", help="TOML file with extra translatable tags.",
    ),
    export: Path | None = typer.Option(
        None, "--export", "-e", help="Write occurrences to a JSON/CSV file.",
    ),
) -> None:
    """Scan a plugin and list its translatable strings."""
    from esptext.core.plugin import load_plugin
    from esptext.reporting.formatters import save_occurrences
    from esptext.translation.extractor import StringExtractor

    if not file.exists():
        _fail(f"File not found: {file}")

    try:
        with console.status("Parsing..."):
            plugin = load_plugin(file, root, lang)
        config = _tag_config(game, plugin.game, tags)
        occurrences = StringExtractor(config).extract(plugin)
    except (EspTextError, ValueError) as e:
        _fail(str(e))

    _print(f"Game: [cyan]{plugin.game.name}[/cyan]")
    _print(f"Found [green]{len(occurrences)}[/green] translatable strings\n")

    if export is not None:
        save_occurrences(occurrences, export)
        _print(f"Exported: [cyan]{export}[/cyan]")
        return

    table = Table(title=f"Translatable strings in {file.name}")
    table.add_column("Key", style="dim")
    table.add_column("EDID", style="dim")
    table.add_column("Storage")
    table.add_column("Text")

    for occ in occurrences:
        table.add_row(
            str(occ.key),
            occ.editor_id[:20],
            str(occ.storage),
            occ.text[:60],
        )

    if not _quiet:
        console.print(table)


@app.command()
def apply(
    file: Path = typer.Argument(..., help="Path to the ESP/ESM/ESL file to edit."),
    edits: Path = typer.Argument(..., help="JSON or CSV file of key -> text edits."),
    output: Path | None = typer.Option(
        None, "--output", "-o", help="Output file path. Defaults to <name>_edited.<ext>.",
    ),
    root: Path | None = typer.Option(
        None, "--root", help="Workspace root holding Data/Strings (default: derived from paths).",
    ),
    lang: str = typer.Option(
        DEFAULT_LANGUAGE, "--lang", "-l", help="String table language suffix.",
    ),
    game: GameChoice = typer.Option(
        GameChoice.auto, "--game", help="Game: fo3, fnv, skyrim, fo4, auto.",
    ),
    tags: Path | None = typer.Option(
        None, "--tags", help="TOML file with extra translatable tags.",
    ),
    atomic: bool = typer.Option(
        False, "--atomic", help="Apply nothing if any edit is rejected.",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Apply edits in memory but don't write any file.",
    ),
    report: Path | None = typer.Option(
        None, "--report", "-r", help="Save report to file (json/md/csv).",
    ),
) -> None:
    """Apply an edit batch to a plugin and its string tables."""
    from esptext.core.plugin import load_plugin, save_plugin
    from esptext.reporting.formatters import load_edits, save_report
    from esptext.reporting.report import EditReport
    from esptext.translation.extractor import StringExtractor
    from esptext.translation.patcher import apply_edits

    for path in (file, edits):
        if not path.exists():
            _fail(f"File not found: {path}")

    out_path = output or file.with_stem(f"{file.stem}_edited")
    rpt = EditReport(
        source_file=str(file),
        output_file="" if dry_run else str(out_path),
        language=lang,
        dry_run=dry_run,
    )

    try:
        batch = load_edits(edits)
        plugin = load_plugin(file, root, lang)
        config = _tag_config(game, plugin.game, tags)
        rpt.game_detected = plugin.game.name
        rpt.total_records = plugin.count_records()
        rpt.total_groups = plugin.count_groups()
        rpt.total_occurrences = len(StringExtractor(config).extract(plugin))
        apply_edits(plugin, batch, config=config, atomic=atomic, report=rpt)
        if not dry_run:
            written = save_plugin(plugin, out_path, root, lang)
            for path in written:
                _print(f"Wrote [cyan]{path}[/cyan]")
    except EditBatchRejected:
        pass
    except (EspTextError, ValueError) as e:
        _fail(str(e))

    _print(
        f"Applied [green]{len(rpt.applied)}[/green] edits "
        f"({rpt.inline_patched} inline, {rpt.localized_patched} localized)"
    )
    if dry_run:
        _print("[yellow]Dry run:[/yellow] nothing written")

    if report is not None:
        save_report(rpt, report)
        _print(f"Report saved: [cyan]{report}[/cyan]")

    if rpt.rejected:
        err_table = Table(title="Rejected edits")
        err_table.add_column("Key")
        err_table.add_column("Error", style="red")
        for key, err in rpt.rejected.items():
            err_table.add_row(key, f"{type(err).__name__}: {err}")
        console.print(err_table)
        if atomic:
            console.print("[red]Atomic batch rejected:[/red] nothing was written")
        raise typer.Exit(1)


@app.command()
def verify(
    file: Path = typer.Argument(..., help="Path to the ESP/ESM/ESL file to check."),
) -> None:
    """Check that parsing and re-serializing a plugin reproduces it byte for byte."""
    from esptext.core.parser import parse_plugin
    from esptext.core.writer import serialize_plugin

    if not file.exists():
        _fail(f"File not found: {file}")

    original = file.read_bytes()
    try:
        plugin = parse_plugin(original)
    except EspTextError as e:
        _fail(str(e))
    rewritten = serialize_plugin(plugin)

    if rewritten != original:
        first_diff = next(
            (i for i, (a, b) in enumerate(zip(original, rewritten)) if a != b),
            min(len(original), len(rewritten)),
        )
        _fail(f"Round-trip differs at offset 0x{first_diff:X}")

    _print(
        f"[green]OK[/green] {file.name}: {plugin.count_records()} records, "
        f"{plugin.count_groups()} groups, {len(original)} bytes"
    )


if __name__ == "__main__":
    app()

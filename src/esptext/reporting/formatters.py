"""Output formatters for edit reports, occurrence exports and edit files."""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path

from esptext.reporting.report import EditReport
from esptext.translation.extractor import Occurrence

_OCCURRENCE_FIELDS = ["key", "record", "form_id", "subrecord", "index", "storage", "editor_id", "text"]


def to_json(report: EditReport, indent: int = 2) -> str:
    """Format report as JSON string."""
    return json.dumps(report.to_dict(), indent=indent, default=str)


def to_markdown(report: EditReport) -> str:
    """Format report as Markdown."""
    lines = [
        "# Edit Report",
        "",
        "| Field | Value |",
        "|-------|-------|",
        f"| Source | `{report.source_file}` |",
        f"| Output | `{report.output_file}` |",
        f"| Language | {report.language} |",
        f"| Game detected | {report.game_detected} |",
        f"| Atomic | {report.atomic} |",
        f"| Dry run | {report.dry_run} |",
        "",
        "## Statistics",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Records | {report.total_records} |",
        f"| Groups | {report.total_groups} |",
        f"| Occurrences | {report.total_occurrences} |",
        f"| Applied | {len(report.applied)} |",
        f"| Inline patched | {report.inline_patched} |",
        f"| Localized patched | {report.localized_patched} |",
        f"| Rejected | {len(report.rejected)} |",
        "",
        f"**Duration:** {report.duration_seconds:.2f}s",
    ]

    if report.rejected:
        lines.extend(["", "## Rejected", ""])
        for key, err in report.rejected.items():
            lines.append(f"- `{key}`: {type(err).__name__}: {err}")

    lines.append("")
    return "\n".join(lines)


def to_csv(report: EditReport) -> str:
    """Format report as CSV: one row per edit with its status."""
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(["key", "status", "error", "message"])
    for key in report.applied:
        writer.writerow([str(key), "applied", "", ""])
    for key, err in report.rejected.items():
        writer.writerow([key, "rejected", type(err).__name__, str(err)])
    return output.getvalue()


def save_report(report: EditReport, path: Path) -> None:
    """Save report to file. Format is determined by file extension."""
    suffix = path.suffix.lower()
    if suffix == ".json":
        content = to_json(report)
    elif suffix in (".md", ".markdown"):
        content = to_markdown(report)
    elif suffix == ".csv":
        content = to_csv(report)
    else:
        content = to_json(report)

    path.write_text(content, encoding="utf-8")


def _occurrence_row(occ: Occurrence) -> dict[str, object]:
    return {
        "key": str(occ.key),
        "record": occ.record_type.decode("ascii"),
        "form_id": f"{occ.form_id:08X}",
        "subrecord": occ.subrecord_type.decode("ascii"),
        "index": occ.key.index,
        "storage": str(occ.storage),
        "editor_id": occ.editor_id,
        "text": occ.text,
    }


def occurrences_to_json(occurrences: list[Occurrence], indent: int = 2) -> str:
    return json.dumps(
        [_occurrence_row(o) for o in occurrences], indent=indent, ensure_ascii=False
    )


def occurrences_to_csv(occurrences: list[Occurrence]) -> str:
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=_OCCURRENCE_FIELDS)
    writer.writeheader()
    for occ in occurrences:
        writer.writerow(_occurrence_row(occ))
    return output.getvalue()


def save_occurrences(occurrences: list[Occurrence], path: Path) -> None:
    """Export occurrences as CSV (.csv) or JSON (anything else)."""
    if path.suffix.lower() == ".csv":
        content = occurrences_to_csv(occurrences)
    else:
        content = occurrences_to_json(occurrences)
    path.write_text(content, encoding="utf-8")


def load_edits(path: Path) -> list[tuple[str, str]]:
    """Read an edit batch as ordered (key, text) pairs.

    Accepts a JSON object ``{key: text}``, a JSON list of objects with
    ``key``/``text`` (the occurrence export format), or a CSV file with
    ``key`` and ``text`` columns.
    """
    content = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".csv":
        reader = csv.DictReader(io.StringIO(content))
        if reader.fieldnames is None or not {"key", "text"} <= set(reader.fieldnames):
            raise ValueError(f"{path} needs 'key' and 'text' columns")
        return [(row["key"], row["text"]) for row in reader]

    data = json.loads(content)
    if isinstance(data, dict):
        return [(str(k), str(v)) for k, v in data.items()]
    if isinstance(data, list):
        edits: list[tuple[str, str]] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict) or "key" not in item or "text" not in item:
                raise ValueError(f"{path} item {i} needs 'key' and 'text'")
            edits.append((str(item["key"]), str(item["text"])))
        return edits
    raise ValueError(f"{path} must contain a JSON object or list")

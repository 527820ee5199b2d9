"""Edit report data model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from esptext.core.errors import EspTextError
from esptext.core.string_table import StringTableType
from esptext.translation.extractor import OccurrenceKey


@dataclass
class EditReport:
    """Outcome of one write-back batch: which keys were applied and which were rejected."""

    source_file: str = ""
    output_file: str = ""
    language: str = ""
    game_detected: str = ""

    total_records: int = 0
    total_groups: int = 0
    total_occurrences: int = 0

    applied: list[OccurrenceKey] = field(default_factory=list)
    rejected: dict[str, EspTextError] = field(default_factory=dict)
    inline_patched: int = 0
    localized_patched: int = 0
    tables_touched: set[StringTableType] = field(default_factory=set)

    atomic: bool = False
    dry_run: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def ok(self) -> bool:
        return not self.rejected

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def finish(self) -> None:
        self.finished_at = datetime.now()

    def to_dict(self) -> dict:
        return {
            "source_file": self.source_file,
            "output_file": self.output_file,
            "language": self.language,
            "game_detected": self.game_detected,
            "total_records": self.total_records,
            "total_groups": self.total_groups,
            "total_occurrences": self.total_occurrences,
            "applied": [str(k) for k in self.applied],
            "rejected": {
                key: {"error": type(err).__name__, "message": str(err)}
                for key, err in self.rejected.items()
            },
            "inline_patched": self.inline_patched,
            "localized_patched": self.localized_patched,
            "tables_touched": sorted(t.extension for t in self.tables_touched),
            "atomic": self.atomic,
            "dry_run": self.dry_run,
            "duration_seconds": self.duration_seconds,
        }

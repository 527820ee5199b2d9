"""Registry mapping subrecord tags to the record types where they hold player-visible text.

A TagConfig is passed to the extractor and the patcher explicitly; there is
no module-level mutable state.  FULL (display name) and DESC (description)
are translatable in every record type; each game adds the dialogue, quest
and message tags it uses, restricted to the record types where those tags
actually carry text.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from esptext.core.constants import Game

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

# Empty set means translatable in ANY record type
ANY_RECORD: frozenset[bytes] = frozenset()

DEFAULT_TAGS: dict[bytes, frozenset[bytes]] = {
    b"FULL": ANY_RECORD,  # Display name
    b"DESC": ANY_RECORD,  # Description / book text / loading screen
}

_FALLOUT3_TAGS: dict[bytes, frozenset[bytes]] = {
    b"NAM1": frozenset({b"INFO"}),  # Dialog response text
    b"RNAM": frozenset({b"INFO", b"TERM"}),  # Dialog prompt / terminal menu text
    b"TNAM": frozenset({b"NOTE"}),  # Note/holotape text
    b"NNAM": frozenset({b"QUST"}),  # Quest objective text
    b"ITXT": frozenset({b"MESG", b"TERM"}),  # Message button / terminal item text
    b"CNAM": frozenset({b"QUST"}),  # Quest stage log entry
}

_SKYRIM_TAGS: dict[bytes, frozenset[bytes]] = {
    b"NAM1": frozenset({b"INFO"}),
    b"RNAM": frozenset({b"INFO"}),  # Player dialogue prompt
    b"NNAM": frozenset({b"QUST"}),
    b"CNAM": frozenset({b"QUST"}),
    b"ITXT": frozenset({b"MESG"}),
    b"SHRT": frozenset({b"NPC_"}),  # Short name
    b"DNAM": frozenset({b"MGEF"}),  # Magic effect description
    b"TNAM": frozenset({b"WOOP"}),  # Word of power translation
}

_FALLOUT4_TAGS: dict[bytes, frozenset[bytes]] = {
    b"NAM1": frozenset({b"INFO"}),
    b"RNAM": frozenset({b"INFO"}),
    b"NNAM": frozenset({b"QUST"}),
    b"CNAM": frozenset({b"QUST"}),
    b"ITXT": frozenset({b"MESG"}),
    b"SHRT": frozenset({b"NPC_"}),
    b"DNAM": frozenset({b"MGEF"}),
}

GAME_TAGS: dict[Game, dict[bytes, frozenset[bytes]]] = {
    Game.UNKNOWN: {},
    Game.FALLOUT3: _FALLOUT3_TAGS,
    Game.SKYRIM: _SKYRIM_TAGS,
    Game.FALLOUT4: _FALLOUT4_TAGS,
}


def _tag(value: str | bytes) -> bytes:
    raw = value.encode("ascii") if isinstance(value, str) else bytes(value)
    if len(raw) != 4:
        raise ValueError(f"Tags must be exactly 4 ASCII characters, got {value!r}")
    return raw


@dataclass(frozen=True)
class TagConfig:
    """Which (record type, subrecord tag) pairs are translatable."""

    tags: Mapping[bytes, frozenset[bytes]] = field(default_factory=lambda: dict(DEFAULT_TAGS))

    @classmethod
    def for_game(cls, game: Game) -> TagConfig:
        """The built-in table for *game* (always includes FULL and DESC)."""
        tags = dict(DEFAULT_TAGS)
        tags.update(GAME_TAGS.get(game, {}))
        return cls(tags=tags)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str | bytes, Iterable[str | bytes]]) -> TagConfig:
        return cls(tags={
            _tag(sub): frozenset(_tag(rec) for rec in records)
            for sub, records in mapping.items()
        })

    @classmethod
    def from_toml(cls, path: Path) -> TagConfig:
        """Load a config from TOML.

        Expected format::

            [tags]
            FULL = []          # any record type
            NAM1 = ["INFO"]
        """
        with open(path, "rb") as f:
            data = tomllib.load(f)
        section = data.get("tags", {})
        if not isinstance(section, dict):
            raise ValueError(f"[tags] in {path} must be a table")
        return cls.from_mapping(section)

    def merge(self, other: TagConfig) -> TagConfig:
        """Return a new config with *other*'s entries overriding this one's."""
        tags = dict(self.tags)
        tags.update(other.tags)
        return TagConfig(tags=tags)

    def is_translatable(self, record_type: bytes, subrecord_type: bytes) -> bool:
        """Check if a subrecord should be translated given its parent record type."""
        allowed = self.tags.get(subrecord_type)
        if allowed is None:
            return False
        # Empty set means translatable in any record
        return not allowed or record_type in allowed

    def subrecord_types(self) -> list[bytes]:
        return sorted(self.tags)

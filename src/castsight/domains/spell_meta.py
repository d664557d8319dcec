"""
Spell Metadata Lookup for CastSight

Display metadata (name, description, icon) keyed by ability id, plus an
on-disk cache partitioned by game version. Ids that the metadata service
was asked for but did not return are cached as None so they are not
requested again.
"""

import json
import logging
import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from castsight.core.constants import SPELL_META_SCHEMA_VERSION, UNKNOWN_SOURCE_KEY
from castsight.core.utils import as_ability_id

logger = logging.getLogger(__name__)

_NUMERIC_KEY_RE = re.compile(r"^\d+$")


@dataclass(frozen=True)
class SpellMetaEntry:
    """Display metadata for one ability."""

    id: int
    name: str | None = None
    description: str | None = None
    media: str | None = None  # icon reference

    @property
    def is_renderable(self) -> bool:
        return isinstance(self.name, str) and bool(self.name.strip())

    @classmethod
    def from_dict(cls, data: Any) -> "SpellMetaEntry | None":
        """Build an entry from a service record ({"_id": ..., "name": ...})."""
        if not isinstance(data, Mapping):
            return None
        ability_id = as_ability_id(data.get("_id", data.get("id")))
        if ability_id is None:
            return None

        def text(key: str) -> str | None:
            value = data.get(key)
            return value if isinstance(value, str) else None

        return cls(
            id=ability_id,
            name=text("name"),
            description=text("description"),
            media=text("media"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "_id": self.id,
            "name": self.name,
            "description": self.description,
            "media": self.media,
        }


def is_renderable_spell_meta(entry: SpellMetaEntry | None) -> bool:
    """True if the entry exists and carries a non-blank display name."""
    return entry is not None and entry.is_renderable


def normalize_game_version_key(value: str | None) -> str:
    """Trimmed game version, or "unknown" when blank."""
    trimmed = (value or "").strip()
    return trimmed or UNKNOWN_SOURCE_KEY


def extract_spell_payload(data: Any) -> list[Any] | None:
    """
    Pull the list of spell records out of a metadata service response.

    Accepts a bare list, or a dict wrapping it under "data", "spells" or "items".
    """
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for key in ("data", "spells", "items"):
            if isinstance(data.get(key), list):
                return data[key]
    return None


class SpellMetaTable(Mapping):
    """
    Immutable ability id -> SpellMetaEntry | None mapping.

    A None value means "requested, but the service had no entry".
    """

    def __init__(self, entries: Mapping[int, SpellMetaEntry | None] | None = None):
        self._entries: dict[int, SpellMetaEntry | None] = dict(entries or {})

    def __getitem__(self, ability_id: int) -> SpellMetaEntry | None:
        return self._entries[ability_id]

    def __iter__(self) -> Iterator[int]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"SpellMetaTable({len(self)} entries)"

    @classmethod
    def from_payload(cls, payload: Any) -> "SpellMetaTable":
        """Build a table from a service response (see extract_spell_payload)."""
        return cls().with_entries(extract_spell_payload(payload) or [], [])

    @classmethod
    def from_json_dict(cls, data: Any) -> "SpellMetaTable":
        """Build a table from the cache's {"<id>": entry | null} layout."""
        entries: dict[int, SpellMetaEntry | None] = {}
        if not isinstance(data, Mapping):
            return cls()
        for key, value in data.items():
            if not _NUMERIC_KEY_RE.match(str(key)):
                continue
            ability_id = int(key)
            if ability_id <= 0:
                continue
            if value is None:
                entries[ability_id] = None
                continue
            entry = SpellMetaEntry.from_dict(value)
            if entry is not None:
                entries[ability_id] = entry
        return cls(entries)

    def to_json_dict(self) -> dict[str, Any]:
        return {
            str(ability_id): entry.to_dict() if entry is not None else None
            for ability_id, entry in sorted(self._entries.items())
        }

    def with_entries(
        self,
        incoming: Iterable[Any] | None,
        requested_ids: Iterable[int],
    ) -> "SpellMetaTable":
        """
        Return a new table with `incoming` records merged in.

        Requested ids the service did not return are stored as None.
        """
        entries = dict(self._entries)
        returned: set[int] = set()
        for raw in incoming or []:
            entry = raw if isinstance(raw, SpellMetaEntry) else SpellMetaEntry.from_dict(raw)
            if entry is None:
                continue
            entries[entry.id] = entry
            returned.add(entry.id)

        for ability_id in requested_ids:
            if ability_id not in returned:
                entries[ability_id] = None
        return SpellMetaTable(entries)

    def missing_ids(self, ability_ids: Iterable[int]) -> list[int]:
        """Ids that have never been requested (absent, not None)."""
        return sorted({i for i in ability_ids if i not in self._entries})

    def display_name(self, ability_id: int) -> str | None:
        entry = self._entries.get(ability_id)
        return entry.name if is_renderable_spell_meta(entry) else None


@dataclass
class SpellMetaCache:
    """Spell metadata tables keyed by game version."""

    by_game: dict[str, SpellMetaTable] = field(default_factory=dict)
    schema_version: int = SPELL_META_SCHEMA_VERSION

    def table_for(self, game_version: str | None) -> SpellMetaTable:
        return self.by_game.get(normalize_game_version_key(game_version), SpellMetaTable())

    def upsert(
        self,
        game_version: str | None,
        incoming: Iterable[Any] | None,
        requested_ids: Iterable[int],
    ) -> "SpellMetaCache":
        """Return a new cache with the game's table updated."""
        key = normalize_game_version_key(game_version)
        by_game = dict(self.by_game)
        by_game[key] = self.table_for(key).with_entries(incoming, requested_ids)
        return SpellMetaCache(by_game=by_game)

    def to_dict(self) -> dict[str, Any]:
        return {
            "schemaVersion": self.schema_version,
            "byGame": {key: table.to_json_dict() for key, table in self.by_game.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SpellMetaCache":
        """
        Parse a cache document.

        The versioned {"schemaVersion": 2, "byGame": {...}} layout is read as
        is; a legacy flat {"<id>": entry} map is migrated under "unknown".
        """
        if not isinstance(data, Mapping):
            return cls()

        by_game_raw = data.get("byGame")
        if data.get("schemaVersion") == SPELL_META_SCHEMA_VERSION and isinstance(
            by_game_raw, Mapping
        ):
            return cls(
                by_game={
                    normalize_game_version_key(str(key)): SpellMetaTable.from_json_dict(value)
                    for key, value in by_game_raw.items()
                }
            )

        legacy = SpellMetaTable.from_json_dict(data)
        logger.info(f"Migrating legacy spell metadata cache ({len(legacy)} entries)")
        return cls(by_game={UNKNOWN_SOURCE_KEY: legacy})

    @classmethod
    def load(cls, path: Path | str) -> "SpellMetaCache":
        """Load a cache file; a missing or corrupt file yields an empty cache."""
        path = Path(path)
        if not path.exists():
            return cls()
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable spell metadata cache {path}: {e}")
            return cls()
        return cls.from_dict(data)

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.debug(f"Saved spell metadata cache to {path}")
        return path

"""
Spell Metrics Aggregation for CastSight

Builds ranked per-ability rows (personal view) and per-actor rows (compare
view) for damage, healing or interrupts:
- Parses the recorder's loosely typed per-spell totals at the boundary
- Joins attempt counts for per-cast averages
- Drops rows without a positive value or without renderable metadata
- Orders by value desc, then display name (case-insensitive), then id

Damage and healing fall back to match-wide totals when the owner has no
source-scoped totals; interrupts never do.
"""

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

from castsight.core.constants import UNKNOWN_SOURCE_KEY, MetricType, Outcome
from castsight.core.utils import (
    as_ability_id,
    coerce_finite_number,
    normalize_guid,
    safe_divide,
)
from castsight.domains.attempts import Attempt
from castsight.domains.spell_meta import SpellMetaEntry, is_renderable_spell_meta
from castsight.domains.telemetry import parse_interrupt_counters

logger = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class AttemptCounts:
    """Resolved attempt outcomes for one ability."""

    ability_id: int
    succeeded: int = 0
    failed: int = 0
    interrupted: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.interrupted


@dataclass(frozen=True)
class SpellTotals:
    """Parsed per-spell totals."""

    damage: float
    healing: float
    overheal: float | None = None
    absorbed: float | None = None
    hits: float | None = None
    crits: float | None = None
    targets: dict[str, float] | None = None
    interrupts: float | None = None
    dispels: float | None = None

    def value_for(self, metric: MetricType) -> float:
        if metric == MetricType.DAMAGE:
            return self.damage
        if metric == MetricType.HEALING:
            return self.healing
        return self.interrupts or 0.0


@dataclass(frozen=True)
class SpellMetricRow:
    """One ranked ability row."""

    ability_id: int
    display_name: str
    value: float
    share_pct: float = 0.0
    total_attempts: int = 0
    succeeded: int = 0
    failed: int = 0
    interrupted: int = 0
    avg_per_cast: float | None = None
    icon: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class ComparePlayerRow:
    """One ranked actor row with its own per-ability breakdown."""

    key: str
    name: str
    value: float
    share_pct: float = 0.0
    guid: str | None = None
    class_name: str | None = None
    spells: list[SpellMetricRow] = field(default_factory=list)


@dataclass(frozen=True)
class PersonalModel:
    rows: list[SpellMetricRow]
    max_value: float
    is_fallback_to_match_totals: bool


@dataclass(frozen=True)
class CompareModel:
    rows: list[ComparePlayerRow]
    max_value: float


SpellTotalsMap = dict[int, SpellTotals]
SpellTotalsBySource = dict[str, SpellTotalsMap]
InterruptsBySource = dict[str, dict[int, float]]
SpellMetaLookup = Mapping[int, SpellMetaEntry | None]


# =============================================================================
# Boundary parsers
# =============================================================================


def parse_metric(metric: MetricType | str) -> MetricType:
    """Parse a metric selector; unknown selectors raise ValueError."""
    try:
        return MetricType(str(metric).strip().lower())
    except ValueError:
        valid = ", ".join(m.value for m in MetricType)
        raise ValueError(f"Unknown metric '{metric}'. Expected one of: {valid}") from None


def _parse_key_id(raw_key: Any) -> int | None:
    number = coerce_finite_number(raw_key)
    if number is None:
        return None
    return as_ability_id(number)


def _optional_number(entry: Mapping[str, Any], key: str) -> float | None:
    return coerce_finite_number(entry.get(key))


def _first_number(entry: Mapping[str, Any], *keys: str) -> float | None:
    for key in keys:
        value = coerce_finite_number(entry.get(key))
        if value is not None:
            return value
    return None


def parse_spell_totals(raw: Any) -> SpellTotalsMap:
    """
    Parse a {"<spellId>": {damage, healing, ...}} map.

    Entries need a positive numeric key and finite damage and healing values
    (damageDone/healingDone are accepted spellings); others are dropped.
    """
    parsed: SpellTotalsMap = {}
    if not isinstance(raw, Mapping):
        return parsed

    for raw_key, entry in raw.items():
        ability_id = _parse_key_id(raw_key)
        if ability_id is None or not isinstance(entry, Mapping):
            continue
        damage = _first_number(entry, "damage", "damageDone")
        healing = _first_number(entry, "healing", "healingDone")
        if damage is None or healing is None:
            continue

        targets = None
        if isinstance(entry.get("targets"), Mapping):
            targets = {
                str(target): number
                for target, value in entry["targets"].items()
                if (number := coerce_finite_number(value)) is not None
            }

        parsed[ability_id] = SpellTotals(
            damage=damage,
            healing=healing,
            overheal=_optional_number(entry, "overheal"),
            absorbed=_optional_number(entry, "absorbed"),
            hits=_optional_number(entry, "hits"),
            crits=_optional_number(entry, "crits"),
            targets=targets,
            interrupts=_optional_number(entry, "interrupts"),
            dispels=_optional_number(entry, "dispels"),
        )
    return parsed


def parse_spell_totals_by_source(raw: Any) -> SpellTotalsBySource:
    """
    Parse per-source spell totals.

    Older recordings store a single flat spell map; it is returned under the
    "unknown" source. Otherwise keys are actor guids (normalized).
    """
    if not isinstance(raw, Mapping):
        return {}

    root = parse_spell_totals(raw)
    if root:
        return {UNKNOWN_SOURCE_KEY: root}

    by_source: SpellTotalsBySource = {}
    for raw_source, value in raw.items():
        source = normalize_guid(raw_source)
        if source is None:
            continue
        parsed = parse_spell_totals(value)
        if parsed:
            by_source[source] = parsed
    return by_source


def _parse_interrupt_map(raw: Mapping[str, Any]) -> dict[int, float]:
    counts: dict[int, float] = {}
    for raw_key, raw_count in raw.items():
        ability_id = _parse_key_id(raw_key)
        count = coerce_finite_number(raw_count)
        if ability_id is None or count is None or count <= 0:
            continue
        counts[ability_id] = count
    return counts


def parse_interrupt_spells_by_source(raw: Any) -> InterruptsBySource:
    """Parse per-source interrupt counts ({guid: {spellId: count}}), positive counts only."""
    if not isinstance(raw, Mapping):
        return {}

    root = _parse_interrupt_map(raw)
    if root:
        return {UNKNOWN_SOURCE_KEY: root}

    by_source: InterruptsBySource = {}
    for raw_source, value in raw.items():
        source = normalize_guid(raw_source)
        if source is None or not isinstance(value, Mapping):
            continue
        counts = _parse_interrupt_map(value)
        if counts:
            by_source[source] = counts
    return by_source


# =============================================================================
# Attempt counts
# =============================================================================


def build_attempt_counts(attempts: Iterable[Attempt]) -> dict[int, AttemptCounts]:
    """Count resolved attempt outcomes per ability; unresolved attempts are skipped."""
    tallies: dict[int, dict[Outcome, int]] = {}
    for attempt in attempts:
        if attempt.resolved_outcome is None:
            continue
        per_ability = tallies.setdefault(attempt.ability_id, dict.fromkeys(Outcome, 0))
        per_ability[attempt.resolved_outcome] += 1

    return {
        ability_id: AttemptCounts(
            ability_id=ability_id,
            succeeded=counts[Outcome.SUCCEEDED],
            failed=counts[Outcome.FAILED],
            interrupted=counts[Outcome.INTERRUPTED],
        )
        for ability_id, counts in tallies.items()
    }


def collect_spell_ids_for_fetch(
    attempt_counts: Mapping[int, AttemptCounts],
    spell_totals: SpellTotalsMap,
    spell_totals_by_source: SpellTotalsBySource,
    interrupts_by_source: InterruptsBySource,
) -> list[int]:
    """Every ability id any view may need metadata for, ascending."""
    ids: set[int] = set(attempt_counts) | set(spell_totals)
    for per_source in spell_totals_by_source.values():
        ids.update(per_source)
    for per_source in interrupts_by_source.values():
        ids.update(per_source)
    return sorted(i for i in ids if i > 0)


# =============================================================================
# Row building
# =============================================================================


def build_spell_metric_rows(
    values: Mapping[int, float],
    attempt_counts: Mapping[int, AttemptCounts],
    spell_meta: SpellMetaLookup,
) -> list[SpellMetricRow]:
    """
    Rank per-ability values.

    Args:
        values: ability id -> metric value
        attempt_counts: ability id -> resolved attempt counts
        spell_meta: ability id -> display metadata

    Returns:
        Rows ordered by value desc, name (case-insensitive), ability id
    """
    rows: list[SpellMetricRow] = []
    for ability_id, value in values.items():
        if value <= 0:
            continue
        meta = spell_meta.get(ability_id)
        if not is_renderable_spell_meta(meta):
            continue

        counts = attempt_counts.get(ability_id) or AttemptCounts(ability_id=ability_id)
        total_attempts = counts.total
        rows.append(
            SpellMetricRow(
                ability_id=ability_id,
                display_name=meta.name,
                value=value,
                total_attempts=total_attempts,
                succeeded=counts.succeeded,
                failed=counts.failed,
                interrupted=counts.interrupted,
                avg_per_cast=value / total_attempts if total_attempts > 0 else None,
                icon=meta.media,
                description=meta.description,
            )
        )

    rows.sort(key=lambda r: (-r.value, r.display_name.casefold(), r.ability_id))

    total = sum(row.value for row in rows)
    return [_with_share(row, total) for row in rows]


def _with_share(row, total: float):
    return replace(row, share_pct=safe_divide(row.value, total) * 100)


def _values_for_source(
    source: str | None, metric: MetricType, spell_totals_by_source: SpellTotalsBySource
) -> dict[int, float]:
    if not source:
        return {}
    per_source = spell_totals_by_source.get(source, {})
    values = {ability_id: totals.value_for(metric) for ability_id, totals in per_source.items()}
    return {ability_id: value for ability_id, value in values.items() if value > 0}


def _interrupts_for_source(
    source: str | None, interrupts_by_source: InterruptsBySource
) -> dict[int, float]:
    if not source:
        return {}
    return {
        ability_id: count
        for ability_id, count in interrupts_by_source.get(source, {}).items()
        if count > 0
    }


def build_personal_model(
    metric: MetricType | str,
    owner_guid: str | None,
    attempt_counts: Mapping[int, AttemptCounts],
    spell_meta: SpellMetaLookup,
    spell_totals: SpellTotalsMap,
    spell_totals_by_source: SpellTotalsBySource,
    interrupts_by_source: InterruptsBySource,
) -> PersonalModel:
    """
    Build the owner's ranked ability rows.

    Raises:
        ValueError: if metric is not damage, healing or interrupts
    """
    metric = parse_metric(metric)
    owner = normalize_guid(owner_guid)

    if metric == MetricType.INTERRUPTS:
        values = _interrupts_for_source(owner, interrupts_by_source)
        use_fallback = False
    else:
        values = _values_for_source(owner, metric, spell_totals_by_source)
        use_fallback = not values
        if use_fallback:
            values = {
                ability_id: totals.value_for(metric)
                for ability_id, totals in spell_totals.items()
                if totals.value_for(metric) > 0
            }
            logger.debug(f"No {metric} totals for source {owner}; using match totals")

    rows = build_spell_metric_rows(values, attempt_counts, spell_meta)
    return PersonalModel(
        rows=rows,
        max_value=rows[0].value if rows else 1,
        is_fallback_to_match_totals=use_fallback,
    )


# =============================================================================
# Compare mode
# =============================================================================


def player_key(player: Mapping[str, Any], index: int) -> str:
    """Stable actor key: guid, else "name-realm", else "player-{index}"."""
    guid = normalize_guid(player.get("guid"))
    if guid:
        return guid
    parts = [
        value.strip().lower()
        for value in (player.get("name"), player.get("realm"))
        if isinstance(value, str) and value.strip()
    ]
    if parts:
        return "-".join(parts)
    return f"player-{index}"


def find_owner_player(players: Sequence[Mapping[str, Any]]) -> Mapping[str, Any] | None:
    """The recording player (isOwner), else the first player."""
    for player in players:
        if isinstance(player, Mapping) and player.get("isOwner"):
            return player
    return players[0] if players else None


def player_metric_value(
    player: Mapping[str, Any], metric: MetricType, interrupts_by_source: InterruptsBySource
) -> float:
    """An actor's total for the metric; 0 when unknown."""
    if metric in (MetricType.DAMAGE, MetricType.HEALING):
        if metric == MetricType.DAMAGE:
            keys = ("damage", "damageDone")
        else:
            keys = ("healing", "healingDone")
        value = _first_number(player, *keys)
        return value if value is not None and value > 0 else 0.0

    guid = normalize_guid(player.get("guid"))
    per_source = interrupts_by_source.get(guid) if guid else None
    if per_source:
        return float(sum(per_source.values()))

    counters = parse_interrupt_counters(player)
    return float(counters.issued) if counters else 0.0


def build_compare_model(
    metric: MetricType | str,
    players: Sequence[Mapping[str, Any]],
    attempt_counts: Mapping[int, AttemptCounts],
    spell_meta: SpellMetaLookup,
    spell_totals_by_source: SpellTotalsBySource,
    interrupts_by_source: InterruptsBySource,
) -> CompareModel:
    """
    Build one ranked row per actor with a positive value.

    Raises:
        ValueError: if metric is not damage, healing or interrupts
    """
    metric = parse_metric(metric)

    rows: list[ComparePlayerRow] = []
    for index, player in enumerate(players):
        if not isinstance(player, Mapping):
            continue
        value = player_metric_value(player, metric, interrupts_by_source)
        if value <= 0:
            continue

        guid = normalize_guid(player.get("guid"))
        if metric == MetricType.INTERRUPTS:
            spell_values = _interrupts_for_source(guid, interrupts_by_source)
        else:
            spell_values = _values_for_source(guid, metric, spell_totals_by_source)

        name = player.get("name")
        class_name = player.get("class")
        rows.append(
            ComparePlayerRow(
                key=player_key(player, index),
                name=name if isinstance(name, str) else "",
                value=value,
                guid=guid,
                class_name=class_name if isinstance(class_name, str) else None,
                spells=build_spell_metric_rows(spell_values, attempt_counts, spell_meta),
            )
        )

    rows.sort(key=lambda r: (-r.value, r.name.casefold(), r.key))

    total = sum(row.value for row in rows)
    rows = [_with_share(row, total) for row in rows]
    return CompareModel(rows=rows, max_value=rows[0].value if rows else 1)


# =============================================================================
# Labels
# =============================================================================

_METRIC_LABELS = {
    MetricType.DAMAGE: "Damage",
    MetricType.HEALING: "Healing",
    MetricType.INTERRUPTS: "Interrupts",
}

_IMPACT_LABELS = {
    MetricType.DAMAGE: "Total Damage",
    MetricType.HEALING: "Total Healing",
    MetricType.INTERRUPTS: "Times Interrupted",
}


def metric_label(metric: MetricType | str) -> str:
    return _METRIC_LABELS[parse_metric(metric)]


def impact_label(metric: MetricType | str) -> str:
    return _IMPACT_LABELS[parse_metric(metric)]

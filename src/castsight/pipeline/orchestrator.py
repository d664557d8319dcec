"""
Match Analysis Orchestrator - Main pipeline for one loaded match.

Runs normalization, attempt resolution, collapsing, the kick telemetry
snapshot and spell metric aggregation, and serializes the result to the
shape locked in castsight.pipeline.contract.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import asdict
from datetime import datetime
from typing import Any

from castsight.core.config import CastSightConfig, get_config
from castsight.core.constants import UNKNOWN_SOURCE_KEY
from castsight.core.utils import PerformanceMonitor, normalize_guid
from castsight.domains.attempts import IntentResolution, resolve_intent_attempts
from castsight.domains.collapse import CollapseResult, collapse_attempts
from castsight.domains.events import NormalizedTimeline, normalize_events
from castsight.domains.spell_meta import SpellMetaTable
from castsight.domains.spell_metrics import (
    ComparePlayerRow,
    SpellMetricRow,
    build_attempt_counts,
    build_compare_model,
    build_personal_model,
    collect_spell_ids_for_fetch,
    find_owner_player,
    impact_label,
    metric_label,
    parse_interrupt_spells_by_source,
    parse_metric,
    parse_spell_totals,
    parse_spell_totals_by_source,
)
from castsight.domains.telemetry import (
    TelemetrySnapshot,
    build_reconciliation_report,
    build_telemetry_snapshot,
    coerce_ability_ids,
    parse_interrupt_counters,
    resolve_telemetry_version,
)

logger = logging.getLogger(__name__)


def match_id_of(match: Mapping[str, Any]) -> str:
    """The match id: "id", else "matchKey", else "unknown"."""
    for key in ("id", "matchKey"):
        value = match.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
            return str(value)
    return UNKNOWN_SOURCE_KEY


def collect_timeline_records(match: Mapping[str, Any]) -> list[Any]:
    """
    Gather the raw timeline records of a match.

    The top-level timeline wins; otherwise the solo shuffle timeline is used
    together with any cast records.
    """
    timeline = match.get("timeline")
    if isinstance(timeline, list) and timeline:
        return list(timeline)

    records: list[Any] = []
    solo_shuffle = match.get("soloShuffle")
    if isinstance(solo_shuffle, Mapping) and isinstance(solo_shuffle.get("timeline"), list):
        records.extend(solo_shuffle["timeline"])
    cast_records = match.get("castRecords")
    if isinstance(cast_records, list):
        records.extend(cast_records)
    return records


def match_players(match: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    players = match.get("players")
    if not isinstance(players, list):
        return []
    return [player for player in players if isinstance(player, Mapping)]


class MatchOrchestrator:
    """
    Orchestrates the complete analysis pipeline for one match.

    Handles:
    - Timeline gathering and normalization
    - Attempt resolution and collapsing
    - Kick telemetry snapshot and reconciliation
    - Personal and compare spell metrics
    - Result serialization (see pipeline/contract.py)
    """

    def __init__(self, config: CastSightConfig | None = None):
        self.config = config or get_config()

    def normalize(self, match: Mapping[str, Any]) -> NormalizedTimeline:
        return normalize_events(collect_timeline_records(match))

    def resolve_attempts(
        self,
        match: Mapping[str, Any],
        ability_ids: list[int] | None = None,
    ) -> tuple[IntentResolution, CollapseResult]:
        """
        Resolve a match's attempts and collapse them.

        Args:
            match: Loaded match dict
            ability_ids: Restrict collapsing to these abilities (all when None)

        Returns:
            (resolution over all abilities, collapse result)
        """
        resolution = resolve_intent_attempts(self.normalize(match), self.config.resolver)
        attempts = (
            resolution.attempts
            if ability_ids is None
            else resolution.attempts_for(ability_ids)
        )
        collapsed = collapse_attempts(
            attempts,
            window_seconds=self.config.collapse.window_seconds,
            aggressive=self.config.collapse.aggressive,
        )
        return resolution, collapsed

    def analyze(
        self,
        match: Mapping[str, Any],
        *,
        metric: str | None = None,
        include_diagnostics: bool | None = None,
        spell_meta: Mapping[int, Any] | None = None,
    ) -> dict:
        """
        Execute the complete analysis pipeline for a match.

        Args:
            match: Loaded match dict (see castsight.core.schemas.MatchRecord)
            metric: "damage", "healing" or "interrupts" (defaults to config)
            include_diagnostics: Compute kick diagnostics (defaults to config)
            spell_meta: Ability id -> SpellMetaEntry table

        Returns:
            Result dict matching RESULT_CONTRACT

        Raises:
            ValueError: if metric is unknown
        """
        metric_type = parse_metric(metric or self.config.metrics.default_metric)
        if include_diagnostics is None:
            include_diagnostics = self.config.telemetry.include_diagnostics
        spell_meta = spell_meta if spell_meta is not None else SpellMetaTable()

        match_id = match_id_of(match)
        logger.info(f"Analyzing match {match_id}")

        with PerformanceMonitor(f"analysis of match {match_id}"):
            timeline = self.normalize(match)
            resolution = resolve_intent_attempts(timeline, self.config.resolver)

            players = match_players(match)
            owner = find_owner_player(players)
            owner_guid = normalize_guid(owner.get("guid")) if owner else None
            telemetry_version = resolve_telemetry_version(match)

            snapshot = build_telemetry_snapshot(
                match_id,
                resolution,
                coerce_ability_ids(match.get("interruptSpellIds")),
                parse_interrupt_counters(owner),
                telemetry_version,
                include_diagnostics=include_diagnostics,
                config=self.config,
            )

            attempt_counts = build_attempt_counts(resolution.resolved_attempts)
            spell_totals = parse_spell_totals(match.get("spellTotals"))
            spell_totals_by_source = parse_spell_totals_by_source(match.get("spellTotalsBySource"))
            interrupts_by_source = parse_interrupt_spells_by_source(
                match.get("interruptSpellsBySource")
            )

            personal = build_personal_model(
                metric_type,
                owner_guid,
                attempt_counts,
                spell_meta,
                spell_totals,
                spell_totals_by_source,
                interrupts_by_source,
            )
            compare = build_compare_model(
                metric_type,
                players,
                attempt_counts,
                spell_meta,
                spell_totals_by_source,
                interrupts_by_source,
            )

        owner_name = owner.get("name") if owner else None
        result = {
            "match_info": {
                "match_id": match_id,
                "telemetry_version": telemetry_version,
                "is_legacy_match": snapshot.is_legacy_match,
                "owner_name": owner_name if isinstance(owner_name, str) else None,
                "owner_guid": owner_guid,
                "player_count": len(players),
                "event_count": len(timeline.events),
                "timeline_only_count": len(timeline.timeline_only),
                "dropped_records": timeline.dropped,
            },
            "kick_telemetry": self._snapshot_to_dict(snapshot),
            "reconciliation": (
                asdict(build_reconciliation_report(snapshot)) if include_diagnostics else None
            ),
            "attempt_counts": [
                {**asdict(counts), "total": counts.total}
                for _, counts in sorted(attempt_counts.items())
            ],
            "spells": {
                "metric": metric_type.value,
                "metric_label": metric_label(metric_type),
                "impact_label": impact_label(metric_type),
                "is_fallback_to_match_totals": personal.is_fallback_to_match_totals,
                "max_value": personal.max_value,
                "rows": [self._spell_row_to_dict(row) for row in personal.rows],
            },
            "compare": {
                "max_value": compare.max_value,
                "rows": [self._compare_row_to_dict(row) for row in compare.rows],
            },
            "spell_ids_for_fetch": collect_spell_ids_for_fetch(
                attempt_counts, spell_totals, spell_totals_by_source, interrupts_by_source
            ),
            "analyzed_at": datetime.now().isoformat(),
        }

        logger.info(
            f"Match {match_id}: {len(resolution.attempts)} attempts, "
            f"{snapshot.intent_attempts} kick intents, {len(personal.rows)} {metric_type} rows"
        )
        return result

    @staticmethod
    def _snapshot_to_dict(snapshot: TelemetrySnapshot) -> dict:
        data = asdict(snapshot)
        for key in ("match_id", "telemetry_version", "is_legacy_match"):
            data.pop(key)
        data["reconciled_succeeded"] = snapshot.reconciled_succeeded
        data["derived_failed"] = snapshot.derived_failed
        data["success_rate_pct"] = round(snapshot.success_rate_pct, 1)
        return data

    @staticmethod
    def _spell_row_to_dict(row: SpellMetricRow) -> dict:
        return asdict(row)

    @classmethod
    def _compare_row_to_dict(cls, row: ComparePlayerRow) -> dict:
        data = asdict(row)
        data["spells"] = [cls._spell_row_to_dict(spell) for spell in row.spells]
        return data


def analyze_match(match: Mapping[str, Any], **kwargs: Any) -> dict:
    """
    Convenience function to analyze a match with the active configuration.

    Args:
        match: Loaded match dict
        **kwargs: Forwarded to MatchOrchestrator.analyze

    Returns:
        Result dict matching RESULT_CONTRACT
    """
    return MatchOrchestrator().analyze(match, **kwargs)

"""
Kick Telemetry Snapshot for CastSight

Summarizes interrupt ("kick") attempts for one match:
- Intent attempts: collapsed kick attempts witnessed by SENT/START
- Diagnostics (debug only): cast events, outcome-only echoes, per-outcome counts,
  immune kicks (FAILED_QUIET) and air kicks (other failures)
- Reconciliation against the scoreboard's authoritative (issued, succeeded) pair

The scoreboard's succeeded counter always wins for display. Failed kicks are
derived by subtraction because raw FAILED signals are noisier than the
timeline's intent counts.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from castsight.core.config import CastSightConfig
from castsight.core.constants import EventKind, Outcome
from castsight.core.utils import as_ability_id, coerce_finite_number, normalize_count
from castsight.domains.attempts import IntentResolution, resolve_intent_attempts
from castsight.domains.collapse import collapse_attempts
from castsight.domains.events import NormalizedTimeline, normalize_events

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InterruptCounters:
    """Authoritative per-actor interrupt counters from the scoreboard."""

    issued: int
    succeeded: int


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Kick telemetry summary for one match."""

    match_id: str
    telemetry_version: int | None
    is_legacy_match: bool
    intent_attempts: int
    cast_events: int = 0
    outcome_only_attempts: int = 0
    succeeded_attempts: int = 0
    interrupted_attempts: int = 0
    failed_attempts: int = 0
    unresolved_attempts: int = 0
    immune_attempts: int = 0  # failed with FAILED_QUIET (target immune)
    air_attempts: int = 0  # failed for any other reason
    issued_from_source: int | None = None
    succeeded_from_source: int | None = None
    includes_diagnostics: bool = False

    @property
    def reconciled_succeeded(self) -> int | None:
        """Succeeded kicks for display; the scoreboard counter always wins."""
        return self.succeeded_from_source

    @property
    def derived_failed(self) -> int | None:
        """max(0, intent attempts - scoreboard succeeded)."""
        if self.succeeded_from_source is None:
            return None
        return max(0, self.intent_attempts - self.succeeded_from_source)

    @property
    def kick_total(self) -> int | None:
        if self.succeeded_from_source is None:
            return None
        return self.succeeded_from_source + (self.derived_failed or 0)

    @property
    def success_rate_pct(self) -> float:
        total = self.kick_total
        if not total:
            return 0.0
        return (self.succeeded_from_source or 0) / total * 100


@dataclass(frozen=True)
class ReconciliationReport:
    """Debug deltas between local timeline counts and scoreboard counters."""

    attempts_vs_issued: int | None
    intent_vs_succeeded: int | None
    casts_vs_issued: int | None
    executed_vs_issued: int | None
    success_vs_succeeded: int | None
    suggested_missed_kicks: int
    estimated_bad_kicks: int


# ============================================================================
# Boundary normalization
# ============================================================================


def parse_interrupt_counters(player: Mapping[str, Any] | None) -> InterruptCounters | None:
    """
    Normalize a player's union-shaped interrupt field to a fixed pair.

    Accepted encodings (under "interruptions" or "interrupts"):
        [issued, succeeded]
        {"0": issued, "1": succeeded}   (0-indexed table)
        {"1": issued, "2": succeeded}   (Lua 1-indexed table)

    Returns:
        InterruptCounters, or None if the player or field is missing
    """
    if not isinstance(player, Mapping):
        return None
    raw = player.get("interruptions")
    if raw is None:
        raw = player.get("interrupts")

    if isinstance(raw, (list, tuple)):
        issued = raw[0] if len(raw) > 0 else None
        succeeded = raw[1] if len(raw) > 1 else None
        return InterruptCounters(normalize_count(issued), normalize_count(succeeded))

    if isinstance(raw, Mapping):
        if "0" in raw:
            issued, succeeded = raw.get("0"), raw.get("1")
        else:
            issued, succeeded = raw.get("1"), raw.get("2")
        return InterruptCounters(normalize_count(issued), normalize_count(succeeded))

    return None


def resolve_telemetry_version(match: Mapping[str, Any] | None) -> int | None:
    """telemetryVersion if positive, else dataVersion if positive, else None."""
    if not isinstance(match, Mapping):
        return None
    for key in ("telemetryVersion", "dataVersion"):
        version = coerce_finite_number(match.get(key))
        if version is not None and version > 0:
            return int(version)
    return None


def coerce_ability_ids(raw: Any) -> list[int]:
    """
    Coerce a list (or Lua-style dict) of ability ids to sorted unique ints.

    Non-numeric, non-positive and non-finite entries are dropped.
    """
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        values: Iterable[Any] = raw.values()
    elif isinstance(raw, Iterable) and not isinstance(raw, (str, bytes)):
        values = raw
    else:
        return []

    ids = set()
    for value in values:
        number = coerce_finite_number(value)
        if number is None:
            continue
        ability_id = as_ability_id(float(int(number)))
        if ability_id is not None:
            ids.add(ability_id)
    return sorted(ids)


# ============================================================================
# Snapshot
# ============================================================================


def build_telemetry_snapshot(
    match_id: str,
    timeline: IntentResolution | NormalizedTimeline | Iterable[Any] | None,
    interrupt_ability_ids: Iterable[Any] | Mapping[Any, Any] | None,
    counters: InterruptCounters | None,
    telemetry_version: int | None,
    include_diagnostics: bool | None = None,
    config: CastSightConfig | None = None,
) -> TelemetrySnapshot:
    """
    Compute the kick telemetry snapshot for one match.

    Args:
        match_id: Match identifier
        timeline: Raw timeline records, a normalized timeline, or an already
            resolved timeline (reused as is)
        interrupt_ability_ids: Ability ids considered interrupt-capable (list or
            Lua-style dict)
        counters: Authoritative (issued, succeeded) pair, if known
        telemetry_version: Recorder schema version, if known
        include_diagnostics: Compute the detailed breakdown (defaults to config)
        config: Engine configuration (defaults when omitted)

    Returns:
        TelemetrySnapshot
    """
    config = config or CastSightConfig()
    if include_diagnostics is None:
        include_diagnostics = config.telemetry.include_diagnostics

    if isinstance(timeline, IntentResolution):
        resolution = timeline
    else:
        if not isinstance(timeline, NormalizedTimeline):
            timeline = normalize_events(timeline)
        resolution = resolve_intent_attempts(timeline, config.resolver)

    kick_ids = set(coerce_ability_ids(interrupt_ability_ids))

    collapsed = collapse_attempts(
        resolution.attempts_for(kick_ids),
        window_seconds=config.collapse.window_seconds,
        aggressive=config.collapse.aggressive,
    )
    with_intent = collapsed.intent_attempts
    intent_attempts = len(with_intent)

    diagnostics: dict[str, int] = {}
    if include_diagnostics:
        failed = [a for a in with_intent if a.resolved_outcome == Outcome.FAILED]
        immune = sum(
            1
            for attempt in with_intent
            if any(e.kind == EventKind.FAILED_QUIET for e in attempt.member_events)
        )
        diagnostics = {
            "cast_events": sum(
                1
                for event in resolution.events
                if event.ability_id in kick_ids and event.is_intent_signal
            ),
            "outcome_only_attempts": max(0, len(collapsed.attempts) - intent_attempts),
            "succeeded_attempts": sum(
                1 for a in with_intent if a.resolved_outcome == Outcome.SUCCEEDED
            ),
            "interrupted_attempts": sum(
                1 for a in with_intent if a.resolved_outcome == Outcome.INTERRUPTED
            ),
            "failed_attempts": len(failed),
            "unresolved_attempts": sum(1 for a in with_intent if a.resolved_outcome is None),
            "immune_attempts": immune,
            "air_attempts": max(0, len(failed) - immune),
        }

    is_legacy_match = (
        telemetry_version is not None
        and telemetry_version < config.telemetry.current_tracked_version
    )

    snapshot = TelemetrySnapshot(
        match_id=match_id,
        telemetry_version=telemetry_version,
        is_legacy_match=is_legacy_match,
        intent_attempts=intent_attempts,
        issued_from_source=counters.issued if counters else None,
        succeeded_from_source=counters.succeeded if counters else None,
        includes_diagnostics=include_diagnostics,
        **diagnostics,
    )
    logger.debug(
        f"Kick snapshot for {match_id}: {intent_attempts} intent attempts, "
        f"source succeeded={snapshot.succeeded_from_source}"
    )
    return snapshot


def build_reconciliation_report(snapshot: TelemetrySnapshot) -> ReconciliationReport:
    """
    Compare local timeline counts against the scoreboard counters.

    Meaningful only for snapshots built with diagnostics.
    """
    issued = snapshot.issued_from_source
    succeeded = snapshot.succeeded_from_source
    executed = snapshot.succeeded_attempts + snapshot.interrupted_attempts

    return ReconciliationReport(
        attempts_vs_issued=None if issued is None else snapshot.intent_attempts - issued,
        intent_vs_succeeded=None if succeeded is None else snapshot.intent_attempts - succeeded,
        casts_vs_issued=None if issued is None else snapshot.cast_events - issued,
        executed_vs_issued=None if issued is None else executed - issued,
        success_vs_succeeded=(
            None if succeeded is None else snapshot.succeeded_attempts - succeeded
        ),
        suggested_missed_kicks=max(0, snapshot.cast_events - snapshot.succeeded_attempts),
        estimated_bad_kicks=max(0, snapshot.intent_attempts - snapshot.succeeded_attempts),
    )

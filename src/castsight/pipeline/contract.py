"""
CastSight Output Contract: the single source of truth.

Defines the exact JSON structure that MatchOrchestrator.analyze() returns.
Every field name, nesting level, and type is locked here.

Rules:
  1. The orchestrator MUST produce output matching RESULT_CONTRACT.
  2. Exporters and the CLI MUST read fields using the paths defined here.
  3. Any new field goes here FIRST, then gets wired through all layers.

A value of None always passes the type check (optional fields).

Validated by: tests/test_pipeline.py (runtime schema check)
"""

from __future__ import annotations

# ─── Top-level result shape ───────────────────────────────────────────
RESULT_CONTRACT: dict = {
    "match_info": {
        "match_id": str,
        "telemetry_version": int,  # None when the recording carries no version
        "is_legacy_match": bool,
        "owner_name": str,
        "owner_guid": str,
        "player_count": int,
        "event_count": int,
        "timeline_only_count": int,
        "dropped_records": int,
    },
    "kick_telemetry": {
        "intent_attempts": int,
        "issued_from_source": int,
        "succeeded_from_source": int,
        "reconciled_succeeded": int,
        "derived_failed": int,
        "success_rate_pct": (int, float),
        "includes_diagnostics": bool,
        "cast_events": int,
        "outcome_only_attempts": int,
        "succeeded_attempts": int,
        "interrupted_attempts": int,
        "failed_attempts": int,
        "unresolved_attempts": int,
        "immune_attempts": int,
        "air_attempts": int,
    },
    "reconciliation": dict,  # None unless diagnostics were requested
    "attempt_counts": list,  # ATTEMPT_COUNTS_CONTRACT entries
    "spells": {
        "metric": str,
        "metric_label": str,
        "impact_label": str,
        "is_fallback_to_match_totals": bool,
        "max_value": (int, float),
        "rows": list,  # SPELL_ROW_CONTRACT entries
    },
    "compare": {
        "max_value": (int, float),
        "rows": list,  # COMPARE_ROW_CONTRACT entries
    },
    "spell_ids_for_fetch": list,
    "analyzed_at": str,
}

# ─── Per-ability attempt counts ──────────────────────────────────────
ATTEMPT_COUNTS_CONTRACT: dict = {
    "ability_id": int,
    "succeeded": int,
    "failed": int,
    "interrupted": int,
    "total": int,
}

# ─── Ranked ability row ──────────────────────────────────────────────
SPELL_ROW_CONTRACT: dict = {
    "ability_id": int,
    "display_name": str,
    "icon": str,
    "description": str,
    "value": (int, float),
    "share_pct": (int, float),
    "total_attempts": int,
    "succeeded": int,
    "failed": int,
    "interrupted": int,
    "avg_per_cast": (int, float),
}

# ─── Ranked actor row (compare view) ─────────────────────────────────
COMPARE_ROW_CONTRACT: dict = {
    "key": str,
    "guid": str,
    "name": str,
    "class_name": str,
    "value": (int, float),
    "share_pct": (int, float),
    "spells": list,  # SPELL_ROW_CONTRACT entries
}


def validate_spell_row(row: dict, path: str = "row", errors: list[str] | None = None) -> list[str]:
    """Validate one ranked ability row. Returns list of errors."""
    if errors is None:
        errors = []
    _validate_dict(row, SPELL_ROW_CONTRACT, path, errors)
    return errors


def validate_result(result: dict) -> list[str]:
    """Validate a full orchestrator result dict. Returns list of errors."""
    errors: list[str] = []
    for key in RESULT_CONTRACT:
        if key not in result:
            errors.append(f"MISSING top-level key: {key}")

    _validate_dict(
        {key: value for key, value in result.items() if key in RESULT_CONTRACT},
        {key: value for key, value in RESULT_CONTRACT.items() if key in result},
        "result",
        errors,
    )

    for i, counts in enumerate(result.get("attempt_counts") or []):
        _validate_dict(counts, ATTEMPT_COUNTS_CONTRACT, f"attempt_counts[{i}]", errors)

    spells = result.get("spells")
    if isinstance(spells, dict):
        for i, row in enumerate(spells.get("rows") or []):
            validate_spell_row(row, f"spells.rows[{i}]", errors)

    compare = result.get("compare")
    if isinstance(compare, dict):
        for i, row in enumerate(compare.get("rows") or []):
            path = f"compare.rows[{i}]"
            _validate_dict(row, COMPARE_ROW_CONTRACT, path, errors)
            if isinstance(row, dict):
                for j, spell_row in enumerate(row.get("spells") or []):
                    validate_spell_row(spell_row, f"{path}.spells[{j}]", errors)

    return errors


def _validate_dict(data: dict, contract: dict, path: str, errors: list[str]) -> None:
    """Recursively validate data against contract schema."""
    if not isinstance(data, dict):
        errors.append(f"{path}: expected dict, got {type(data).__name__}")
        return

    for key, expected_type in contract.items():
        full_path = f"{path}.{key}"
        if key not in data:
            errors.append(f"MISSING {full_path}")
            continue

        value = data[key]

        # If expected_type is a dict, recurse
        if isinstance(expected_type, dict):
            _validate_dict(value, expected_type, full_path, errors)
        elif value is not None and not isinstance(value, expected_type):
            expected = (
                "/".join(t.__name__ for t in expected_type)
                if isinstance(expected_type, tuple)
                else expected_type.__name__
            )
            errors.append(
                f"TYPE {full_path}: expected {expected}, got {type(value).__name__} = {value!r}"
            )

"""
Pipeline tests: the orchestrator end to end and its output contract.

Builds synthetic loaded matches (the shape the save-data loader hands over)
and validates that MatchOrchestrator.analyze() output matches
castsight.pipeline.contract.
"""

from __future__ import annotations

import pytest

from castsight.core.config import CastSightConfig, TelemetryConfig
from castsight.domains import telemetry
from castsight.domains.spell_meta import SpellMetaEntry, SpellMetaTable
from castsight.pipeline.contract import RESULT_CONTRACT, validate_result, validate_spell_row
from castsight.pipeline.orchestrator import (
    MatchOrchestrator,
    analyze_match,
    collect_timeline_records,
    match_id_of,
)

OWNER_GUID = "Player-1-AAAA"
RIVAL_GUID = "Player-1-BBBB"
KICK = 1766
FIREBALL = 133
FROSTBOLT = 116


def _make_match(**overrides) -> dict:
    """Build a realistic loaded match with two players."""
    match = {
        "id": "match-42",
        "telemetryVersion": 3,
        "players": [
            {
                "name": "Alice",
                "realm": "Silvermoon",
                "guid": OWNER_GUID,
                "isOwner": True,
                "class": "Mage",
                "damage": 900,
                "healing": 0,
                "interrupts": [3, 2],
            },
            {
                "name": "Bob",
                "realm": "Draenor",
                "guid": RIVAL_GUID,
                "damageDone": 300,
                "interruptions": {"1": 1, "2": 1},
            },
        ],
        "timeline": [
            {"t": 1.0, "event": "SENT", "spellID": FIREBALL, "castGUID": "f1"},
            {"t": 1.0, "event": "START", "spellID": FIREBALL, "castGUID": "f1"},
            {"t": 1.5, "event": "SUCCEEDED", "spellID": FIREBALL, "castGUID": "f1"},
            {"t": 3.0, "event": "START", "spellID": FROSTBOLT, "castGUID": "b1"},
            {"t": 3.4, "event": "INTERRUPTED", "spellID": FROSTBOLT, "castGUID": "b1"},
            {"t": 3.4, "event": "STOP", "spellID": FROSTBOLT, "castGUID": "b1"},
            {"t": 5.0, "event": "SENT", "spellID": KICK, "castGUID": "k1"},
            {"t": 5.1, "event": "SUCCEEDED", "spellID": KICK, "castGUID": "k1"},
            {"t": 8.0, "event": "SENT", "spellID": KICK, "castGUID": "k2"},
            {"t": 8.1, "event": "SUCCEEDED", "spellID": KICK, "castGUID": "k2"},
            {"t": 11.0, "event": "SENT", "spellID": KICK, "castGUID": "k3"},
            {"t": 11.1, "event": "FAILED", "spellID": KICK, "castGUID": "k3"},
            {"t": 12.0, "event": "NOT_AN_EVENT", "spellID": KICK},
        ],
        "interruptSpellIds": [KICK],
        "spellTotals": {
            str(FIREBALL): {"damage": 700, "healing": 0},
            str(FROSTBOLT): {"damage": 200, "healing": 0},
        },
        "spellTotalsBySource": {
            OWNER_GUID: {
                str(FIREBALL): {"damage": 600, "healing": 0},
                str(FROSTBOLT): {"damage": 300, "healing": 0},
            },
        },
        "interruptSpellsBySource": {OWNER_GUID: {str(KICK): 2}},
    }
    match.update(overrides)
    return match


@pytest.fixture
def spell_meta() -> SpellMetaTable:
    return SpellMetaTable(
        {
            FIREBALL: SpellMetaEntry(FIREBALL, "Fireball", "Hurls a fiery ball", "spell_fire"),
            FROSTBOLT: SpellMetaEntry(FROSTBOLT, "Frostbolt"),
            KICK: SpellMetaEntry(KICK, "Kick"),
        }
    )


@pytest.fixture
def orchestrator() -> MatchOrchestrator:
    return MatchOrchestrator(CastSightConfig())


class TestContractValidation:
    """The orchestrator output always matches RESULT_CONTRACT."""

    def test_full_match_matches_contract(self, orchestrator, spell_meta):
        result = orchestrator.analyze(_make_match(), spell_meta=spell_meta)
        assert validate_result(result) == []

    @pytest.mark.parametrize("metric", ["damage", "healing", "interrupts"])
    def test_every_metric_matches_contract(self, orchestrator, spell_meta, metric):
        result = orchestrator.analyze(
            _make_match(), metric=metric, include_diagnostics=True, spell_meta=spell_meta
        )
        assert validate_result(result) == []

    def test_empty_match_matches_contract(self, orchestrator):
        result = orchestrator.analyze({})
        assert validate_result(result) == []
        assert result["match_info"]["match_id"] == "unknown"
        assert result["spells"]["rows"] == []
        assert result["compare"]["rows"] == []

    def test_validate_result_catches_missing_keys(self):
        errors = validate_result({})
        assert any("MISSING" in e for e in errors)
        assert len([e for e in errors if "top-level" in e]) == len(RESULT_CONTRACT)

    def test_validate_result_catches_wrong_types(self, orchestrator):
        result = orchestrator.analyze(_make_match())
        result["match_info"]["event_count"] = "12"
        result["spells"]["rows"] = [{"ability_id": 1}]
        errors = validate_result(result)
        assert any("TYPE result.match_info.event_count" in e for e in errors)
        assert any("MISSING spells.rows[0].display_name" in e for e in errors)

    def test_validate_spell_row(self):
        row = {
            "ability_id": 1,
            "display_name": "A",
            "icon": None,
            "description": None,
            "value": 1.0,
            "share_pct": 100.0,
            "total_attempts": 0,
            "succeeded": 0,
            "failed": 0,
            "interrupted": 0,
            "avg_per_cast": None,
        }
        assert validate_spell_row(row) == []


class TestMatchOrchestrator:
    """End-to-end behavior of the analysis pipeline."""

    def test_match_info(self, orchestrator, spell_meta):
        info = orchestrator.analyze(_make_match(), spell_meta=spell_meta)["match_info"]
        assert info["match_id"] == "match-42"
        assert info["owner_name"] == "Alice"
        assert info["owner_guid"] == OWNER_GUID.lower()
        assert info["player_count"] == 2
        assert info["event_count"] == 11
        assert info["timeline_only_count"] == 1
        assert info["dropped_records"] == 1
        assert info["is_legacy_match"] is False

    def test_kick_telemetry(self, orchestrator):
        kicks = orchestrator.analyze(_make_match())["kick_telemetry"]
        assert kicks["intent_attempts"] == 3
        assert kicks["issued_from_source"] == 3
        assert kicks["reconciled_succeeded"] == 2
        assert kicks["derived_failed"] == 1
        assert kicks["success_rate_pct"] == pytest.approx(66.7)
        assert kicks["includes_diagnostics"] is False

    def test_diagnostics(self, orchestrator):
        result = orchestrator.analyze(_make_match(), include_diagnostics=True)
        assert result["kick_telemetry"]["failed_attempts"] == 1
        assert result["kick_telemetry"]["air_attempts"] == 1
        assert result["reconciliation"]["estimated_bad_kicks"] == 1

    def test_reconciliation_omitted_without_diagnostics(self, orchestrator):
        assert orchestrator.analyze(_make_match())["reconciliation"] is None

    def test_personal_rows(self, orchestrator, spell_meta):
        spells = orchestrator.analyze(_make_match(), spell_meta=spell_meta)["spells"]
        assert spells["metric"] == "damage"
        assert spells["impact_label"] == "Total Damage"
        assert not spells["is_fallback_to_match_totals"]
        rows = spells["rows"]
        assert [r["display_name"] for r in rows] == ["Fireball", "Frostbolt"]
        assert rows[0]["share_pct"] == pytest.approx(66.666, rel=1e-3)
        assert rows[0]["total_attempts"] == 1
        assert rows[0]["avg_per_cast"] == pytest.approx(600.0)
        assert rows[1]["interrupted"] == 1
        assert spells["max_value"] == 600

    def test_fallback_to_match_totals(self, orchestrator, spell_meta):
        match = _make_match(spellTotalsBySource={})
        spells = orchestrator.analyze(match, spell_meta=spell_meta)["spells"]
        assert spells["is_fallback_to_match_totals"]
        assert [r["value"] for r in spells["rows"]] == [700, 200]

    def test_interrupt_rows(self, orchestrator, spell_meta):
        spells = orchestrator.analyze(_make_match(), metric="interrupts", spell_meta=spell_meta)[
            "spells"
        ]
        assert [(r["display_name"], r["value"]) for r in spells["rows"]] == [("Kick", 2)]

    def test_compare_rows(self, orchestrator, spell_meta):
        compare = orchestrator.analyze(_make_match(), spell_meta=spell_meta)["compare"]
        assert [r["name"] for r in compare["rows"]] == ["Alice", "Bob"]
        assert [r["share_pct"] for r in compare["rows"]] == [
            pytest.approx(75.0),
            pytest.approx(25.0),
        ]
        assert len(compare["rows"][0]["spells"]) == 2

    def test_attempt_counts_and_fetch_ids(self, orchestrator):
        result = orchestrator.analyze(_make_match())
        counts = {c["ability_id"]: c for c in result["attempt_counts"]}
        assert counts[KICK]["succeeded"] == 2
        assert counts[KICK]["failed"] == 1
        assert counts[KICK]["total"] == 3
        assert result["spell_ids_for_fetch"] == sorted({FIREBALL, FROSTBOLT, KICK})

    def test_without_spell_meta_rows_are_empty(self, orchestrator):
        spells = orchestrator.analyze(_make_match())["spells"]
        assert spells["rows"] == []
        assert spells["max_value"] == 1

    def test_unknown_metric_raises(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.analyze(_make_match(), metric="threat")

    def test_config_defaults_used(self, spell_meta):
        config = CastSightConfig(telemetry=TelemetryConfig(include_diagnostics=True))
        config.metrics.default_metric = "interrupts"
        result = MatchOrchestrator(config).analyze(_make_match(), spell_meta=spell_meta)
        assert result["spells"]["metric"] == "interrupts"
        assert result["reconciliation"] is not None

    def test_legacy_match(self, orchestrator):
        result = orchestrator.analyze(_make_match(telemetryVersion=None, dataVersion=2))
        assert result["match_info"]["telemetry_version"] == 2
        assert result["match_info"]["is_legacy_match"] is True

    def test_owner_falls_back_to_first_player(self, orchestrator):
        match = _make_match()
        for player in match["players"]:
            player.pop("isOwner", None)
        match["players"].reverse()
        result = orchestrator.analyze(match)
        assert result["match_info"]["owner_name"] == "Bob"
        assert result["kick_telemetry"]["succeeded_from_source"] == 1

    def test_analyze_match_convenience(self, spell_meta):
        result = analyze_match(_make_match(), spell_meta=spell_meta)
        assert validate_result(result) == []

    def test_resolve_attempts(self, orchestrator):
        resolution, collapsed = orchestrator.resolve_attempts(_make_match(), [KICK])
        assert len(resolution.attempts) == 5
        assert [a.ability_id for a in collapsed.attempts] == [KICK, KICK, KICK]


class TestTimelineSources:
    """Tests for picking the match timeline."""

    def test_match_id(self):
        assert match_id_of({"id": "a", "matchKey": "b"}) == "a"
        assert match_id_of({"matchKey": "b"}) == "b"
        assert match_id_of({"id": "  "}) == "unknown"

    def test_top_level_timeline_wins(self):
        match = {
            "timeline": [{"t": 1, "event": "SENT", "spellID": 1}],
            "soloShuffle": {"timeline": [{"t": 2, "event": "SENT", "spellID": 2}]},
        }
        assert collect_timeline_records(match) == match["timeline"]

    def test_solo_shuffle_and_cast_records(self):
        cast_record = {"castGUID": "c", "spellID": 3, "events": [{"t": 3, "event": "SENT"}]}
        match = {
            "soloShuffle": {"timeline": [{"t": 2, "event": "SENT", "spellID": 2}]},
            "castRecords": [cast_record],
        }
        records = collect_timeline_records(match)
        assert len(records) == 2
        timeline = MatchOrchestrator(CastSightConfig()).normalize(match)
        assert [e.ability_id for e in timeline.events] == [2, 3]


class TestSingleResolution:
    """The kick snapshot reuses the orchestrator's attempt resolution."""

    def test_snapshot_does_not_resolve_again(self, orchestrator, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("timeline resolved twice")

        monkeypatch.setattr(telemetry, "resolve_intent_attempts", fail)
        result = orchestrator.analyze(_make_match())
        assert result["kick_telemetry"]["intent_attempts"] == 3
